"""
HTTP transports.

Resources describe each call as an ``APIRequest``; ``HTTPTransport`` executes
it with requests and returns the parsed value, ``AsyncHTTPTransport`` does the
same with httpx and returns it from a coroutine. That split is what lets one
set of resource classes serve both ``Client`` and ``AsyncClient``.
"""

from __future__ import annotations

import io
import json
import logging
import mimetypes
import os
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Callable, Dict, Iterator, List, Optional, Tuple, Union

import httpx
import requests

from ..__version__ import __version__
from .errors import (
    APIConnectionError,
    APITimeoutError,
    DecodingError,
    InvalidFileDataError,
    error_from_response,
)
from .models.base import serialize
from .retry import RetryConfig, RetryHandler
from .streaming import AsyncStream, Stream, aiter_sse_events, iter_sse_events

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://api.openai.com/v1"
DEFAULT_TIMEOUT = 600.0
DEFAULT_MAX_RETRIES = 2

FileTuple = Tuple[str, bytes, str]
FileInput = Union[str, os.PathLike, bytes, bytearray, io.IOBase, tuple]

_MIME_OVERRIDES = {
    ".json": "application/json",
    ".jsonl": "application/json",
    ".md": "text/plain",
    ".txt": "text/plain",
    ".csv": "text/csv",
    ".flac": "audio/flac",
    ".mp3": "audio/mpeg",
    ".mpga": "audio/mpeg",
    ".mpeg": "audio/mpeg",
    ".mp4": "audio/mp4",
    ".m4a": "audio/m4a",
    ".ogg": "audio/ogg",
    ".wav": "audio/wav",
    ".webm": "audio/webm",
    ".webp": "image/webp",
}


# =============================================================================
# Request Description
# =============================================================================

@dataclass
class APIRequest:
    """Everything a transport needs to perform one API call."""

    method: str
    path: str
    body: Optional[Dict[str, Any]] = None
    query: Optional[Dict[str, Any]] = None
    files: Optional[Dict[str, FileTuple]] = None
    data: Optional[Dict[str, Any]] = None
    headers: Optional[Dict[str, str]] = None
    stream: bool = False
    raw: bool = False
    parser: Optional[Callable] = None
    timeout: Optional[float] = None


def guess_content_type(filename: str) -> str:
    ext = os.path.splitext(filename)[1].lower()
    if ext in _MIME_OVERRIDES:
        return _MIME_OVERRIDES[ext]
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


def prepare_file(file: FileInput, name: str = "file") -> FileTuple:
    """
    Normalize an upload to ``(filename, content, content_type)``.

    Accepts a path, raw bytes, a binary file object, or a tuple of
    ``(filename, content)`` / ``(filename, content, content_type)``.
    """
    if isinstance(file, tuple):
        if len(file) not in (2, 3):
            raise InvalidFileDataError(f"File tuple must have 2 or 3 items, got {len(file)}")
        filename, content = file[0], file[1]
        if hasattr(content, "read"):
            content = content.read()
        if isinstance(content, str):
            content = content.encode("utf-8")
        if not isinstance(content, (bytes, bytearray)):
            raise InvalidFileDataError(f"Unsupported file content for {filename!r}: {type(content).__name__}")
        content_type = file[2] if len(file) == 3 else guess_content_type(filename)
        return filename, bytes(content), content_type

    if isinstance(file, (bytes, bytearray)):
        return name, bytes(file), "application/octet-stream"

    if isinstance(file, (str, os.PathLike)):
        path = os.fspath(file)
        try:
            with open(path, "rb") as f:
                content = f.read()
        except OSError as e:
            raise InvalidFileDataError(f"Cannot read file {path!r}: {e}") from e
        filename = os.path.basename(path)
        return filename, content, guess_content_type(filename)

    if hasattr(file, "read"):
        content = file.read()
        if isinstance(content, str):
            content = content.encode("utf-8")
        filename = getattr(file, "name", None) or name
        if not isinstance(filename, str):
            filename = name
        filename = os.path.basename(filename)
        return filename, content, guess_content_type(filename)

    raise InvalidFileDataError(f"Unsupported file input: {type(file).__name__}")


def _form_value(value: Any) -> Union[str, List[str]]:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (list, tuple)):
        return [_form_value(v) for v in value]
    if isinstance(value, dict):
        return json.dumps(value)
    return str(value)


@contextmanager
def _requests_errors(timeout: float):
    try:
        yield
    except requests.Timeout as e:
        raise APITimeoutError(f"Request timed out after {timeout}s") from e
    except requests.RequestException as e:
        raise APIConnectionError(f"Connection error: {e}") from e


@contextmanager
def _httpx_errors(timeout: float):
    try:
        yield
    except httpx.TimeoutException as e:
        raise APITimeoutError(f"Request timed out after {timeout}s") from e
    except httpx.RequestError as e:
        raise APIConnectionError(f"Connection error: {e}") from e


def _guarded_lines(lines: Iterator, timeout: float) -> Iterator:
    """Stream lines with network failures mapped to library errors."""
    with _requests_errors(timeout):
        yield from lines


async def _aguarded_lines(lines: AsyncIterator, timeout: float) -> AsyncIterator:
    with _httpx_errors(timeout):
        async for line in lines:
            yield line


# =============================================================================
# Shared Transport Logic
# =============================================================================

class BaseTransport:
    """Header, URL and payload handling common to both transports."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        api_key: str = None,
        organization: str = None,
        project: str = None,
        timeout: float = DEFAULT_TIMEOUT,
        max_retries: int = DEFAULT_MAX_RETRIES,
        default_headers: dict = None,
        default_query: dict = None,
        verify_ssl: bool = True,
        proxy: str = None,
        retry_config: RetryConfig = None,
    ):
        self.base_url = (base_url or DEFAULT_BASE_URL).rstrip("/")
        self.api_key = api_key
        self.organization = organization
        self.project = project
        self.timeout = timeout
        self.max_retries = max_retries
        self.default_headers = default_headers or {}
        self.default_query = default_query or {}
        self.verify_ssl = verify_ssl
        self.proxy = proxy
        self.retry_config = retry_config or RetryConfig.from_max_retries(max_retries)
        self.retry = RetryHandler(self.retry_config)

    def _timeout_for(self, request: APIRequest) -> float:
        return request.timeout if request.timeout is not None else self.timeout

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def _build_headers(self, request: APIRequest) -> dict:
        headers = {
            "User-Agent": f"openaikit/{__version__}",
            "Accept": "text/event-stream" if request.stream else "application/json",
        }
        if self.api_key:
            headers["Authorization"] = f"Bearer {self.api_key}"
        if self.organization:
            headers["OpenAI-Organization"] = self.organization
        if self.project:
            headers["OpenAI-Project"] = self.project
        headers.update(self.default_headers)
        if request.headers:
            headers.update(request.headers)
        return headers

    def _build_query(self, request: APIRequest) -> Optional[dict]:
        query = dict(self.default_query)
        query.update(request.query or {})
        query = {k: _form_value(v) for k, v in query.items() if v is not None}
        return query or None

    @staticmethod
    def _build_form(request: APIRequest) -> Optional[dict]:
        if request.data is None:
            return None
        return {k: _form_value(v) for k, v in request.data.items() if v is not None}

    @staticmethod
    def _build_json(request: APIRequest) -> Optional[dict]:
        if request.body is None or request.files is not None:
            return None
        return serialize(request.body)

    @staticmethod
    def _parse(request: APIRequest, content: bytes, content_type: str) -> Any:
        if request.raw:
            if request.parser is not None:
                return request.parser(content, content_type)
            return content
        if not content.strip():
            data = {}
        else:
            try:
                data = json.loads(content)
            except ValueError as e:
                snippet = content[:200].decode("utf-8", errors="replace")
                raise DecodingError(f"Response from {request.path} is not valid JSON: {snippet!r}") from e
        if request.parser is not None:
            return request.parser(data)
        return data

    def __repr__(self):
        return f"{self.__class__.__name__}(base_url={self.base_url!r})"


# =============================================================================
# Sync Transport (requests)
# =============================================================================

class HTTPTransport(BaseTransport):
    """Blocking transport built on a ``requests.Session``."""

    def __init__(self, *args, session: requests.Session = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._owns_session = session is None
        self.session = session or requests.Session()
        self._proxies = {"http": self.proxy, "https": self.proxy} if self.proxy else None

    def _send(self, request: APIRequest) -> requests.Response:
        method = request.method.upper()
        timeout = self._timeout_for(request)
        logger.debug("%s %s", method, request.path)
        with _requests_errors(timeout):
            response = self.session.request(
                method,
                self._url(request.path),
                params=self._build_query(request),
                json=self._build_json(request),
                data=self._build_form(request),
                files=request.files,
                headers=self._build_headers(request),
                timeout=timeout,
                stream=request.stream,
                verify=self.verify_ssl,
                proxies=self._proxies,
            )

        logger.debug("%s %s -> %d", method, request.path, response.status_code)
        if response.status_code >= 400:
            try:
                with _requests_errors(timeout):
                    body = response.text
            finally:
                response.close()
            raise error_from_response(response.status_code, body, response.headers)
        return response

    def execute(self, request: APIRequest) -> Any:
        response = self.retry.perform(lambda: self._send(request))
        if request.stream:
            lines = _guarded_lines(response.iter_lines(), self._timeout_for(request))
            events = iter_sse_events(lines)
            return Stream(events, request.parser, close=response.close)
        content_type = response.headers.get("content-type", "")
        return self._parse(request, response.content, content_type)

    def close(self):
        if self._owns_session:
            self.session.close()


# =============================================================================
# Async Transport (httpx)
# =============================================================================

class AsyncHTTPTransport(BaseTransport):
    """Non-blocking transport built on ``httpx.AsyncClient``."""

    def __init__(self, *args, http_client: httpx.AsyncClient = None,
                 transport: httpx.AsyncBaseTransport = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._owns_client = http_client is None
        self.http_client = http_client or httpx.AsyncClient(
            timeout=self.timeout,
            verify=self.verify_ssl,
            proxy=self.proxy,
            transport=transport,
        )

    async def _send(self, request: APIRequest) -> httpx.Response:
        method = request.method.upper()
        timeout = self._timeout_for(request)
        http_request = self.http_client.build_request(
            method,
            self._url(request.path),
            params=self._build_query(request),
            json=self._build_json(request),
            data=self._build_form(request),
            files=request.files,
            headers=self._build_headers(request),
            timeout=timeout,
        )
        logger.debug("%s %s", method, request.path)
        with _httpx_errors(timeout):
            response = await self.http_client.send(http_request, stream=True)

        logger.debug("%s %s -> %d", method, request.path, response.status_code)
        # Only successful streams leave the body unread
        if response.status_code >= 400 or not request.stream:
            try:
                with _httpx_errors(timeout):
                    await response.aread()
            finally:
                await response.aclose()
        if response.status_code >= 400:
            body = response.content.decode("utf-8", errors="replace")
            raise error_from_response(response.status_code, body, response.headers)
        return response

    async def execute(self, request: APIRequest) -> Any:
        response = await self.retry.perform_async(lambda: self._send(request))
        if request.stream:
            lines = _aguarded_lines(response.aiter_lines(), self._timeout_for(request))
            return AsyncStream(aiter_sse_events(lines), request.parser, close=response.aclose)
        content_type = response.headers.get("content-type", "")
        return self._parse(request, response.content, content_type)

    async def close(self):
        if self._owns_client:
            await self.http_client.aclose()
