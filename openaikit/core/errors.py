"""
Exception hierarchy raised by the openaikit client.

Every failure the library surfaces is an ``APIError`` subclass so callers can
catch a single type at their boundary and still branch on the concrete class.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Mapping, Optional


# =============================================================================
# Exceptions
# =============================================================================

class APIError(Exception):
    """Base exception for API errors."""

    def __init__(
        self,
        message: str,
        status_code: int = None,
        body: Any = None,
        headers: Mapping[str, str] = None,
        type: str = None,
        param: str = None,
        code: str = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.body = body
        self.headers = dict(headers or {})
        self.type = type
        self.param = param
        self.code = code

    def __str__(self):
        if self.status_code:
            return f"[{self.status_code}] {self.message}"
        return self.message

    @property
    def is_retryable(self) -> bool:
        if self.status_code is None:
            return self.type == "server_error" or self.code == "server_error"
        return self.status_code == 429 or self.status_code >= 500

    @property
    def retry_after(self) -> Optional[float]:
        """Server supplied retry hint in seconds, if any."""
        headers = {k.lower(): v for k, v in self.headers.items()}
        retry_ms = headers.get("retry-after-ms")
        if retry_ms is not None:
            try:
                return float(retry_ms) / 1000.0
            except ValueError:
                pass
        retry_after = headers.get("retry-after")
        if retry_after is not None:
            try:
                return float(retry_after)
            except ValueError:
                return None
        return None

    @property
    def requires_user_action(self) -> bool:
        return self.type in ("invalid_request_error", "authentication_error")

    @property
    def title(self) -> str:
        return _TYPE_TITLES.get(self.type, "API Error")

    @property
    def user_message(self) -> str:
        return self.message


class BadRequestError(APIError):
    """Raised for 400 errors."""

    title = "Request Error"

    @property
    def requires_user_action(self) -> bool:
        return True


class AuthenticationError(APIError):
    """Raised for 401 errors."""

    title = "Authentication Error"

    @property
    def requires_user_action(self) -> bool:
        return True

    @property
    def user_message(self) -> str:
        return "Your API key appears to be invalid. Check OPENAI_API_KEY or pass api_key explicitly."


class PermissionDeniedError(APIError):
    """Raised for 403 errors."""

    title = "Permission Denied"

    @property
    def user_message(self) -> str:
        return "Access forbidden. You don't have permission to access this resource."


class NotFoundError(APIError):
    """Raised for 404 errors."""

    title = "Not Found"

    @property
    def user_message(self) -> str:
        return self.message or "The requested resource was not found."


class ConflictError(APIError):
    """Raised for 409 errors."""

    title = "Conflict"


class UnprocessableEntityError(APIError):
    """Raised for 413 and 422 errors."""

    title = "Request Error"

    @property
    def user_message(self) -> str:
        if self.status_code == 413:
            return "The request is too large. Please reduce the size and try again."
        return self.message or "The request couldn't be processed. Please check your input."


class RateLimitError(APIError):
    """Raised for 429 errors."""

    title = "Rate Limit Exceeded"

    @property
    def user_message(self) -> str:
        return "You've made too many requests. Please wait a moment before trying again."


class InternalServerError(APIError):
    """Raised for 500+ errors."""

    title = "Server Error"

    @property
    def user_message(self) -> str:
        return "The API is experiencing issues. Please try again in a few moments."


class APIConnectionError(APIError):
    """Raised when connection fails."""

    title = "Connection Error"

    @property
    def is_retryable(self) -> bool:
        return True

    @property
    def user_message(self) -> str:
        return "Unable to reach the API. Please check your network connection."


class APITimeoutError(APIConnectionError):
    """Raised on timeout."""

    title = "Request Timed Out"


class DecodingError(APIError):
    """Raised when a payload does not match any known shape."""

    title = "Data Processing Error"

    @property
    def is_retryable(self) -> bool:
        return False


class EncodingError(APIError):
    """Raised when a request value cannot be serialized."""

    title = "Data Processing Error"

    @property
    def is_retryable(self) -> bool:
        return False


class InvalidFileDataError(APIError):
    """Raised when an upload cannot be read."""

    title = "Invalid File"

    @property
    def requires_user_action(self) -> bool:
        return True


class BatchTimeoutError(APIError):
    """Raised when a batch does not finish before the polling deadline."""

    title = "Batch Timeout"

    def __init__(self, message: str, batch=None, **kwargs):
        super().__init__(message, **kwargs)
        self.batch = batch

    @property
    def is_retryable(self) -> bool:
        return False


_TYPE_TITLES = {
    "invalid_request_error": "Invalid Request",
    "authentication_error": "Authentication Error",
    "rate_limit_error": "Rate Limit",
    "server_error": "Server Error",
    "engine_error": "Model Error",
}

_STATUS_MAP = {
    400: BadRequestError,
    401: AuthenticationError,
    403: PermissionDeniedError,
    404: NotFoundError,
    409: ConflictError,
    413: UnprocessableEntityError,
    422: UnprocessableEntityError,
    429: RateLimitError,
}


def _error_detail(body: Any) -> Dict[str, Any]:
    if isinstance(body, (bytes, bytearray)):
        body = body.decode("utf-8", errors="replace")
    if isinstance(body, str):
        try:
            body = json.loads(body)
        except json.JSONDecodeError:
            return {"message": body}
    if not isinstance(body, dict):
        return {}
    error = body.get("error", body)
    if isinstance(error, dict):
        return error
    return {"message": str(error)}


def error_from_response(status_code: int, body: Any = None, headers: Mapping[str, str] = None) -> APIError:
    """Build the matching exception for a failed HTTP response."""
    detail = _error_detail(body)
    message = detail.get("message") or (body if isinstance(body, str) and body else f"HTTP {status_code}")
    error_class = _STATUS_MAP.get(status_code, InternalServerError if status_code >= 500 else APIError)
    code = detail.get("code")
    return error_class(
        message=message,
        status_code=status_code,
        body=body,
        headers=headers,
        type=detail.get("type"),
        param=detail.get("param"),
        code=str(code) if code is not None else None,
    )


__all__ = [
    "APIError",
    "BadRequestError",
    "AuthenticationError",
    "PermissionDeniedError",
    "NotFoundError",
    "ConflictError",
    "UnprocessableEntityError",
    "RateLimitError",
    "InternalServerError",
    "APIConnectionError",
    "APITimeoutError",
    "DecodingError",
    "EncodingError",
    "InvalidFileDataError",
    "BatchTimeoutError",
    "error_from_response",
]
