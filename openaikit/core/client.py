"""Synchronous API client."""

from __future__ import annotations

import logging
from typing import Any, Dict, List

import requests

from ..config import Config
from .helpers import Conversation, MessageBuilder, ToolExecutor
from .resources import (
    Audio,
    Batches,
    Chat,
    Embeddings,
    Files,
    Images,
    Models,
    Moderations,
    Responses,
)
from .retry import RetryConfig
from .transport import DEFAULT_BASE_URL, DEFAULT_MAX_RETRIES, DEFAULT_TIMEOUT, HTTPTransport

logger = logging.getLogger(__name__)


class BaseClient:
    """Settings resolution shared by ``Client`` and ``AsyncClient``."""

    _batches_class = Batches

    def __init__(
        self,
        api_key: str = None,
        organization: str = None,
        project: str = None,
        base_url: str = None,
        timeout: float = None,
        max_retries: int = None,
        default_headers: dict = None,
        default_query: dict = None,
        verify_ssl: bool = True,
        proxy: str = None,
        retry_config: RetryConfig = None,
    ):
        env = Config.client_kwargs()
        self.api_key = api_key or env.get("api_key")
        self.organization = organization or env.get("organization")
        self.project = project or env.get("project")
        self.base_url = (base_url or env.get("base_url") or DEFAULT_BASE_URL).rstrip("/")
        self.timeout = timeout if timeout is not None else env.get("timeout", DEFAULT_TIMEOUT)
        self.max_retries = max_retries if max_retries is not None else env.get("max_retries", DEFAULT_MAX_RETRIES)
        self.default_headers = dict(default_headers or {})
        self.default_query = dict(default_query or {})
        self.verify_ssl = verify_ssl
        self.proxy = proxy
        self.retry_config = retry_config

        if not self.api_key:
            logger.debug("No API key configured; requests will be sent without Authorization")

    def _options(self) -> Dict[str, Any]:
        return {
            "api_key": self.api_key,
            "organization": self.organization,
            "project": self.project,
            "base_url": self.base_url,
            "timeout": self.timeout,
            "max_retries": self.max_retries,
            "default_headers": self.default_headers,
            "default_query": self.default_query,
            "verify_ssl": self.verify_ssl,
            "proxy": self.proxy,
            "retry_config": self.retry_config,
        }

    def _init_resources(self, transport):
        self._transport = transport
        self.chat = Chat(transport)
        self.embeddings = Embeddings(transport)
        self.images = Images(transport)
        self.audio = Audio(transport)
        self.files = Files(transport)
        self.batches = self._batches_class(transport)
        self.models = Models(transport)
        self.moderations = Moderations(transport)
        self.responses = Responses(transport)

        self.message = MessageBuilder

    def __repr__(self):
        return f"{self.__class__.__name__}(base_url={self.base_url!r}, api_key={'***' if self.api_key else None!r})"


class Client(BaseClient):
    """
    Main API client.

    Usage:
        client = Client(api_key="sk-...")

        response = client.chat.completions.create(
            model="gpt-4o-mini",
            messages=[{"role": "user", "content": "Hello!"}],
        )
        print(response.text)

        for chunk in client.chat.completions.create(model="gpt-4o-mini", messages=msgs, stream=True):
            print(chunk.choices[0].delta.content or "", end="")
    """

    def __init__(self, *args, session: requests.Session = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._init_resources(HTTPTransport(**self._options(), session=session))

    def with_options(self, **overrides) -> "Client":
        """Copy of this client with some settings replaced; the HTTP session is shared."""
        options = self._options()
        options.update(overrides)
        options.setdefault("session", self._transport.session)
        return Client(**options)

    def conversation(
        self,
        model: str = None,
        system: str = None,
        tools: List[dict] = None,
        tool_executor: ToolExecutor = None,
        max_history: int = None,
        **kwargs,
    ) -> Conversation:
        """Create a new conversation manager."""
        return Conversation(
            client=self,
            model=model or Config.get_model(),
            system=system,
            tools=tools,
            tool_executor=tool_executor,
            max_history=max_history,
            **kwargs,
        )

    def quick(self, prompt: str, model: str = None, system: str = None, **kwargs) -> str:
        """Quick one-shot completion - returns just the text."""
        messages = []
        if system:
            messages.append(MessageBuilder.system(system))
        messages.append(MessageBuilder.user(prompt))
        response = self.chat.completions.create(model=model or Config.get_model(), messages=messages, **kwargs)
        return response.text

    def close(self):
        self._transport.close()

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


# OpenAI-compatible alias
OpenAI = Client
