"""Asynchronous API client built on httpx."""

from __future__ import annotations

import httpx

from ..config import Config
from .client import BaseClient
from .helpers import MessageBuilder
from .resources import AsyncBatches
from .transport import AsyncHTTPTransport


class AsyncClient(BaseClient):
    """
    Async counterpart of ``Client``; every resource method returns a coroutine.

    Usage:
        async with AsyncClient() as client:
            response = await client.chat.completions.create(model=..., messages=...)

            stream = await client.chat.completions.create(model=..., messages=..., stream=True)
            async for chunk in stream:
                ...
    """

    _batches_class = AsyncBatches

    def __init__(self, *args, http_client: httpx.AsyncClient = None,
                 transport: httpx.AsyncBaseTransport = None, **kwargs):
        super().__init__(*args, **kwargs)
        self._init_resources(
            AsyncHTTPTransport(**self._options(), http_client=http_client, transport=transport)
        )

    def with_options(self, **overrides) -> "AsyncClient":
        """Copy of this client with some settings replaced; the connection pool is shared."""
        options = self._options()
        options.update(overrides)
        options.setdefault("http_client", self._transport.http_client)
        return AsyncClient(**options)

    async def quick(self, prompt: str, model: str = None, system: str = None, **kwargs) -> str:
        messages = []
        if system:
            messages.append(MessageBuilder.system(system))
        messages.append(MessageBuilder.user(prompt))
        response = await self.chat.completions.create(model=model or Config.get_model(), messages=messages, **kwargs)
        return response.text

    async def close(self):
        await self._transport.close()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.close()
