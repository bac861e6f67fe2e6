"""
Server-sent event decoding and the stream wrappers returned for ``stream=True``.
"""

from __future__ import annotations

import json
import logging
import uuid
from typing import (
    Any,
    AsyncIterable,
    AsyncIterator,
    Callable,
    Dict,
    Generic,
    Iterable,
    Iterator,
    List,
    Optional,
    Tuple,
    TypeVar,
)

from .errors import APIError, DecodingError
from .models.chat import ChatCompletion, ChatCompletionChunk, ChatMessage, Choice, FunctionCall, ToolCall
from .models.responses import ResponseStreamEvent

logger = logging.getLogger(__name__)

T = TypeVar("T")

_SKIP = "skip"
_DONE = "done"
_DATA = "data"


# =============================================================================
# SSE Decoding
# =============================================================================

def _decode_line(line) -> Tuple[str, Optional[Dict[str, Any]]]:
    if isinstance(line, (bytes, bytearray)):
        line = line.decode("utf-8", errors="replace")
    line = line.strip()
    if not line or line.startswith(":"):
        return _SKIP, None
    if line.startswith("data:"):
        data_str = line[5:].strip()
    elif line.startswith("{"):
        # Some servers send raw JSON without SSE prefix
        data_str = line
    else:
        # event:, id:, retry: fields
        return _SKIP, None

    if data_str == "[DONE]":
        return _DONE, None
    try:
        data = json.loads(data_str)
    except json.JSONDecodeError as e:
        raise DecodingError(f"Malformed stream event: {data_str[:200]!r}") from e
    if not isinstance(data, dict):
        raise DecodingError(f"Stream event must be a JSON object, got {type(data).__name__}")
    _raise_for_error_event(data)
    return _DATA, data


def _raise_for_error_event(data: Dict[str, Any]):
    error = data.get("error")
    if isinstance(error, dict) and "choices" not in data:
        raise APIError(
            message=error.get("message") or "Stream error",
            body=data,
            type=error.get("type"),
            param=error.get("param"),
            code=str(error["code"]) if error.get("code") is not None else None,
        )
    if data.get("type") == "error":
        raise APIError(
            message=data.get("message") or "Stream error",
            body=data,
            type=data.get("type"),
            param=data.get("param"),
            code=str(data["code"]) if data.get("code") is not None else None,
        )


def iter_sse_events(lines: Iterable) -> Iterator[Dict[str, Any]]:
    """Yield the JSON payload of each ``data:`` event until ``[DONE]``."""
    for line in lines:
        kind, data = _decode_line(line)
        if kind == _DONE:
            return
        if kind == _DATA:
            yield data


async def aiter_sse_events(lines: AsyncIterable) -> AsyncIterator[Dict[str, Any]]:
    async for line in lines:
        kind, data = _decode_line(line)
        if kind == _DONE:
            return
        if kind == _DATA:
            yield data


# =============================================================================
# Chunk Merging
# =============================================================================

def merge_chunks(chunks: List[ChatCompletionChunk]) -> ChatCompletion:
    """Merge a list of streaming chunks into a single ChatCompletion."""
    if not chunks:
        return ChatCompletion()

    merged_content: Dict[int, List[str]] = {}
    merged_refusal: Dict[int, List[str]] = {}
    merged_tool_calls: Dict[int, Dict[int, ToolCall]] = {}
    merged_function_call: Dict[int, FunctionCall] = {}
    finish_reasons: Dict[int, str] = {}
    roles: Dict[int, str] = {}
    model = completion_id = created = fingerprint = usage = None

    for chunk in chunks:
        model = chunk.model or model
        completion_id = chunk.id or completion_id
        created = chunk.created or created
        fingerprint = chunk.system_fingerprint or fingerprint
        if chunk.usage is not None:
            usage = chunk.usage

        for choice in chunk.choices:
            idx = choice.index
            delta = choice.delta
            if choice.finish_reason:
                finish_reasons[idx] = choice.finish_reason
            if not delta:
                continue

            if delta.role:
                roles[idx] = delta.role
            if delta.content:
                merged_content.setdefault(idx, []).append(delta.content)
            if delta.refusal:
                merged_refusal.setdefault(idx, []).append(delta.refusal)

            for tc in delta.tool_calls or []:
                calls = merged_tool_calls.setdefault(idx, {})
                tc_idx = tc.index if tc.index is not None else len(calls)
                if tc_idx not in calls:
                    calls[tc_idx] = ToolCall(
                        id=tc.id,
                        type=tc.type or "function",
                        function=FunctionCall(name="", arguments=""),
                    )
                existing = calls[tc_idx]
                if tc.id:
                    existing.id = tc.id
                if tc.function:
                    if tc.function.name:
                        existing.function.name += tc.function.name
                    if tc.function.arguments:
                        existing.function.arguments += tc.function.arguments

            if delta.function_call:
                fc = merged_function_call.setdefault(idx, FunctionCall(name="", arguments=""))
                if delta.function_call.name:
                    fc.name += delta.function_call.name
                if delta.function_call.arguments:
                    fc.arguments += delta.function_call.arguments

    all_indices = (set(merged_content) | set(merged_tool_calls) | set(merged_function_call)
                   | set(finish_reasons) | set(roles) | set(merged_refusal))

    choices = []
    for idx in sorted(all_indices):
        tool_calls = None
        if idx in merged_tool_calls:
            tool_calls = []
            for position in sorted(merged_tool_calls[idx]):
                call = merged_tool_calls[idx][position]
                if not call.id:
                    call.id = f"call_{uuid.uuid4().hex[:24]}"
                tool_calls.append(call)
        msg = ChatMessage(
            role=roles.get(idx, "assistant"),
            content="".join(merged_content.get(idx, [])) or None,
            refusal="".join(merged_refusal.get(idx, [])) or None,
            tool_calls=tool_calls,
            function_call=merged_function_call.get(idx),
        )
        choices.append(Choice(index=idx, message=msg, finish_reason=finish_reasons.get(idx)))

    return ChatCompletion(
        id=completion_id,
        created=created,
        model=model,
        choices=choices,
        usage=usage,
        system_fingerprint=fingerprint,
    )


def final_response(events: List[ResponseStreamEvent]):
    """Last response snapshot carried by a lifecycle event."""
    for event in reversed(events):
        if event.response is not None:
            return event.response
    return None


def collector_for(parser: Callable) -> Optional[Callable]:
    if parser == ChatCompletionChunk.from_dict:
        return merge_chunks
    if parser == ResponseStreamEvent.from_dict:
        return final_response
    return None


# =============================================================================
# Stream Wrappers
# =============================================================================

class Stream(Generic[T]):
    """Wrapper for streaming responses that supports iteration."""

    def __init__(self, events: Iterator[Dict[str, Any]], parser: Callable[[dict], T],
                 close: Callable[[], None] = None, collector: Callable[[List[T]], Any] = None):
        self._events = events
        self._parser = parser
        self._close = close
        self._collector = collector or collector_for(parser)
        self._collected: List[T] = []
        self._iterator = self._stream()

    def _stream(self) -> Iterator[T]:
        try:
            for data in self._events:
                item = self._parser(data)
                self._collected.append(item)
                yield item
        finally:
            self.close()

    def __iter__(self) -> Iterator[T]:
        return self._iterator

    def __next__(self) -> T:
        return next(self._iterator)

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()

    def close(self):
        """Release the underlying connection."""
        if self._close is not None:
            close, self._close = self._close, None
            close()

    @property
    def chunks(self) -> List[T]:
        return list(self._collected)

    def collect(self):
        """Consume the entire stream and return the merged result."""
        for _ in self._iterator:
            pass
        if self._collector is None:
            return list(self._collected)
        return self._collector(self._collected)

    def text(self) -> Iterator[str]:
        """Yield only the text deltas of the stream."""
        for item in self._iterator:
            yield from _text_of(item)


class AsyncStream(Generic[T]):
    """Async counterpart of ``Stream``."""

    def __init__(self, events: AsyncIterator[Dict[str, Any]], parser: Callable[[dict], T],
                 close: Callable[[], Any] = None, collector: Callable[[List[T]], Any] = None):
        self._events = events
        self._parser = parser
        self._close = close
        self._collector = collector or collector_for(parser)
        self._collected: List[T] = []
        self._iterator = self._stream()

    async def _stream(self) -> AsyncIterator[T]:
        try:
            async for data in self._events:
                item = self._parser(data)
                self._collected.append(item)
                yield item
        finally:
            await self.aclose()

    def __aiter__(self) -> AsyncIterator[T]:
        return self._iterator

    async def __anext__(self) -> T:
        return await self._iterator.__anext__()

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        await self.aclose()

    async def aclose(self):
        if self._close is not None:
            close, self._close = self._close, None
            await close()

    @property
    def chunks(self) -> List[T]:
        return list(self._collected)

    async def collect(self):
        async for _ in self._iterator:
            pass
        if self._collector is None:
            return list(self._collected)
        return self._collector(self._collected)

    async def text(self) -> AsyncIterator[str]:
        async for item in self._iterator:
            for piece in _text_of(item):
                yield piece


def _text_of(item) -> Iterator[str]:
    if isinstance(item, ChatCompletionChunk):
        if item.choices and item.choices[0].delta and item.choices[0].delta.content:
            yield item.choices[0].delta.content
    elif isinstance(item, ResponseStreamEvent):
        if item.type == "response.output_text.delta" and item.delta:
            yield item.delta
