"""Tests for AsyncClient against an in-process httpx transport."""

from __future__ import annotations

import json

import httpx
import pytest

from openaikit import AsyncClient
from openaikit.core.errors import APIConnectionError, APITimeoutError, NotFoundError
from openaikit.core.retry import RetryConfig
from openaikit.core.streaming import AsyncStream

BASE_URL = "https://api.test/v1"


class Recorder:
    """httpx handler that replays queued responses and keeps the requests."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        return item

    @property
    def last(self) -> httpx.Request:
        return self.requests[-1]


@pytest.fixture
def async_sleeps(monkeypatch):
    recorded = []

    async def fake_sleep(delay):
        recorded.append(delay)

    monkeypatch.setattr("asyncio.sleep", fake_sleep)
    return recorded


def make_client(recorder, **kwargs):
    kwargs.setdefault("retry_config", RetryConfig(max_attempts=3, base_delay=0.5, jitter_factor=0.0))
    return AsyncClient(api_key="sk-async", base_url=BASE_URL, transport=httpx.MockTransport(recorder), **kwargs)


def sse_body(*events) -> bytes:
    lines = [f"data: {json.dumps(event)}\n\n" for event in events]
    lines.append("data: [DONE]\n\n")
    return "".join(lines).encode("utf-8")


# ============================================================================
# Requests
# ============================================================================

@pytest.mark.asyncio
async def test_chat_completion(async_sleeps):
    recorder = Recorder(httpx.Response(200, json={
        "id": "chatcmpl-1", "created": 1,
        "choices": [{"index": 0, "message": {"role": "assistant", "content": "pong"}, "finish_reason": "stop"}],
    }))
    async with make_client(recorder) as client:
        completion = await client.chat.completions.create(
            model="gpt-4o-mini", messages=[{"role": "user", "content": "ping"}],
        )

    assert completion.text == "pong"
    request = recorder.last
    assert request.method == "POST"
    assert str(request.url) == f"{BASE_URL}/chat/completions"
    assert request.headers["authorization"] == "Bearer sk-async"
    assert json.loads(request.content) == {"model": "gpt-4o-mini", "messages": [{"role": "user", "content": "ping"}]}


@pytest.mark.asyncio
async def test_quick_uses_configured_model(async_sleeps):
    recorder = Recorder(httpx.Response(200, json={"choices": [{"message": {"role": "assistant", "content": "ok"}}]}))
    async with make_client(recorder) as client:
        assert await client.quick("hi", system="terse") == "ok"
    body = json.loads(recorder.last.content)
    assert body["model"] == "gpt-4o-mini"
    assert [m["role"] for m in body["messages"]] == ["system", "user"]


@pytest.mark.asyncio
async def test_multipart_upload(async_sleeps):
    recorder = Recorder(httpx.Response(200, json={"id": "file-1", "purpose": "batch", "filename": "in.jsonl"}))
    async with make_client(recorder) as client:
        uploaded = await client.files.upload(file=("in.jsonl", b'{"a":1}'), purpose="batch")
    assert uploaded.id == "file-1"
    request = recorder.last
    assert request.headers["content-type"].startswith("multipart/form-data")
    assert b'name="purpose"' in request.content
    assert b'filename="in.jsonl"' in request.content


@pytest.mark.asyncio
async def test_raw_content(async_sleeps):
    recorder = Recorder(httpx.Response(200, content=b"jsonl bytes", headers={"content-type": "application/octet-stream"}))
    async with make_client(recorder) as client:
        assert await client.files.content("file-1") == b"jsonl bytes"


# ============================================================================
# Streaming
# ============================================================================

@pytest.mark.asyncio
async def test_streaming_chat(async_sleeps):
    body = sse_body(
        {"id": "c", "choices": [{"index": 0, "delta": {"role": "assistant", "content": "Hel"}}]},
        {"id": "c", "choices": [{"index": 0, "delta": {"content": "lo"}, "finish_reason": "stop"}]},
    )
    recorder = Recorder(httpx.Response(200, content=body, headers={"content-type": "text/event-stream"}))
    async with make_client(recorder) as client:
        stream = await client.chat.completions.create(
            model="m", messages=[{"role": "user", "content": "hi"}], stream=True,
        )
        assert isinstance(stream, AsyncStream)
        pieces = [piece async for piece in stream.text()]
        completion = await stream.collect()

    assert pieces == ["Hel", "lo"]
    assert completion.text == "Hello"
    assert recorder.last.headers["accept"] == "text/event-stream"


@pytest.mark.asyncio
async def test_streaming_responses_api(async_sleeps):
    body = sse_body(
        {"type": "response.output_text.delta", "sequence_number": 1, "delta": "Hi"},
        {"type": "response.completed", "sequence_number": 2,
         "response": {"id": "resp_1", "status": "completed", "output": []}},
    )
    recorder = Recorder(httpx.Response(200, content=body, headers={"content-type": "text/event-stream"}))
    async with make_client(recorder) as client:
        async with await client.responses.create(model="m", input="hi", stream=True) as stream:
            events = [event.type async for event in stream]
        assert events == ["response.output_text.delta", "response.completed"]


# ============================================================================
# Errors and retries
# ============================================================================

@pytest.mark.asyncio
async def test_server_errors_are_retried(async_sleeps):
    recorder = Recorder(
        httpx.Response(502, json={"error": {"message": "bad gateway"}}),
        httpx.Response(200, json={"data": [{"id": "gpt-4o"}]}),
    )
    async with make_client(recorder) as client:
        models = await client.models.list()
    assert models.ids == ["gpt-4o"]
    assert async_sleeps == [0.5]


@pytest.mark.asyncio
async def test_not_found_is_raised_immediately(async_sleeps):
    recorder = Recorder(httpx.Response(404, json={"error": {"message": "No such batch", "type": "invalid_request_error"}}))
    async with make_client(recorder) as client:
        with pytest.raises(NotFoundError) as excinfo:
            await client.batches.retrieve("batch_x")
    assert excinfo.value.requires_user_action
    assert async_sleeps == []


@pytest.mark.asyncio
async def test_connection_failures_are_mapped(async_sleeps):
    recorder = Recorder(*[httpx.ConnectError("refused") for _ in range(3)])
    async with make_client(recorder) as client:
        with pytest.raises(APIConnectionError):
            await client.models.list()
    assert len(recorder.requests) == 3


class BrokenBody(httpx.AsyncByteStream):
    """Body that yields ``chunks`` and then fails with ``error``."""

    def __init__(self, *chunks, error: Exception):
        self.chunks = chunks
        self.error = error

    async def __aiter__(self):
        for chunk in self.chunks:
            yield chunk
        raise self.error


@pytest.mark.asyncio
async def test_body_read_failures_are_mapped_and_retried(async_sleeps):
    recorder = Recorder(
        httpx.Response(200, stream=BrokenBody(b'{"da', error=httpx.ReadError("connection reset"))),
        httpx.Response(200, json={"data": [{"id": "gpt-4o"}]}),
    )
    async with make_client(recorder) as client:
        models = await client.models.list()
    assert [m.id for m in models.data] == ["gpt-4o"]
    assert len(recorder.requests) == 2
    assert async_sleeps == [0.5]


@pytest.mark.asyncio
async def test_body_read_timeout_is_mapped(async_sleeps):
    recorder = Recorder(*[
        httpx.Response(200, stream=BrokenBody(error=httpx.ReadTimeout("slow"))) for _ in range(3)
    ])
    async with make_client(recorder) as client:
        with pytest.raises(APITimeoutError):
            await client.models.list()
    assert len(recorder.requests) == 3


@pytest.mark.asyncio
async def test_stream_failures_are_mapped(async_sleeps):
    first = sse_body({"id": "c", "choices": [{"index": 0, "delta": {"content": "Hel"}}]})
    first = first[:first.index(b"data: [DONE]")]
    recorder = Recorder(httpx.Response(
        200, headers={"content-type": "text/event-stream"},
        stream=BrokenBody(first, error=httpx.RemoteProtocolError("peer closed connection")),
    ))
    pieces = []
    async with make_client(recorder) as client:
        stream = await client.chat.completions.create(
            model="m", messages=[{"role": "user", "content": "hi"}], stream=True,
        )
        with pytest.raises(APIConnectionError):
            async for piece in stream.text():
                pieces.append(piece)
    assert pieces == ["Hel"]


# ============================================================================
# Pagination and polling
# ============================================================================

@pytest.mark.asyncio
async def test_aiter_all(async_sleeps):
    recorder = Recorder(
        httpx.Response(200, json={"data": [{"id": "batch_1"}], "has_more": True, "last_id": "batch_1"}),
        httpx.Response(200, json={"data": [{"id": "batch_2"}], "has_more": False}),
    )
    async with make_client(recorder) as client:
        ids = [b.id async for b in client.batches.aiter_all(limit=1)]
    assert ids == ["batch_1", "batch_2"]
    assert recorder.requests[1].url.params["after"] == "batch_1"


@pytest.mark.asyncio
async def test_sync_iteration_is_refused(async_sleeps):
    async with make_client(Recorder()) as client:
        with pytest.raises(TypeError, match="aiter_all"):
            next(iter(client.files.iter_all()))


@pytest.mark.asyncio
async def test_async_wait_for_completion(async_sleeps):
    recorder = Recorder(
        httpx.Response(200, json={"id": "batch_1", "status": "in_progress"}),
        httpx.Response(200, json={"id": "batch_1", "status": "completed", "output_file_id": "file-out"}),
    )
    async with make_client(recorder) as client:
        batch = await client.batches.wait_for_completion("batch_1", check_interval=2)
    assert batch.output_file_id == "file-out"
    assert async_sleeps == [2]


@pytest.mark.asyncio
async def test_with_options_shares_http_client(async_sleeps):
    async with make_client(Recorder()) as client:
        copy = client.with_options(timeout=3.0)
        assert copy._transport.http_client is client._transport.http_client
        assert copy.timeout == 3.0
        assert not copy._transport._owns_client
