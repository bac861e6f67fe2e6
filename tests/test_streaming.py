"""Tests for SSE decoding, chunk merging and the stream wrappers."""

from __future__ import annotations

import json

import pytest

from openaikit.core.errors import APIError, DecodingError
from openaikit.core.models import ChatCompletionChunk, ResponseStreamEvent
from openaikit.core.streaming import Stream, iter_sse_events, merge_chunks

from .conftest import sse


def chunk(content=None, index=0, finish_reason=None, **delta):
    if content is not None:
        delta["content"] = content
    return {
        "id": "chatcmpl-42",
        "created": 1700000000,
        "model": "gpt-4o-mini",
        "choices": [{"index": index, "delta": delta, "finish_reason": finish_reason}],
    }


# ============================================================================
# SSE decoding
# ============================================================================

def test_data_lines_until_done():
    lines = [
        ": keep-alive",
        "event: message",
        "id: 1",
        "retry: 3000",
        'data: {"a": 1}',
        "",
        b'data: {"a": 2}',
        "data: [DONE]",
        'data: {"a": 3}',
    ]
    assert list(iter_sse_events(lines)) == [{"a": 1}, {"a": 2}]


def test_raw_json_lines_are_accepted():
    assert list(iter_sse_events(['{"a": 1}', '{"a": 2}'])) == [{"a": 1}, {"a": 2}]


def test_stream_without_done_ends_with_input():
    assert list(iter_sse_events(['data: {"a": 1}'])) == [{"a": 1}]


def test_malformed_event_raises_decoding_error():
    with pytest.raises(DecodingError):
        list(iter_sse_events(["data: {not json"]))
    with pytest.raises(DecodingError):
        list(iter_sse_events(["data: [1, 2]"]))


def test_error_payload_raises_api_error():
    lines = ['data: {"error": {"message": "overloaded", "type": "server_error", "code": 529}}']
    with pytest.raises(APIError) as excinfo:
        list(iter_sse_events(lines))
    assert excinfo.value.message == "overloaded"
    assert excinfo.value.code == "529"
    assert excinfo.value.is_retryable


def test_responses_error_event_raises_api_error():
    lines = ['data: {"type": "error", "message": "bad input", "code": "invalid_prompt"}']
    with pytest.raises(APIError, match="bad input"):
        list(iter_sse_events(lines))


# ============================================================================
# Chunk merging
# ============================================================================

def test_merge_text_chunks():
    chunks = [ChatCompletionChunk.from_dict(c) for c in (
        chunk(role="assistant"),
        chunk("Hel"),
        chunk("lo"),
        chunk(finish_reason="stop"),
    )]
    completion = merge_chunks(chunks)
    assert completion.id == "chatcmpl-42"
    assert completion.model == "gpt-4o-mini"
    assert completion.text == "Hello"
    assert completion.choices[0].message.role == "assistant"
    assert completion.choices[0].finish_reason == "stop"


def test_merge_assembles_tool_calls_by_index():
    chunks = [ChatCompletionChunk.from_dict(c) for c in (
        chunk(tool_calls=[{"index": 0, "id": "call_a", "type": "function",
                           "function": {"name": "get_weather", "arguments": ""}}]),
        chunk(tool_calls=[{"index": 1, "function": {"name": "get_time", "arguments": "{}"}}]),
        chunk(tool_calls=[{"index": 0, "function": {"arguments": "{\"city\": "}}]),
        chunk(tool_calls=[{"index": 0, "function": {"arguments": "\"Paris\"}"}}]),
        chunk(finish_reason="tool_calls"),
    )]
    message = merge_chunks(chunks).choices[0].message
    first, second = message.tool_calls
    assert first.id == "call_a"
    assert first.function.name == "get_weather"
    assert json.loads(first.function.arguments) == {"city": "Paris"}
    assert second.function.name == "get_time"
    assert second.id.startswith("call_")
    assert message.content is None


def test_merge_keeps_choices_apart_and_takes_usage():
    usage_chunk = {"id": "chatcmpl-42", "choices": [],
                   "usage": {"prompt_tokens": 3, "completion_tokens": 2, "total_tokens": 5}}
    chunks = [ChatCompletionChunk.from_dict(c) for c in (
        chunk("A", index=0), chunk("B", index=1), chunk("a", index=0), usage_chunk,
    )]
    completion = merge_chunks(chunks)
    assert [c.message.content for c in completion.choices] == ["Aa", "B"]
    assert completion.usage.total_tokens == 5


def test_merge_empty_list():
    assert merge_chunks([]).choices == []


# ============================================================================
# Stream wrapper
# ============================================================================

def make_stream(lines, parser=ChatCompletionChunk.from_dict):
    closed = []
    stream = Stream(iter_sse_events(lines), parser, close=lambda: closed.append(True))
    return stream, closed


def test_iteration_yields_typed_chunks_and_closes():
    stream, closed = make_stream(sse(chunk("a"), chunk("b")))
    contents = [c.choices[0].delta.content for c in stream]
    assert contents == ["a", "b"]
    assert closed == [True]
    assert len(stream.chunks) == 2


def test_collect_merges_into_a_completion():
    stream, closed = make_stream(sse(chunk("Hi"), chunk(" there", finish_reason="stop")))
    completion = stream.collect()
    assert completion.text == "Hi there"
    assert completion.choices[0].finish_reason == "stop"
    assert closed == [True]


def test_collect_after_partial_iteration_keeps_earlier_chunks():
    stream, _ = make_stream(sse(chunk("one "), chunk("two")))
    assert next(stream).choices[0].delta.content == "one "
    assert stream.collect().text == "one two"


def test_text_yields_only_content():
    stream, _ = make_stream(sse(chunk(role="assistant"), chunk("x"), chunk("y"), chunk(finish_reason="stop")))
    assert "".join(stream.text()) == "xy"


def test_context_manager_closes_unfinished_stream():
    stream, closed = make_stream(sse(chunk("a"), chunk("b")))
    with stream as s:
        next(s)
    assert closed == [True]
    stream.close()
    assert closed == [True]


def test_error_mid_stream_propagates_and_closes():
    lines = sse(chunk("a"))[:-1] + ['data: {"error": {"message": "boom"}}']
    stream, closed = make_stream(lines)
    with pytest.raises(APIError, match="boom"):
        list(stream)
    assert closed == [True]


def test_response_events_collect_final_response():
    events = [
        {"type": "response.created", "sequence_number": 0,
         "response": {"id": "resp_1", "status": "in_progress", "output": []}},
        {"type": "response.output_text.delta", "sequence_number": 1, "delta": "Hel"},
        {"type": "response.output_text.delta", "sequence_number": 2, "delta": "lo"},
        {"type": "response.completed", "sequence_number": 3,
         "response": {"id": "resp_1", "status": "completed", "output": [
             {"type": "message", "role": "assistant", "content": [{"type": "output_text", "text": "Hello"}]},
         ]}},
    ]
    stream, _ = make_stream(sse(*events), parser=ResponseStreamEvent.from_dict)
    final = stream.collect()
    assert final.status == "completed"
    assert final.output_text == "Hello"

    stream, _ = make_stream(sse(*events), parser=ResponseStreamEvent.from_dict)
    assert "".join(stream.text()) == "Hello"


def test_unknown_parser_collects_a_list():
    stream, _ = make_stream(sse({"a": 1}, {"a": 2}), parser=dict)
    assert stream.collect() == [{"a": 1}, {"a": 2}]
