"""Tests for message builders, tool execution, conversations and vector helpers."""

from __future__ import annotations

import json
from typing import List, Literal, Optional

import pytest

from openaikit.core.helpers import (
    Conversation,
    MessageBuilder,
    ToolDefinition,
    ToolExecutor,
    cosine_similarity,
    count_messages_tokens_approx,
    count_tokens_approx,
    format_tool_calls_for_display,
    image_to_data_url,
    rank_by_similarity,
)
from openaikit.core.models import FunctionCall, ToolCall

from .conftest import FakeResponse, sse


def reply(content=None, tool_calls=None, total_tokens=10):
    message = {"role": "assistant", "content": content}
    if tool_calls:
        message["tool_calls"] = tool_calls
    return FakeResponse(json_body={
        "id": "chatcmpl-x",
        "created": 1,
        "model": "gpt-4o-mini",
        "choices": [{"index": 0, "message": message, "finish_reason": "tool_calls" if tool_calls else "stop"}],
        "usage": {"prompt_tokens": 1, "completion_tokens": 1, "total_tokens": total_tokens},
    })


def call(call_id, name, arguments):
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": json.dumps(arguments)}}


# ============================================================================
# Message builder
# ============================================================================

def test_basic_messages():
    assert MessageBuilder.system("be brief") == {"role": "system", "content": "be brief"}
    assert MessageBuilder.user("hi", name="ana") == {"role": "user", "content": "hi", "name": "ana"}
    assert MessageBuilder.tool("42", "call_1") == {"role": "tool", "content": "42", "tool_call_id": "call_1"}


def test_assistant_serializes_tool_call_objects():
    tool_call = ToolCall(id="call_1", function=FunctionCall(name="f", arguments="{}"))
    message = MessageBuilder.assistant(None, tool_calls=[tool_call])
    assert message["tool_calls"] == [{"id": "call_1", "type": "function", "function": {"name": "f", "arguments": "{}"}}]


def test_multimodal_messages(tmp_path):
    image = tmp_path / "dot.png"
    image.write_bytes(b"\x89PNG")
    message = MessageBuilder.image_file("describe", str(image), detail="high")
    assert message["content"][1]["image_url"]["url"].startswith("data:image/png;base64,")
    assert image_to_data_url(str(image)) == "data:image/png;base64,iVBORw=="

    audio = MessageBuilder.audio_input("transcribe", "UklGRg==", "wav")
    assert audio["content"][1] == {"type": "input_audio", "input_audio": {"data": "UklGRg==", "format": "wav"}}

    document = MessageBuilder.file_input("summarize", file_id="file-1")
    assert document["content"][1] == {"type": "file", "file": {"file_id": "file-1"}}


# ============================================================================
# Tool definitions
# ============================================================================

def get_weather(city: str, unit: Literal["c", "f"] = "c", days: Optional[int] = None,
                tags: List[str] = None) -> dict:
    """Current weather for a city."""
    return {"city": city, "unit": unit}


def test_function_from_callable_builds_schema():
    definition = ToolDefinition.function_from_callable(get_weather)
    function = definition["function"]
    assert definition["type"] == "function"
    assert function["name"] == "get_weather"
    assert function["description"] == "Current weather for a city."
    properties = function["parameters"]["properties"]
    assert properties["city"] == {"type": "string"}
    assert properties["unit"] == {"type": "string", "enum": ["c", "f"], "default": "c"}
    assert properties["days"] == {"type": "integer", "default": None}
    assert properties["tags"]["type"] == "array"
    assert properties["tags"]["items"] == {"type": "string"}
    assert function["parameters"]["required"] == ["city"]


def test_response_formats():
    assert ToolDefinition.response_format_json("answer", {"type": "object"}) == {
        "type": "json_schema",
        "json_schema": {"name": "answer", "strict": True, "schema": {"type": "object"}},
    }
    assert ToolDefinition.response_format_json_object() == {"type": "json_object"}
    assert ToolDefinition.function("noop", strict=True)["function"]["strict"] is True


# ============================================================================
# Tool executor
# ============================================================================

def make_executor():
    executor = ToolExecutor()

    @executor.register
    def add(a: int, b: int) -> int:
        """Add two numbers."""
        return a + b

    @executor.register(name="fail")
    def explode():
        raise RuntimeError("kaboom")

    return executor


def test_execute_reports_errors_as_json():
    executor = make_executor()
    assert "add" in executor
    assert executor.execute("add", '{"a": 2, "b": 3}') == "5"
    assert executor.execute("add", {"a": 1, "b": 1}) == "2"
    assert json.loads(executor.execute("missing", "{}"))["error"] == "Unknown tool: missing"
    assert "Invalid JSON" in json.loads(executor.execute("add", "{oops"))["error"]
    assert json.loads(executor.execute("add", "[1, 2]"))["error"] == "Tool arguments must be a JSON object"
    assert json.loads(executor.execute("fail", None))["error"] == "kaboom"
    assert [d["function"]["name"] for d in executor.definitions] == ["add", "fail"]


def test_run_conversation_executes_tools_until_done(client, session):
    session.queue(
        reply(tool_calls=[call("call_1", "add", {"a": 2, "b": 2})]),
        reply("2 + 2 is 4"),
    )
    executor = make_executor()
    messages = [MessageBuilder.user("what is 2 + 2?")]
    response = executor.run_conversation(client, "gpt-4o-mini", messages)

    assert response.text == "2 + 2 is 4"
    assert len(messages) == 1
    second = session.calls[1].json
    assert [m["role"] for m in second["messages"]] == ["user", "assistant", "tool"]
    assert second["messages"][2] == {"role": "tool", "content": "4", "tool_call_id": "call_1"}
    assert [t["function"]["name"] for t in second["tools"]] == ["add", "fail"]


def test_run_conversation_stops_at_max_iterations(client, session):
    session.queue(*[reply(tool_calls=[call(f"call_{i}", "add", {"a": i, "b": 0})]) for i in range(2)])
    messages = [MessageBuilder.user("loop")]
    response = make_executor().run_conversation(client, "m", messages, max_iterations=2, in_place=True)
    assert response.choices[0].finish_reason == "tool_calls"
    assert [m["role"] for m in messages] == ["user", "assistant", "tool", "assistant", "tool"]


def test_format_tool_calls_for_display():
    calls = [ToolCall.from_dict(call("c1", "add", {"a": 1})), ToolCall(function=FunctionCall(name="raw", arguments="{bad"))]
    assert format_tool_calls_for_display(calls) == 'add({\n  "a": 1\n})\nraw({bad)'


# ============================================================================
# Conversation
# ============================================================================

def test_send_records_history_and_usage(client, session):
    session.queue(reply("Hello!", total_tokens=12), reply("Fine.", total_tokens=8))
    conversation = client.conversation(model="gpt-4o-mini", system="be nice", temperature=0.3)
    assert conversation.chat("hi") == "Hello!"
    conversation.send("how are you?")

    assert [m["role"] for m in conversation.messages] == ["system", "user", "assistant", "user", "assistant"]
    assert conversation.total_tokens == 20
    assert session.last.json["temperature"] == 0.3
    assert conversation.last_message == {"role": "assistant", "content": "Fine."}


def test_stream_yields_text_and_records_reply(client, session):
    session.queue(FakeResponse(lines=sse(
        {"id": "c", "choices": [{"index": 0, "delta": {"role": "assistant", "content": "Hi "}}]},
        {"id": "c", "choices": [{"index": 0, "delta": {"content": "there"}, "finish_reason": "stop"}]},
    )))
    conversation = client.conversation(model="m")
    assert "".join(conversation.stream("hello")) == "Hi there"
    assert conversation.messages[-1] == {"role": "assistant", "content": "Hi there"}
    assert session.last.json["stream"] is True


def test_send_with_tool_executor_uses_tool_loop(client, session):
    session.queue(
        reply(tool_calls=[call("call_1", "add", {"a": 1, "b": 2})], total_tokens=5),
        reply("3", total_tokens=7),
    )
    conversation = client.conversation(model="m", tool_executor=make_executor())
    assert conversation.send("1 + 2?").text == "3"
    assert [m["role"] for m in conversation.messages] == ["user", "assistant", "tool", "assistant"]
    assert conversation.total_tokens == 7


def test_history_trimming_keeps_system_and_drops_orphan_tool_results():
    conversation = Conversation(model="m", system="sys", max_history=2)
    conversation.messages += [
        MessageBuilder.user("q"),
        MessageBuilder.assistant(None, tool_calls=[call("c1", "add", {})]),
        MessageBuilder.tool("1", "c1"),
    ]
    conversation.add_assistant("done")
    assert [m["role"] for m in conversation.messages] == ["system", "assistant"]


def test_clear_fork_save_and_load(tmp_path, client):
    conversation = Conversation(client=client, model="m", system="sys")
    conversation.add_user("one").add_assistant("two")

    fork = conversation.fork()
    fork.add_user("only in fork")
    assert len(conversation.messages) == 3
    assert len(fork.messages) == 4

    path = tmp_path / "chat.json"
    conversation.save(str(path))
    loaded = Conversation.load(str(path), client=client)
    assert loaded.model == "m"
    assert loaded.messages == conversation.messages

    conversation.clear()
    assert conversation.messages == [{"role": "system", "content": "sys"}]
    conversation.clear(keep_system=False)
    assert conversation.messages == []


def test_token_estimates():
    assert count_tokens_approx("") == 0
    assert count_tokens_approx("abc") == 1
    assert count_tokens_approx("a" * 40) == 10
    messages = [MessageBuilder.user("a" * 8), MessageBuilder.image_url("a" * 4, "https://x/y.png")]
    assert count_messages_tokens_approx(messages) == (4 + 2) + (4 + 1 + 85) + 2


# ============================================================================
# Vectors
# ============================================================================

def test_cosine_similarity():
    assert cosine_similarity([1, 0], [1, 0]) == pytest.approx(1.0)
    assert cosine_similarity([1, 0], [0, 1]) == pytest.approx(0.0)
    assert cosine_similarity([1, 1], [-1, -1]) == pytest.approx(-1.0)
    assert cosine_similarity([0, 0], [1, 1]) == 0.0
    with pytest.raises(ValueError):
        cosine_similarity([1, 2], [1])


def test_rank_by_similarity():
    ranking = rank_by_similarity([1, 0], [[0, 1], [1, 0.1], [1, 1]])
    assert [index for index, _ in ranking] == [1, 2, 0]
    assert rank_by_similarity([1, 0], [[0, 1], [1, 0]], top_k=1) == [(1, pytest.approx(1.0))]
