"""
Higher-level helpers built on the chat and embeddings resources: message
builders, tool definitions and execution loops, conversation history, and a
few small utilities for images, token estimates and vector similarity.
"""

from __future__ import annotations

import base64
import copy
import inspect
import json
import logging
import math
import mimetypes
import typing
from typing import Any, Callable, Dict, Iterator, List, Optional, Sequence, Tuple, Union

from .models.chat import ChatCompletion, ToolCall

logger = logging.getLogger(__name__)


# =============================================================================
# Message Builder Helpers
# =============================================================================

class MessageBuilder:
    """Helper to build messages with various content types."""

    @staticmethod
    def text(role: str, content: Union[str, list], **kwargs) -> dict:
        msg = {"role": role, "content": content}
        msg.update(kwargs)
        return msg

    @staticmethod
    def system(content: str, **kwargs) -> dict:
        return MessageBuilder.text("system", content, **kwargs)

    @staticmethod
    def developer(content: str, **kwargs) -> dict:
        return MessageBuilder.text("developer", content, **kwargs)

    @staticmethod
    def user(content: Union[str, list], **kwargs) -> dict:
        return MessageBuilder.text("user", content, **kwargs)

    @staticmethod
    def assistant(content: str = None, tool_calls: list = None, **kwargs) -> dict:
        msg = {"role": "assistant", "content": content}
        if tool_calls:
            msg["tool_calls"] = [tc.to_dict() if hasattr(tc, "to_dict") else tc for tc in tool_calls]
        msg.update(kwargs)
        return msg

    @staticmethod
    def tool(content: str, tool_call_id: str, **kwargs) -> dict:
        return MessageBuilder.text("tool", content, tool_call_id=tool_call_id, **kwargs)

    # -- content parts --------------------------------------------------------

    @staticmethod
    def text_part(text: str) -> dict:
        return {"type": "text", "text": text}

    @staticmethod
    def image_part(url: str, detail: str = "auto") -> dict:
        return {"type": "image_url", "image_url": {"url": url, "detail": detail}}

    @staticmethod
    def image_url(text: str, image_url: str, detail: str = "auto") -> dict:
        return MessageBuilder.multi_image(text, [image_url], detail)

    @staticmethod
    def multi_image(text: str, image_urls: List[str], detail: str = "auto") -> dict:
        content = [MessageBuilder.text_part(text)]
        content.extend(MessageBuilder.image_part(url, detail) for url in image_urls)
        return MessageBuilder.user(content)

    @staticmethod
    def image_base64(text: str, base64_data: str, media_type: str = "image/png", detail: str = "auto") -> dict:
        return MessageBuilder.image_url(text, f"data:{media_type};base64,{base64_data}", detail)

    @staticmethod
    def image_file(text: str, file_path: str, detail: str = "auto") -> dict:
        return MessageBuilder.image_url(text, image_to_data_url(file_path), detail)

    @staticmethod
    def audio_input(text: str, audio_base64: str, audio_format: str = "wav") -> dict:
        return MessageBuilder.user([
            MessageBuilder.text_part(text),
            {"type": "input_audio", "input_audio": {"data": audio_base64, "format": audio_format}},
        ])

    @staticmethod
    def file_input(text: str, file_id: str = None, file_data: str = None, filename: str = None) -> dict:
        """Reference an uploaded file (``file_id``) or inline base64 ``file_data``."""
        file_spec = {k: v for k, v in (("file_id", file_id), ("file_data", file_data), ("filename", filename)) if v}
        return MessageBuilder.user([MessageBuilder.text_part(text), {"type": "file", "file": file_spec}])


# =============================================================================
# Tool / Function Definition Helpers
# =============================================================================

_JSON_TYPES = {
    str: "string",
    int: "integer",
    float: "number",
    bool: "boolean",
    list: "array",
    tuple: "array",
    dict: "object",
}


def _json_schema_for(annotation) -> dict:
    if annotation is inspect.Parameter.empty or annotation is Any:
        return {"type": "string"}
    origin = typing.get_origin(annotation)
    if origin is Union:
        args = [a for a in typing.get_args(annotation) if a is not type(None)]
        return _json_schema_for(args[0]) if len(args) == 1 else {"type": "string"}
    if origin is typing.Literal:
        return {"type": "string", "enum": [str(v) for v in typing.get_args(annotation)]}
    if origin in (list, tuple, List):
        args = typing.get_args(annotation)
        schema = {"type": "array"}
        if args:
            schema["items"] = _json_schema_for(args[0])
        return schema
    if origin in (dict, Dict):
        return {"type": "object"}
    return {"type": _JSON_TYPES.get(annotation, "string")}


class ToolDefinition:
    """Helper to define tools/functions for the API."""

    @staticmethod
    def function(name: str, description: str = "", parameters: dict = None, strict: bool = None) -> dict:
        func_def = {
            "type": "function",
            "function": {
                "name": name,
                "description": description,
                "parameters": parameters or {"type": "object", "properties": {}, "required": []},
            },
        }
        if strict is not None:
            func_def["function"]["strict"] = strict
        return func_def

    @staticmethod
    def function_from_callable(func: Callable, description: str = None, name: str = None) -> dict:
        """Create a tool definition from a Python function using its signature."""
        try:
            hints = typing.get_type_hints(func)
        except (NameError, TypeError):
            hints = {}
        properties = {}
        required = []
        for param_name, param in inspect.signature(func).parameters.items():
            if param_name in ("self", "cls") or param.kind in (param.VAR_POSITIONAL, param.VAR_KEYWORD):
                continue
            schema = _json_schema_for(hints.get(param_name, param.annotation))
            if param.default is inspect.Parameter.empty:
                required.append(param_name)
            else:
                schema["default"] = param.default
            properties[param_name] = schema

        doc = description or inspect.getdoc(func) or f"Function: {func.__name__}"
        return ToolDefinition.function(
            name=name or func.__name__,
            description=doc.strip(),
            parameters={"type": "object", "properties": properties, "required": required},
        )

    @staticmethod
    def response_format_json(name: str = "json_response", schema: dict = None, strict: bool = True) -> dict:
        """Create a ``json_schema`` response format specification."""
        json_schema = {"name": name, "strict": strict}
        if schema:
            json_schema["schema"] = schema
        return {"type": "json_schema", "json_schema": json_schema}

    @staticmethod
    def response_format_text() -> dict:
        return {"type": "text"}

    @staticmethod
    def response_format_json_object() -> dict:
        return {"type": "json_object"}


# =============================================================================
# Tool Executor
# =============================================================================

class ToolExecutor:
    """Manages tool/function registration and automatic execution loops."""

    def __init__(self):
        self._tools: Dict[str, Callable] = {}
        self._tool_definitions: List[dict] = []

    def register(self, func: Callable = None, *, name: str = None, description: str = None):
        """Register a function as a tool. Can be used as a decorator."""
        def decorator(f):
            tool_name = name or f.__name__
            self._tools[tool_name] = f
            self._tool_definitions.append(ToolDefinition.function_from_callable(f, description, tool_name))
            return f

        if func is not None:
            return decorator(func)
        return decorator

    @property
    def definitions(self) -> List[dict]:
        return list(self._tool_definitions)

    def __contains__(self, name: str) -> bool:
        return name in self._tools

    def execute(self, tool_name: str, arguments: Union[str, dict, None]) -> str:
        """
        Run a registered tool and return its result as a string.

        Failures are reported back as ``{"error": ...}`` JSON so the model can
        see them and recover in the next turn.
        """
        if tool_name not in self._tools:
            return json.dumps({"error": f"Unknown tool: {tool_name}"})

        if not arguments:
            arguments = {}
        elif isinstance(arguments, str):
            try:
                arguments = json.loads(arguments)
            except json.JSONDecodeError:
                return json.dumps({"error": f"Invalid JSON arguments: {arguments}"})
        if not isinstance(arguments, dict):
            return json.dumps({"error": "Tool arguments must be a JSON object"})

        try:
            result = self._tools[tool_name](**arguments)
        except Exception as e:
            logger.warning("Tool %s failed: %s", tool_name, e)
            return json.dumps({"error": str(e)})
        if isinstance(result, str):
            return result
        return json.dumps(result, default=str)

    def execute_tool_calls(self, tool_calls: List[ToolCall]) -> List[dict]:
        """Execute multiple tool calls and return tool messages."""
        return [
            MessageBuilder.tool(self.execute(tc.function.name, tc.function.arguments), tc.id)
            for tc in tool_calls
        ]

    def run_conversation(
        self,
        client,
        model: str,
        messages: List[dict],
        max_iterations: int = 10,
        in_place: bool = False,
        **kwargs,
    ) -> ChatCompletion:
        """
        Call the model, execute requested tools, feed results back, repeat.

        Stops when a response carries no tool calls or after ``max_iterations``
        round trips; the last response is returned either way. With
        ``in_place=True`` the given ``messages`` list receives the exchange.
        """
        history = messages if in_place else list(messages)
        kwargs.pop("tools", None)
        kwargs.pop("stream", None)

        response = None
        for _ in range(max_iterations):
            response = client.chat.completions.create(
                model=model,
                messages=history,
                tools=self._tool_definitions,
                **kwargs,
            )
            message = response.choices[0].message
            history.append(MessageBuilder.assistant(message.content, tool_calls=message.tool_calls))
            if not message.tool_calls:
                return response
            logger.debug("Executing %d tool call(s)", len(message.tool_calls))
            history.extend(self.execute_tool_calls(message.tool_calls))

        logger.warning("Tool loop stopped after %d iterations", max_iterations)
        return response


# =============================================================================
# Conversation Manager
# =============================================================================

class Conversation:
    """Manages a multi-turn conversation with history."""

    def __init__(
        self,
        client=None,
        model: str = None,
        system: str = None,
        tools: List[dict] = None,
        tool_executor: ToolExecutor = None,
        max_history: int = None,
        **default_params,
    ):
        self.client = client
        self.model = model
        self.tools = tools if tools is not None else (tool_executor.definitions if tool_executor else None)
        self.tool_executor = tool_executor
        self.max_history = max_history
        self.default_params = default_params
        self.messages: List[dict] = []
        self._total_tokens = 0

        if system:
            self.messages.append(MessageBuilder.system(system))

    def add_message(self, role: str, content: Union[str, list], **kwargs) -> "Conversation":
        self.messages.append(MessageBuilder.text(role, content, **kwargs))
        self._trim_history()
        return self

    def add_user(self, content: Union[str, list], **kwargs) -> "Conversation":
        return self.add_message("user", content, **kwargs)

    def add_assistant(self, content: str, **kwargs) -> "Conversation":
        return self.add_message("assistant", content, **kwargs)

    def add_system(self, content: str) -> "Conversation":
        return self.add_message("system", content)

    def add_image(self, text: str, image_url: str, detail: str = "auto") -> "Conversation":
        self.messages.append(MessageBuilder.image_url(text, image_url, detail))
        self._trim_history()
        return self

    def _trim_history(self):
        if self.max_history is None:
            return
        system_msgs = [m for m in self.messages if m.get("role") == "system"]
        non_system = [m for m in self.messages if m.get("role") != "system"]
        if len(non_system) > self.max_history:
            non_system = non_system[-self.max_history:]
            # A tool result cannot lead the history without its assistant call
            while non_system and non_system[0].get("role") == "tool":
                non_system.pop(0)
        self.messages = system_msgs + non_system

    def _record(self, completion: ChatCompletion):
        if not completion.choices:
            return
        message = completion.choices[0].message
        self.messages.append(MessageBuilder.assistant(message.content, tool_calls=message.tool_calls))
        if completion.usage:
            self._total_tokens += completion.usage.total_tokens or 0
        self._trim_history()

    def send(self, content: Union[str, list] = None, stream: bool = False, **kwargs):
        """Send a message; returns a ``ChatCompletion`` or, with ``stream=True``, a ``Stream``."""
        if content is not None:
            self.add_user(content)

        params = {**self.default_params, **kwargs}
        if self.tool_executor and self.tools and not stream:
            response = self.tool_executor.run_conversation(
                self.client, self.model, self.messages, in_place=True, **params
            )
            if response.usage:
                self._total_tokens += response.usage.total_tokens or 0
            self._trim_history()
            return response

        if self.tools:
            params["tools"] = self.tools
        response = self.client.chat.completions.create(
            model=self.model,
            messages=self.messages,
            stream=stream,
            **params,
        )
        if stream:
            return response
        self._record(response)
        return response

    def stream(self, content: Union[str, list] = None, **kwargs) -> Iterator[str]:
        """Yield text deltas; the full reply is added to history once the stream ends."""
        stream = self.send(content, stream=True, **kwargs)
        with stream:
            for piece in stream.text():
                yield piece
        self._record(stream.collect())

    def chat(self, content: str, **kwargs) -> str:
        """Simple chat that returns just the text content."""
        return self.send(content, stream=False, **kwargs).text

    @property
    def last_message(self) -> Optional[dict]:
        return self.messages[-1] if self.messages else None

    @property
    def total_tokens(self) -> int:
        return self._total_tokens

    @property
    def estimated_tokens(self) -> int:
        return count_messages_tokens_approx(self.messages)

    def clear(self, keep_system: bool = True):
        if keep_system:
            self.messages = [m for m in self.messages if m.get("role") == "system"]
        else:
            self.messages = []
        self._total_tokens = 0

    def fork(self) -> "Conversation":
        """Create an independent copy of this conversation."""
        new = Conversation(
            client=self.client,
            model=self.model,
            tools=self.tools,
            tool_executor=self.tool_executor,
            max_history=self.max_history,
            **self.default_params,
        )
        new.messages = copy.deepcopy(self.messages)
        new._total_tokens = self._total_tokens
        return new

    def to_dict(self) -> dict:
        return {"model": self.model, "messages": self.messages, "total_tokens": self._total_tokens}

    def save(self, filepath: str):
        with open(filepath, "w", encoding="utf-8") as f:
            json.dump(self.to_dict(), f, indent=2, default=str)

    @classmethod
    def load(cls, filepath: str, client=None, **kwargs) -> "Conversation":
        with open(filepath, encoding="utf-8") as f:
            data = json.load(f)
        conv = cls(client=client, model=kwargs.pop("model", None) or data.get("model"), **kwargs)
        conv.messages = data.get("messages", [])
        conv._total_tokens = data.get("total_tokens", 0)
        return conv


# =============================================================================
# Utility Functions
# =============================================================================

def count_tokens_approx(text: str) -> int:
    """Approximate token count (roughly 4 chars per token for English)."""
    if not text:
        return 0
    return max(1, len(text) // 4)


def count_messages_tokens_approx(messages: List[dict]) -> int:
    """Approximate token count for a list of messages."""
    total = 0
    for msg in messages:
        total += 4  # per-message overhead
        content = msg.get("content") or ""
        if isinstance(content, str):
            total += count_tokens_approx(content)
        else:
            for part in content:
                if part.get("type") == "text":
                    total += count_tokens_approx(part.get("text", ""))
                elif part.get("type") == "image_url":
                    total += 85
        if msg.get("name"):
            total += count_tokens_approx(msg["name"])
    return total + 2


def encode_image(image_path: str) -> str:
    """Encode an image file to base64."""
    with open(image_path, "rb") as f:
        return base64.b64encode(f.read()).decode("ascii")


def image_to_data_url(image_path: str) -> str:
    """Convert an image file to a data URL."""
    media_type = mimetypes.guess_type(image_path)[0] or "image/png"
    return f"data:{media_type};base64,{encode_image(image_path)}"


def format_tool_calls_for_display(tool_calls: List[ToolCall]) -> str:
    """Format tool calls for human-readable display."""
    lines = []
    for tc in tool_calls:
        try:
            args = json.loads(tc.function.arguments) if tc.function.arguments else {}
            args_str = json.dumps(args, indent=2)
        except json.JSONDecodeError:
            args_str = tc.function.arguments
        lines.append(f"{tc.function.name}({args_str})")
    return "\n".join(lines)


def cosine_similarity(a: Sequence[float], b: Sequence[float]) -> float:
    """Cosine similarity of two equal-length vectors; 0.0 if either is all zeros."""
    if len(a) != len(b):
        raise ValueError(f"Vectors differ in length: {len(a)} != {len(b)}")
    dot = sum(x * y for x, y in zip(a, b))
    norm_a = math.sqrt(sum(x * x for x in a))
    norm_b = math.sqrt(sum(y * y for y in b))
    if not norm_a or not norm_b:
        return 0.0
    return dot / (norm_a * norm_b)


def rank_by_similarity(
    query: Sequence[float],
    candidates: Sequence[Sequence[float]],
    top_k: int = None,
) -> List[Tuple[int, float]]:
    """``(index, score)`` pairs of ``candidates`` ordered from most to least similar."""
    scored = [(i, cosine_similarity(query, vector)) for i, vector in enumerate(candidates)]
    scored.sort(key=lambda pair: pair[1], reverse=True)
    return scored[:top_k] if top_k is not None else scored
