"""Chat completion request and response models."""

from __future__ import annotations

import time
import uuid
from typing import Any, Dict, List, Optional, Union

from ..errors import DecodingError
from .base import BaseModel, Usage, parse_list

CONTENT_PART_TYPES = ("text", "image_url", "input_audio", "refusal", "file")
TOOL_CHOICE_MODES = ("none", "auto", "required")


# =============================================================================
# Message Content
# =============================================================================

class ImageURL(BaseModel):
    """Image reference inside a content part."""
    def __init__(self, url: str = None, detail: str = None, **kwargs):
        super().__init__(**kwargs)
        self.url = url
        self.detail = detail


class ContentPart(BaseModel):
    """One element of a multipart message content array."""
    def __init__(
        self,
        type: str = "text",
        text: str = None,
        image_url: ImageURL = None,
        input_audio: dict = None,
        refusal: str = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.type = type
        self.text = text
        self.image_url = image_url
        self.input_audio = input_audio
        self.refusal = refusal

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ContentPart":
        if not isinstance(data, dict):
            raise DecodingError(f"Content part must be an object, got {type(data).__name__}")
        part_type = data.get("type")
        if part_type not in CONTENT_PART_TYPES:
            raise DecodingError(
                f"Unknown content part type {part_type!r}; expected one of {', '.join(CONTENT_PART_TYPES)}"
            )
        payload = dict(data)
        image_url = payload.pop("image_url", None)
        if isinstance(image_url, str):
            image_url = {"url": image_url}
        return cls(image_url=ImageURL.from_dict(image_url), **payload)

    @classmethod
    def from_text(cls, text: str) -> "ContentPart":
        return cls(type="text", text=text)

    @classmethod
    def from_image_url(cls, url: str, detail: str = None) -> "ContentPart":
        return cls(type="image_url", image_url=ImageURL(url=url, detail=detail))


MessageContent = Union[str, List[ContentPart], None]


def decode_message_content(value: Any) -> MessageContent:
    """Decode ``content``: a plain string, an array of parts, or null."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, list):
        return [ContentPart.from_dict(part) for part in value]
    raise DecodingError(
        f"Message content must be a string or an array of content parts, got {type(value).__name__}"
    )


def decode_stop(value: Any) -> Union[str, List[str], None]:
    """Decode a stop sequence: a single string or a list of strings."""
    if value is None or isinstance(value, str):
        return value
    if isinstance(value, list) and all(isinstance(item, str) for item in value):
        return list(value)
    raise DecodingError(f"Stop must be a string or a list of strings, got {value!r}")


class ToolChoice:
    """Constructors for the ``tool_choice`` request parameter."""

    NONE = "none"
    AUTO = "auto"
    REQUIRED = "required"

    @staticmethod
    def function(name: str) -> dict:
        return {"type": "function", "function": {"name": name}}


def decode_tool_choice(value: Any) -> Union[str, dict, None]:
    if value is None:
        return None
    if isinstance(value, str):
        if value in TOOL_CHOICE_MODES:
            return value
        raise DecodingError(f"Unknown tool choice {value!r}")
    if isinstance(value, dict) and value.get("type") == "function":
        name = (value.get("function") or {}).get("name")
        if isinstance(name, str):
            return ToolChoice.function(name)
    raise DecodingError(f"Tool choice must be a mode string or a function selector, got {value!r}")


# =============================================================================
# Tool Calls
# =============================================================================

class FunctionCall(BaseModel):
    """Represents a function call."""
    def __init__(self, name: str = None, arguments: str = None, **kwargs):
        super().__init__(**kwargs)
        self.name = name
        self.arguments = arguments


class ToolCall(BaseModel):
    """Represents a tool call."""
    def __init__(self, id: str = None, type: str = "function", function: FunctionCall = None,
                 index: int = None, **kwargs):
        super().__init__(**kwargs)
        self.id = id
        self.type = type
        self.function = function
        self.index = index

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ToolCall"]:
        if data is None:
            return None
        payload = dict(data)
        function = FunctionCall.from_dict(payload.pop("function", None))
        return cls(function=function, **payload)


# =============================================================================
# Logprobs
# =============================================================================

class TopLogprob(BaseModel):
    """Top logprob entry."""
    def __init__(self, token: str = None, logprob: float = None, bytes: list = None, **kwargs):
        super().__init__(**kwargs)
        self.token = token
        self.logprob = logprob
        self.bytes = bytes


class TokenLogprob(BaseModel):
    """Token logprob entry."""
    def __init__(self, token: str = None, logprob: float = None, bytes: list = None,
                 top_logprobs: List[TopLogprob] = None, **kwargs):
        super().__init__(**kwargs)
        self.token = token
        self.logprob = logprob
        self.bytes = bytes
        self.top_logprobs = top_logprobs

    @classmethod
    def from_dict(cls, data):
        if data is None:
            return None
        payload = dict(data)
        top = parse_list(TopLogprob, payload.pop("top_logprobs", None))
        return cls(top_logprobs=top, **payload)


class ChoiceLogprobs(BaseModel):
    """Logprobs for a choice."""
    def __init__(self, content: List[TokenLogprob] = None, refusal: List[TokenLogprob] = None, **kwargs):
        super().__init__(**kwargs)
        self.content = content
        self.refusal = refusal

    @classmethod
    def from_dict(cls, data):
        if not data:
            return None
        payload = dict(data)
        content = parse_list(TokenLogprob, payload.pop("content", None))
        refusal = parse_list(TokenLogprob, payload.pop("refusal", None))
        return cls(content=content, refusal=refusal, **payload)


# =============================================================================
# Messages
# =============================================================================

class ChatMessage(BaseModel):
    """Represents a chat message."""
    def __init__(
        self,
        role: str = None,
        content: MessageContent = None,
        name: str = None,
        function_call: FunctionCall = None,
        tool_calls: List[ToolCall] = None,
        tool_call_id: str = None,
        refusal: str = None,
        audio: dict = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.role = role
        self.content = content
        self.name = name
        self.function_call = function_call
        self.tool_calls = tool_calls
        self.tool_call_id = tool_call_id
        self.refusal = refusal
        self.audio = audio

    @classmethod
    def from_dict(cls, data: Optional[Dict[str, Any]]) -> Optional["ChatMessage"]:
        if data is None:
            return None
        payload = dict(data)
        content = decode_message_content(payload.pop("content", None))
        tool_calls = parse_list(ToolCall, payload.pop("tool_calls", None))
        function_call = FunctionCall.from_dict(payload.pop("function_call", None))
        return cls(content=content, tool_calls=tool_calls, function_call=function_call, **payload)

    @property
    def text(self) -> str:
        """Content flattened to text; image and audio parts are skipped."""
        if self.content is None:
            return ""
        if isinstance(self.content, str):
            return self.content
        return "".join(part.text or "" for part in self.content if part.type == "text")


class DeltaMessage(BaseModel):
    """Represents a streaming delta message."""
    def __init__(
        self,
        role: str = None,
        content: str = None,
        function_call: FunctionCall = None,
        tool_calls: List[ToolCall] = None,
        refusal: str = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.role = role
        self.content = content
        self.function_call = function_call
        self.tool_calls = tool_calls
        self.refusal = refusal

    @classmethod
    def from_dict(cls, data):
        if data is None:
            return None
        payload = dict(data)
        tool_calls = parse_list(ToolCall, payload.pop("tool_calls", None))
        function_call = FunctionCall.from_dict(payload.pop("function_call", None))
        return cls(tool_calls=tool_calls, function_call=function_call, **payload)


# =============================================================================
# Completions
# =============================================================================

class Choice(BaseModel):
    """Represents a completion choice."""
    def __init__(
        self,
        index: int = 0,
        message: ChatMessage = None,
        finish_reason: str = None,
        logprobs: ChoiceLogprobs = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.index = index
        self.message = message
        self.finish_reason = finish_reason
        self.logprobs = logprobs

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        message = ChatMessage.from_dict(payload.pop("message", None) or {})
        logprobs = ChoiceLogprobs.from_dict(payload.pop("logprobs", None))
        return cls(message=message, logprobs=logprobs, **payload)


class StreamChoice(BaseModel):
    """Represents a streaming choice."""
    def __init__(
        self,
        index: int = 0,
        delta: DeltaMessage = None,
        finish_reason: str = None,
        logprobs: ChoiceLogprobs = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.index = index
        self.delta = delta
        self.finish_reason = finish_reason
        self.logprobs = logprobs

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        delta = DeltaMessage.from_dict(payload.pop("delta", None) or {})
        logprobs = ChoiceLogprobs.from_dict(payload.pop("logprobs", None))
        return cls(delta=delta, logprobs=logprobs, **payload)


class ChatCompletion(BaseModel):
    """Represents a chat completion response."""
    def __init__(
        self,
        id: str = None,
        object: str = "chat.completion",
        created: int = None,
        model: str = None,
        choices: List[Choice] = None,
        usage: Usage = None,
        system_fingerprint: str = None,
        service_tier: str = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.id = id or f"chatcmpl-{uuid.uuid4().hex[:29]}"
        self.object = object
        self.created = created or int(time.time())
        self.model = model
        self.choices = choices or []
        self.usage = usage
        self.system_fingerprint = system_fingerprint
        self.service_tier = service_tier

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        choices = [Choice.from_dict(c) for c in payload.pop("choices", None) or []]
        usage = Usage.from_dict(payload.pop("usage", None))
        return cls(choices=choices, usage=usage, **payload)

    @property
    def text(self) -> str:
        """Text of the first choice, or an empty string."""
        if not self.choices or self.choices[0].message is None:
            return ""
        return self.choices[0].message.text


class ChatCompletionChunk(BaseModel):
    """Represents a streaming chat completion chunk."""
    def __init__(
        self,
        id: str = None,
        object: str = "chat.completion.chunk",
        created: int = None,
        model: str = None,
        choices: List[StreamChoice] = None,
        usage: Usage = None,
        system_fingerprint: str = None,
        service_tier: str = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.id = id
        self.object = object
        self.created = created
        self.model = model
        self.choices = choices or []
        self.usage = usage
        self.system_fingerprint = system_fingerprint
        self.service_tier = service_tier

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        choices = [StreamChoice.from_dict(c) for c in payload.pop("choices", None) or []]
        usage = Usage.from_dict(payload.pop("usage", None))
        return cls(choices=choices, usage=usage, **payload)
