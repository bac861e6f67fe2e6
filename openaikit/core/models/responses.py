"""Models for the Responses API."""

from __future__ import annotations

from typing import Any, Dict, List

from .base import BaseModel, parse_list


class ResponseUsage(BaseModel):
    def __init__(self, input_tokens: int = 0, output_tokens: int = 0, total_tokens: int = 0,
                 input_tokens_details: dict = None, output_tokens_details: dict = None, **kwargs):
        super().__init__(**kwargs)
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.total_tokens = total_tokens
        self.input_tokens_details = input_tokens_details
        self.output_tokens_details = output_tokens_details


class ResponseOutputItem(BaseModel):
    """
    One element of ``Response.output``.

    Message items carry ``content`` as a list of ``{"type": "output_text", ...}``
    parts; tool call items (web search, function, MCP, code interpreter) keep
    their type-specific fields as plain attributes.
    """
    def __init__(self, type: str = None, id: str = None, status: str = None, role: str = None,
                 content: List[Dict[str, Any]] = None, **kwargs):
        super().__init__(**kwargs)
        self.type = type
        self.id = id
        self.status = status
        self.role = role
        self.content = content

    @property
    def text(self) -> str:
        if self.type != "message" or not self.content:
            return ""
        return "".join(part.get("text", "") for part in self.content if part.get("type") == "output_text")


class Response(BaseModel):
    """A model response object."""
    def __init__(
        self,
        id: str = None,
        object: str = "response",
        created_at: int = None,
        status: str = None,
        model: str = None,
        output: List[ResponseOutputItem] = None,
        usage: ResponseUsage = None,
        error: Dict[str, Any] = None,
        incomplete_details: Dict[str, Any] = None,
        metadata: Dict[str, str] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.id = id
        self.object = object
        self.created_at = created_at
        self.status = status
        self.model = model
        self.output = output or []
        self.usage = usage
        self.error = error
        self.incomplete_details = incomplete_details
        self.metadata = metadata

    @classmethod
    def from_dict(cls, data):
        if data is None:
            return None
        payload = dict(data)
        payload.pop("output_text", None)
        output = parse_list(ResponseOutputItem, payload.pop("output", None))
        usage = ResponseUsage.from_dict(payload.pop("usage", None))
        return cls(output=output, usage=usage, **payload)

    @property
    def output_text(self) -> str:
        """Concatenated text of every message output item."""
        return "".join(item.text for item in self.output)


class ResponseStreamEvent(BaseModel):
    """
    A server-sent event of a streamed response.

    ``type`` names the event (``response.output_text.delta``,
    ``response.completed``...); ``delta`` carries incremental text and
    ``response`` the snapshot attached to lifecycle events.
    """
    def __init__(self, type: str = None, sequence_number: int = None, delta: str = None,
                 response: Response = None, item: ResponseOutputItem = None, **kwargs):
        super().__init__(**kwargs)
        self.type = type
        self.sequence_number = sequence_number
        self.delta = delta
        self.response = response
        self.item = item

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        response = Response.from_dict(payload.pop("response", None))
        item = ResponseOutputItem.from_dict(payload.pop("item", None))
        return cls(response=response, item=item, **payload)
