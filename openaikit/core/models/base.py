"""Base model shared by every request and response type."""

from __future__ import annotations

import json
from typing import Any, Dict, Generic, List, Optional, Type, TypeVar

M = TypeVar("M", bound="BaseModel")


def serialize(value: Any) -> Any:
    """Convert models (and containers of models) into plain JSON values."""
    if isinstance(value, BaseModel):
        return value.to_dict()
    if isinstance(value, dict):
        return {k: serialize(v) for k, v in value.items() if v is not None}
    if isinstance(value, (list, tuple)):
        return [serialize(item) for item in value]
    return value


class BaseModel:
    """Base model with dict-like access and serialization."""

    def __init__(self, **kwargs):
        for key, value in kwargs.items():
            setattr(self, key, value)

    def __getitem__(self, key):
        return getattr(self, key)

    def __setitem__(self, key, value):
        setattr(self, key, value)

    def get(self, key, default=None):
        return getattr(self, key, default)

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return self.to_dict() == other.to_dict()

    __hash__ = None

    @classmethod
    def from_dict(cls: Type[M], data: Optional[Dict[str, Any]]) -> Optional[M]:
        if data is None:
            return None
        return cls(**data)

    def to_dict(self) -> dict:
        result = {}
        for key, value in self.__dict__.items():
            if key.startswith("_") or value is None:
                continue
            result[key] = serialize(value)
        return result

    def model_dump(self, exclude_none: bool = True) -> dict:
        d = self.to_dict()
        if exclude_none:
            return {k: v for k, v in d.items() if v is not None}
        return d

    def model_dump_json(self, indent: int = None) -> str:
        return json.dumps(self.model_dump(), indent=indent, default=str)

    def __repr__(self):
        fields = ", ".join(
            f"{k}={v!r}" for k, v in self.__dict__.items() if v is not None and not k.startswith("_")
        )
        return f"{self.__class__.__name__}({fields})"

    def __str__(self):
        return self.__repr__()


def parse_list(model: Type[M], items: Optional[List[dict]]) -> Optional[List[M]]:
    if items is None:
        return None
    return [model.from_dict(item) for item in items]


class Usage(BaseModel):
    """Token usage information."""
    def __init__(
        self,
        prompt_tokens: int = 0,
        completion_tokens: int = None,
        total_tokens: int = 0,
        prompt_tokens_details: dict = None,
        completion_tokens_details: dict = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.prompt_tokens = prompt_tokens
        self.completion_tokens = completion_tokens
        self.total_tokens = total_tokens
        self.prompt_tokens_details = prompt_tokens_details
        self.completion_tokens_details = completion_tokens_details


class DeletionResponse(BaseModel):
    """Result of a delete call."""
    def __init__(self, id: str = None, object: str = None, deleted: bool = False, **kwargs):
        super().__init__(**kwargs)
        self.id = id
        self.object = object
        self.deleted = deleted


class ListPage(BaseModel, Generic[M]):
    """
    One page of a cursor-paginated list endpoint.

    The cursor fields are kept exactly as the server sent them; ``next_cursor``
    is what should be passed as ``after`` to fetch the following page.
    """
    def __init__(
        self,
        object: str = "list",
        data: List[M] = None,
        first_id: str = None,
        last_id: str = None,
        has_more: bool = False,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.object = object
        self.data = data or []
        self.first_id = first_id
        self.last_id = last_id
        self.has_more = has_more

    @classmethod
    def parse(cls, data: dict, item_model: Type[M]) -> "ListPage[M]":
        payload = dict(data)
        items = payload.pop("data", None) or []
        return cls(data=[item_model.from_dict(item) for item in items], **payload)

    @property
    def next_cursor(self) -> Optional[str]:
        if self.last_id:
            return self.last_id
        if self.data:
            return getattr(self.data[-1], "id", None)
        return None

    def __iter__(self):
        return iter(self.data)
