"""Embedding request validation and response models."""

from __future__ import annotations

import base64
import binascii
import struct
from typing import Any, List, Optional, Union

from ..errors import DecodingError, EncodingError
from .base import BaseModel, Usage

EmbeddingInput = Union[str, List[str], List[int], List[List[int]]]
ENCODING_FORMATS = ("float", "base64")


def validate_embedding_input(value: Any) -> EmbeddingInput:
    """Check that ``input`` is a string, strings, a token array or token arrays."""
    if isinstance(value, str):
        return value
    if isinstance(value, (list, tuple)) and value:
        items = list(value)
        if all(isinstance(item, str) for item in items):
            return items
        if all(isinstance(item, int) and not isinstance(item, bool) for item in items):
            return items
        if all(
            isinstance(item, (list, tuple)) and all(isinstance(t, int) and not isinstance(t, bool) for t in item)
            for item in items
        ):
            return [list(item) for item in items]
    raise EncodingError(
        "Embedding input must be a string, a list of strings, a list of token ids "
        f"or a list of token id lists, got {value!r}"
    )


class EmbeddingVector(BaseModel):
    """
    Tagged union for the ``embedding`` field.

    The API returns a JSON array of floats when ``encoding_format="float"`` and
    a base64 string of packed little-endian float32 values for ``"base64"``.
    """
    def __init__(self, kind: str, values: List[float] = None, data: str = None):
        if kind not in ENCODING_FORMATS:
            raise DecodingError(f"Unknown embedding encoding {kind!r}")
        self.kind = kind
        self.values = values
        self.data = data

    @classmethod
    def from_floats(cls, values: List[float]) -> "EmbeddingVector":
        return cls("float", values=list(values))

    @classmethod
    def from_base64(cls, data: str) -> "EmbeddingVector":
        return cls("base64", data=data)

    @classmethod
    def decode(cls, value: Any) -> "EmbeddingVector":
        if isinstance(value, str):
            return cls.from_base64(value)
        if isinstance(value, list) and all(
            isinstance(v, (int, float)) and not isinstance(v, bool) for v in value
        ):
            return cls.from_floats([float(v) for v in value])
        raise DecodingError(
            f"Embedding must be an array of numbers or a base64 string, got {type(value).__name__}"
        )

    @classmethod
    def from_dict(cls, data):
        return cls.decode(data)

    @property
    def float_values(self) -> Optional[List[float]]:
        return self.values if self.kind == "float" else None

    @property
    def base64_value(self) -> Optional[str]:
        return self.data if self.kind == "base64" else None

    def to_floats(self) -> List[float]:
        """Float values for either variant; base64 payloads are unpacked."""
        if self.kind == "float":
            return list(self.values)
        try:
            raw = base64.b64decode(self.data, validate=True)
        except (binascii.Error, ValueError) as e:
            raise DecodingError(f"Invalid base64 embedding payload: {e}") from e
        if len(raw) % 4:
            raise DecodingError(f"Base64 embedding payload has {len(raw)} bytes, not a multiple of 4")
        return list(struct.unpack(f"<{len(raw) // 4}f", raw))

    def to_dict(self):
        return list(self.values) if self.kind == "float" else self.data

    def __len__(self):
        return len(self.to_floats())

    def __repr__(self):
        if self.kind == "float":
            return f"EmbeddingVector(float, dims={len(self.values)})"
        return f"EmbeddingVector(base64, bytes={len(self.data) * 3 // 4})"


class Embedding(BaseModel):
    """Single embedding result."""
    def __init__(self, object: str = "embedding", embedding: EmbeddingVector = None, index: int = 0, **kwargs):
        super().__init__(**kwargs)
        self.object = object
        self.embedding = embedding
        self.index = index

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        vector = EmbeddingVector.decode(payload.pop("embedding", None))
        return cls(embedding=vector, **payload)

    @property
    def vector(self) -> List[float]:
        return self.embedding.to_floats()


class EmbeddingResponse(BaseModel):
    """Embeddings response."""
    def __init__(self, object: str = "list", data: List[Embedding] = None, model: str = None,
                 usage: Usage = None, **kwargs):
        super().__init__(**kwargs)
        self.object = object
        self.data = data or []
        self.model = model
        self.usage = usage

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        items = [Embedding.from_dict(item) for item in payload.pop("data", None) or []]
        usage = Usage.from_dict(payload.pop("usage", None))
        return cls(data=items, usage=usage, **payload)

    @property
    def vectors(self) -> List[List[float]]:
        """Float vectors ordered by ``index``."""
        return [item.vector for item in sorted(self.data, key=lambda e: e.index)]
