"""Image and audio models."""

from __future__ import annotations

import base64
import time
from typing import Iterator, List

from ..errors import DecodingError
from .base import BaseModel, parse_list


# =============================================================================
# Images
# =============================================================================

class ImageObject(BaseModel):
    """Single image result: either a hosted URL or inline base64 data."""
    def __init__(self, url: str = None, b64_json: str = None, revised_prompt: str = None, **kwargs):
        super().__init__(**kwargs)
        self.url = url
        self.b64_json = b64_json
        self.revised_prompt = revised_prompt

    def decode(self) -> bytes:
        """Raw image bytes for ``b64_json`` results."""
        if self.b64_json is None:
            raise DecodingError("Image was returned as a URL; request response_format='b64_json' to get bytes")
        return base64.b64decode(self.b64_json)

    def save(self, filepath: str):
        with open(filepath, "wb") as f:
            f.write(self.decode())


class ImageUsage(BaseModel):
    """Token usage reported by token-billed image models."""
    def __init__(self, input_tokens: int = 0, output_tokens: int = 0, total_tokens: int = 0,
                 input_tokens_details: dict = None, **kwargs):
        super().__init__(**kwargs)
        self.input_tokens = input_tokens
        self.output_tokens = output_tokens
        self.total_tokens = total_tokens
        self.input_tokens_details = input_tokens_details


class ImageResponse(BaseModel):
    """Image generation response."""
    def __init__(self, created: int = None, data: List[ImageObject] = None, usage: ImageUsage = None, **kwargs):
        super().__init__(**kwargs)
        self.created = created or int(time.time())
        self.data = data or []
        self.usage = usage

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        images = parse_list(ImageObject, payload.pop("data", None))
        usage = ImageUsage.from_dict(payload.pop("usage", None))
        return cls(data=images, usage=usage, **payload)


# =============================================================================
# Audio
# =============================================================================

class TranscriptionWord(BaseModel):
    """Word-level timestamp."""
    def __init__(self, word: str = None, start: float = None, end: float = None, **kwargs):
        super().__init__(**kwargs)
        self.word = word
        self.start = start
        self.end = end


class TranscriptionSegment(BaseModel):
    """Segment-level timestamp with decoding statistics."""
    def __init__(
        self,
        id: int = None,
        start: float = None,
        end: float = None,
        text: str = None,
        avg_logprob: float = None,
        compression_ratio: float = None,
        no_speech_prob: float = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.id = id
        self.start = start
        self.end = end
        self.text = text
        self.avg_logprob = avg_logprob
        self.compression_ratio = compression_ratio
        self.no_speech_prob = no_speech_prob


class TranscriptionResponse(BaseModel):
    """Audio transcription result."""
    def __init__(
        self,
        text: str = None,
        language: str = None,
        duration: float = None,
        segments: List[TranscriptionSegment] = None,
        words: List[TranscriptionWord] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.text = text
        self.language = language
        self.duration = duration
        self.segments = segments
        self.words = words

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        segments = parse_list(TranscriptionSegment, payload.pop("segments", None))
        words = parse_list(TranscriptionWord, payload.pop("words", None))
        return cls(segments=segments, words=words, **payload)


class TranslationResponse(BaseModel):
    """Audio translation result."""
    def __init__(self, text: str = None, **kwargs):
        super().__init__(**kwargs)
        self.text = text


class SpeechResponse(BaseModel):
    """Text-to-speech response."""
    def __init__(self, content: bytes = None, content_type: str = None, **kwargs):
        super().__init__(**kwargs)
        self.content = content or b""
        self.content_type = content_type

    def write_to_file(self, filepath: str):
        with open(filepath, "wb") as f:
            f.write(self.content)

    def iter_bytes(self, chunk_size: int = 4096) -> Iterator[bytes]:
        for i in range(0, len(self.content), chunk_size):
            yield self.content[i:i + chunk_size]
