"""
Resource namespaces (``client.chat.completions``, ``client.files``...).

Each method only describes its call as an ``APIRequest``; the transport it was
built with decides whether the result comes back directly (``Client``) or as
a coroutine (``AsyncClient``).
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Callable, Dict, List, Union

from .errors import BatchTimeoutError, DecodingError, EncodingError
from .models.base import DeletionResponse, ListPage, serialize
from .models.chat import (
    ChatCompletion,
    ChatCompletionChunk,
    decode_message_content,
    decode_stop,
    decode_tool_choice,
)
from .models.embeddings import ENCODING_FORMATS, EmbeddingResponse, validate_embedding_input
from .models.media import ImageResponse, SpeechResponse, TranscriptionResponse, TranslationResponse
from .models.objects import FILE_PURPOSES, Batch, FileObject, ModelInfo, ModelList, ModerationResponse
from .models.responses import Response, ResponseStreamEvent
from .pagination import apaginate, paginate
from .transport import APIRequest, FileInput, prepare_file

logger = logging.getLogger(__name__)

TEXT_AUDIO_FORMATS = ("text", "srt", "vtt")


def _build_body(required: dict, optional: dict, extra_body: dict = None, extra: dict = None) -> dict:
    body = dict(required)
    for key, value in optional.items():
        if value is not None:
            body[key] = value
    if extra_body:
        body.update(extra_body)
    if extra:
        body.update(extra)
    return body


def _encode(decoder: Callable, value: Any, field: str):
    try:
        return decoder(value)
    except DecodingError as e:
        raise EncodingError(f"Invalid {field}: {e.message}") from e


def _validate_messages(messages: List[Any]):
    if not isinstance(messages, (list, tuple)) or not messages:
        raise EncodingError("messages must be a non-empty list")
    for message in messages:
        if isinstance(message, dict):
            _encode(decode_message_content, serialize(message.get("content")), "message content")


def _plain_text(model_cls):
    def parse(content: bytes, content_type: str):
        return model_cls(text=content.decode("utf-8", errors="replace"))
    return parse


class APIResource:
    """Base class for all resources."""

    def __init__(self, transport):
        self._transport = transport

    def _request(self, method: str, path: str, **options):
        return self._transport.execute(APIRequest(method=method, path=path, **options))


class PaginatedResource(APIResource):
    """Adds ``iter_all`` / ``aiter_all`` on top of a cursor-based ``list``."""

    def list(self, **params):
        raise NotImplementedError

    def iter_all(self, *, after: str = None, **params):
        """Iterate over every item across pages (sync clients)."""
        return paginate(lambda cursor: self.list(after=cursor, **params), after)

    def aiter_all(self, *, after: str = None, **params):
        """Iterate over every item across pages (async clients)."""
        return apaginate(lambda cursor: self.list(after=cursor, **params), after)


# =============================================================================
# Chat
# =============================================================================

class Completions(PaginatedResource):
    """chat.completions resource."""

    def create(
        self,
        *,
        model: str,
        messages: List[Union[dict, Any]],
        audio: dict = None,
        frequency_penalty: float = None,
        function_call: Union[str, dict] = None,
        functions: List[dict] = None,
        logit_bias: Dict[str, float] = None,
        logprobs: bool = None,
        top_logprobs: int = None,
        max_tokens: int = None,
        max_completion_tokens: int = None,
        metadata: Dict[str, str] = None,
        modalities: List[str] = None,
        n: int = None,
        presence_penalty: float = None,
        reasoning_effort: str = None,
        response_format: dict = None,
        seed: int = None,
        service_tier: str = None,
        stop: Union[str, List[str]] = None,
        store: bool = None,
        stream: bool = False,
        stream_options: dict = None,
        temperature: float = None,
        top_p: float = None,
        tools: List[dict] = None,
        tool_choice: Union[str, dict] = None,
        parallel_tool_calls: bool = None,
        user: str = None,
        extra_body: dict = None,
        extra_headers: dict = None,
        timeout: float = None,
        **kwargs,
    ):
        """Create a chat completion; returns a ``Stream`` when ``stream=True``."""
        _validate_messages(messages)
        stop = _encode(decode_stop, stop, "stop")
        tool_choice = _encode(decode_tool_choice, tool_choice, "tool_choice")

        optional_params = {
            "audio": audio,
            "frequency_penalty": frequency_penalty,
            "function_call": function_call,
            "functions": functions,
            "logit_bias": logit_bias,
            "logprobs": logprobs,
            "top_logprobs": top_logprobs,
            "max_tokens": max_tokens,
            "max_completion_tokens": max_completion_tokens,
            "metadata": metadata,
            "modalities": modalities,
            "n": n,
            "presence_penalty": presence_penalty,
            "reasoning_effort": reasoning_effort,
            "response_format": response_format,
            "seed": seed,
            "service_tier": service_tier,
            "stop": stop,
            "store": store,
            "stream": True if stream else None,
            "stream_options": stream_options if stream else None,
            "temperature": temperature,
            "top_p": top_p,
            "tools": tools,
            "tool_choice": tool_choice,
            "parallel_tool_calls": parallel_tool_calls,
            "user": user,
        }
        body = _build_body({"model": model, "messages": list(messages)}, optional_params, extra_body, kwargs)
        return self._request(
            "POST",
            "chat/completions",
            body=body,
            headers=extra_headers,
            stream=stream,
            parser=ChatCompletionChunk.from_dict if stream else ChatCompletion.from_dict,
            timeout=timeout,
        )

    def retrieve(self, completion_id: str, *, timeout: float = None):
        """Retrieve a stored chat completion."""
        return self._request("GET", f"chat/completions/{completion_id}",
                             parser=ChatCompletion.from_dict, timeout=timeout)

    def list(self, *, after: str = None, before: str = None, limit: int = None, model: str = None,
             order: str = None, timeout: float = None):
        """List stored chat completions."""
        query = {"after": after, "before": before, "limit": limit, "model": model, "order": order}
        return self._request("GET", "chat/completions", query=query,
                             parser=lambda data: ListPage.parse(data, ChatCompletion), timeout=timeout)

    def delete(self, completion_id: str, *, timeout: float = None):
        return self._request("DELETE", f"chat/completions/{completion_id}",
                             parser=DeletionResponse.from_dict, timeout=timeout)


class Chat:
    """chat resource namespace."""

    def __init__(self, transport):
        self.completions = Completions(transport)


# =============================================================================
# Embeddings
# =============================================================================

class Embeddings(APIResource):
    """embeddings resource."""

    def create(
        self,
        *,
        input: Union[str, List[str], List[int], List[List[int]]],
        model: str,
        dimensions: int = None,
        encoding_format: str = None,
        user: str = None,
        extra_body: dict = None,
        extra_headers: dict = None,
        timeout: float = None,
        **kwargs,
    ):
        """Create embeddings for a string, strings or token arrays."""
        input = validate_embedding_input(input)
        if encoding_format is not None and encoding_format not in ENCODING_FORMATS:
            raise EncodingError(f"encoding_format must be one of {', '.join(ENCODING_FORMATS)}")
        optional_params = {"dimensions": dimensions, "encoding_format": encoding_format, "user": user}
        body = _build_body({"input": input, "model": model}, optional_params, extra_body, kwargs)
        return self._request("POST", "embeddings", body=body, headers=extra_headers,
                             parser=EmbeddingResponse.from_dict, timeout=timeout)


# =============================================================================
# Images
# =============================================================================

class Images(APIResource):
    """images resource."""

    def generate(
        self,
        *,
        prompt: str,
        model: str = None,
        background: str = None,
        moderation: str = None,
        n: int = None,
        output_compression: int = None,
        output_format: str = None,
        quality: str = None,
        response_format: str = None,
        size: str = None,
        style: str = None,
        user: str = None,
        extra_body: dict = None,
        extra_headers: dict = None,
        timeout: float = None,
        **kwargs,
    ):
        """Generate images from a text prompt."""
        optional_params = {
            "model": model,
            "background": background,
            "moderation": moderation,
            "n": n,
            "output_compression": output_compression,
            "output_format": output_format,
            "quality": quality,
            "response_format": response_format,
            "size": size,
            "style": style,
            "user": user,
        }
        body = _build_body({"prompt": prompt}, optional_params, extra_body, kwargs)
        return self._request("POST", "images/generations", body=body, headers=extra_headers,
                             parser=ImageResponse.from_dict, timeout=timeout)

    def edit(
        self,
        *,
        image: FileInput,
        prompt: str,
        mask: FileInput = None,
        model: str = None,
        n: int = None,
        size: str = None,
        response_format: str = None,
        user: str = None,
        extra_headers: dict = None,
        timeout: float = None,
    ):
        """Edit an image, optionally restricted to a transparent ``mask``."""
        files = {"image": prepare_file(image, "image.png")}
        if mask is not None:
            files["mask"] = prepare_file(mask, "mask.png")
        data = {
            "prompt": prompt,
            "model": model,
            "n": n,
            "size": size,
            "response_format": response_format,
            "user": user,
        }
        return self._request("POST", "images/edits", files=files, data=data, headers=extra_headers,
                             parser=ImageResponse.from_dict, timeout=timeout)

    def create_variation(
        self,
        *,
        image: FileInput,
        model: str = None,
        n: int = None,
        size: str = None,
        response_format: str = None,
        user: str = None,
        extra_headers: dict = None,
        timeout: float = None,
    ):
        files = {"image": prepare_file(image, "image.png")}
        data = {"model": model, "n": n, "size": size, "response_format": response_format, "user": user}
        return self._request("POST", "images/variations", files=files, data=data, headers=extra_headers,
                             parser=ImageResponse.from_dict, timeout=timeout)


# =============================================================================
# Audio
# =============================================================================

class AudioSpeech(APIResource):
    """audio.speech resource (text-to-speech)."""

    def create(
        self,
        *,
        input: str,
        model: str,
        voice: str,
        instructions: str = None,
        response_format: str = None,
        speed: float = None,
        extra_body: dict = None,
        extra_headers: dict = None,
        timeout: float = None,
    ):
        optional_params = {"instructions": instructions, "response_format": response_format, "speed": speed}
        body = _build_body({"input": input, "model": model, "voice": voice}, optional_params, extra_body)
        return self._request(
            "POST",
            "audio/speech",
            body=body,
            headers=extra_headers,
            raw=True,
            parser=lambda content, content_type: SpeechResponse(content=content, content_type=content_type),
            timeout=timeout,
        )


class AudioTranscriptions(APIResource):
    """audio.transcriptions resource."""

    def create(
        self,
        *,
        file: FileInput,
        model: str,
        language: str = None,
        prompt: str = None,
        response_format: str = None,
        temperature: float = None,
        timestamp_granularities: List[str] = None,
        include: List[str] = None,
        chunking_strategy: Union[str, dict] = None,
        extra_headers: dict = None,
        timeout: float = None,
    ):
        """
        Transcribe audio into the input language.

        ``text``, ``srt`` and ``vtt`` formats come back as plain text and are
        wrapped in a ``TranscriptionResponse`` whose ``text`` holds the body.
        """
        data = {
            "model": model,
            "language": language,
            "prompt": prompt,
            "response_format": response_format,
            "temperature": temperature,
            "timestamp_granularities[]": timestamp_granularities,
            "include[]": include,
            "chunking_strategy": chunking_strategy,
        }
        plain = response_format in TEXT_AUDIO_FORMATS
        return self._request(
            "POST",
            "audio/transcriptions",
            files={"file": prepare_file(file, "audio")},
            data=data,
            headers=extra_headers,
            raw=plain,
            parser=_plain_text(TranscriptionResponse) if plain else TranscriptionResponse.from_dict,
            timeout=timeout,
        )


class AudioTranslations(APIResource):
    """audio.translations resource (speech to English text)."""

    def create(
        self,
        *,
        file: FileInput,
        model: str,
        prompt: str = None,
        response_format: str = None,
        temperature: float = None,
        extra_headers: dict = None,
        timeout: float = None,
    ):
        data = {"model": model, "prompt": prompt, "response_format": response_format, "temperature": temperature}
        plain = response_format in TEXT_AUDIO_FORMATS
        return self._request(
            "POST",
            "audio/translations",
            files={"file": prepare_file(file, "audio")},
            data=data,
            headers=extra_headers,
            raw=plain,
            parser=_plain_text(TranslationResponse) if plain else TranslationResponse.from_dict,
            timeout=timeout,
        )


class Audio:
    """audio resource namespace."""

    def __init__(self, transport):
        self.speech = AudioSpeech(transport)
        self.transcriptions = AudioTranscriptions(transport)
        self.translations = AudioTranslations(transport)


# =============================================================================
# Files
# =============================================================================

class Files(PaginatedResource):
    """files resource."""

    def upload(self, *, file: FileInput, purpose: str, timeout: float = None):
        """Upload a file for use with batches, assistants, evals..."""
        if purpose not in FILE_PURPOSES:
            raise EncodingError(f"Unknown file purpose {purpose!r}; expected one of {', '.join(FILE_PURPOSES)}")
        return self._request("POST", "files", files={"file": prepare_file(file)}, data={"purpose": purpose},
                             parser=FileObject.from_dict, timeout=timeout)

    create = upload

    def list(self, *, purpose: str = None, limit: int = None, after: str = None, order: str = None,
             timeout: float = None):
        query = {"purpose": purpose, "limit": limit, "after": after, "order": order}
        return self._request("GET", "files", query=query,
                             parser=lambda data: ListPage.parse(data, FileObject), timeout=timeout)

    def retrieve(self, file_id: str, *, timeout: float = None):
        return self._request("GET", f"files/{file_id}", parser=FileObject.from_dict, timeout=timeout)

    def delete(self, file_id: str, *, timeout: float = None):
        return self._request("DELETE", f"files/{file_id}", parser=DeletionResponse.from_dict, timeout=timeout)

    def content(self, file_id: str, *, timeout: float = None):
        """Raw bytes of a stored file."""
        return self._request("GET", f"files/{file_id}/content", raw=True, timeout=timeout)


# =============================================================================
# Batches
# =============================================================================

class Batches(PaginatedResource):
    """batches resource."""

    def create(
        self,
        *,
        input_file_id: str,
        endpoint: str,
        completion_window: str = "24h",
        metadata: Dict[str, str] = None,
        timeout: float = None,
    ):
        body = _build_body(
            {"input_file_id": input_file_id, "endpoint": endpoint, "completion_window": completion_window},
            {"metadata": metadata},
        )
        return self._request("POST", "batches", body=body, parser=Batch.from_dict, timeout=timeout)

    def retrieve(self, batch_id: str, *, timeout: float = None):
        return self._request("GET", f"batches/{batch_id}", parser=Batch.from_dict, timeout=timeout)

    def cancel(self, batch_id: str, *, timeout: float = None):
        return self._request("POST", f"batches/{batch_id}/cancel", parser=Batch.from_dict, timeout=timeout)

    def list(self, *, after: str = None, limit: int = None, timeout: float = None):
        return self._request("GET", "batches", query={"after": after, "limit": limit},
                             parser=lambda data: ListPage.parse(data, Batch), timeout=timeout)

    def wait_for_completion(
        self,
        batch_id: str,
        *,
        check_interval: float = 30.0,
        timeout: float = 86400.0,
        on_update: Callable[[Batch], None] = None,
    ) -> Batch:
        """Poll a batch until it reaches a terminal status."""
        started = time.monotonic()
        while True:
            batch = self.retrieve(batch_id)
            if on_update is not None:
                on_update(batch)
            if batch.is_finished:
                return batch
            if time.monotonic() - started >= timeout:
                raise BatchTimeoutError(
                    f"Batch {batch_id} still {batch.status} after {timeout:.0f}s", batch=batch
                )
            logger.debug("Batch %s is %s (%.1f%%)", batch_id, batch.status, batch.completion_percentage)
            time.sleep(check_interval)


class AsyncBatches(Batches):
    """batches resource for ``AsyncClient``."""

    async def wait_for_completion(
        self,
        batch_id: str,
        *,
        check_interval: float = 30.0,
        timeout: float = 86400.0,
        on_update: Callable[[Batch], None] = None,
    ) -> Batch:
        started = time.monotonic()
        while True:
            batch = await self.retrieve(batch_id)
            if on_update is not None:
                on_update(batch)
            if batch.is_finished:
                return batch
            if time.monotonic() - started >= timeout:
                raise BatchTimeoutError(
                    f"Batch {batch_id} still {batch.status} after {timeout:.0f}s", batch=batch
                )
            logger.debug("Batch %s is %s (%.1f%%)", batch_id, batch.status, batch.completion_percentage)
            await asyncio.sleep(check_interval)


# =============================================================================
# Models & Moderations
# =============================================================================

class Models(APIResource):
    """Models resource."""

    def list(self, *, timeout: float = None):
        """List available models."""
        return self._request("GET", "models", parser=ModelList.from_dict, timeout=timeout)

    def retrieve(self, model: str, *, timeout: float = None):
        return self._request("GET", f"models/{model}", parser=ModelInfo.from_dict, timeout=timeout)

    def delete(self, model: str, *, timeout: float = None):
        """Delete a fine-tuned model."""
        return self._request("DELETE", f"models/{model}", parser=DeletionResponse.from_dict, timeout=timeout)


class Moderations(APIResource):
    """moderations resource."""

    def create(self, *, input: Union[str, List[str], List[dict]], model: str = None,
               extra_headers: dict = None, timeout: float = None):
        body = _build_body({"input": input}, {"model": model})
        return self._request("POST", "moderations", body=body, headers=extra_headers,
                             parser=ModerationResponse.from_dict, timeout=timeout)


# =============================================================================
# Responses
# =============================================================================

class Responses(APIResource):
    """responses resource."""

    def create(
        self,
        *,
        model: str,
        input: Union[str, List[dict]],
        instructions: str = None,
        tools: List[dict] = None,
        tool_choice: Union[str, dict] = None,
        temperature: float = None,
        top_p: float = None,
        max_output_tokens: int = None,
        max_tool_calls: int = None,
        text: dict = None,
        reasoning: dict = None,
        metadata: Dict[str, str] = None,
        previous_response_id: str = None,
        store: bool = None,
        background: bool = None,
        parallel_tool_calls: bool = None,
        service_tier: str = None,
        user: str = None,
        stream: bool = False,
        extra_body: dict = None,
        extra_headers: dict = None,
        timeout: float = None,
        **kwargs,
    ):
        """Create a model response; returns a stream of events when ``stream=True``."""
        optional_params = {
            "instructions": instructions,
            "tools": tools,
            "tool_choice": tool_choice,
            "temperature": temperature,
            "top_p": top_p,
            "max_output_tokens": max_output_tokens,
            "max_tool_calls": max_tool_calls,
            "text": text,
            "reasoning": reasoning,
            "metadata": metadata,
            "previous_response_id": previous_response_id,
            "store": store,
            "background": background,
            "parallel_tool_calls": parallel_tool_calls,
            "service_tier": service_tier,
            "user": user,
            "stream": True if stream else None,
        }
        body = _build_body({"model": model, "input": input}, optional_params, extra_body, kwargs)
        return self._request(
            "POST",
            "responses",
            body=body,
            headers=extra_headers,
            stream=stream,
            parser=ResponseStreamEvent.from_dict if stream else Response.from_dict,
            timeout=timeout,
        )

    def retrieve(self, response_id: str, *, timeout: float = None):
        return self._request("GET", f"responses/{response_id}", parser=Response.from_dict, timeout=timeout)

    def delete(self, response_id: str, *, timeout: float = None):
        return self._request("DELETE", f"responses/{response_id}",
                             parser=DeletionResponse.from_dict, timeout=timeout)

    def cancel(self, response_id: str, *, timeout: float = None):
        """Cancel a background response."""
        return self._request("POST", f"responses/{response_id}/cancel", parser=Response.from_dict, timeout=timeout)
