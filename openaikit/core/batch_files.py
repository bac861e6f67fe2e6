"""JSONL input/output files for the Batch API."""

from __future__ import annotations

import json
from typing import Any, Dict, Iterable, List, Union

from .errors import DecodingError, EncodingError
from .models.base import serialize
from .models.objects import BatchRequestLine, BatchResult


class BatchFileBuilder:
    """Builds batch input files and parses batch output files."""

    @staticmethod
    def build(requests: Iterable[Union[BatchRequestLine, Dict[str, Any]]]) -> bytes:
        """One compact JSON object per line, ready for ``files.upload(purpose="batch")``."""
        lines = []
        seen = set()
        for request in requests:
            if isinstance(request, dict):
                request = BatchRequestLine(**request)
            if not request.custom_id:
                raise EncodingError("Every batch request needs a custom_id")
            if request.custom_id in seen:
                raise EncodingError(f"Duplicate custom_id {request.custom_id!r}")
            if not request.url:
                raise EncodingError(f"Batch request {request.custom_id!r} has no url")
            seen.add(request.custom_id)
            try:
                lines.append(json.dumps(serialize(request), separators=(",", ":"), ensure_ascii=False))
            except (TypeError, ValueError) as e:
                raise EncodingError(f"Batch request {request.custom_id!r} is not JSON serializable: {e}") from e
        if not lines:
            raise EncodingError("A batch file needs at least one request")
        return "\n".join(lines).encode("utf-8")

    @staticmethod
    def parse_results(data: Union[bytes, str]) -> List[BatchResult]:
        """Parse an output or error file; blank lines are skipped."""
        if isinstance(data, (bytes, bytearray)):
            try:
                data = data.decode("utf-8")
            except UnicodeDecodeError as e:
                raise DecodingError(f"Batch results are not valid UTF-8: {e}") from e
        results = []
        for number, line in enumerate(data.splitlines(), 1):
            if not line.strip():
                continue
            try:
                payload = json.loads(line)
            except json.JSONDecodeError as e:
                raise DecodingError(f"Malformed batch result on line {number}: {e.msg}") from e
            if not isinstance(payload, dict):
                raise DecodingError(f"Batch result on line {number} is not a JSON object")
            results.append(BatchResult.from_dict(payload))
        return results

    @staticmethod
    def chat_requests(
        prompts: Iterable[str],
        model: str,
        system: str = None,
        id_prefix: str = "request",
        **params,
    ) -> List[BatchRequestLine]:
        """Wrap plain prompts as ``/v1/chat/completions`` batch lines."""
        lines = []
        for i, prompt in enumerate(prompts, 1):
            messages = []
            if system:
                messages.append({"role": "system", "content": system})
            messages.append({"role": "user", "content": prompt})
            lines.append(BatchRequestLine(
                custom_id=f"{id_prefix}-{i}",
                url="/v1/chat/completions",
                body={"model": model, "messages": messages, **params},
            ))
        return lines
