"""File, batch, moderation and model-listing models."""

from __future__ import annotations

import time
from typing import Any, Dict, List

from .base import BaseModel, parse_list

FILE_PURPOSES = ("assistants", "batch", "fine-tune", "vision", "user_data", "evals")

BATCH_STATUSES = (
    "validating",
    "failed",
    "in_progress",
    "finalizing",
    "completed",
    "expired",
    "cancelling",
    "cancelled",
)
FINISHED_STATUSES = ("completed", "failed", "expired", "cancelled")
PROCESSING_STATUSES = ("in_progress", "finalizing")


# =============================================================================
# Files
# =============================================================================

class FileObject(BaseModel):
    """An uploaded file."""
    def __init__(
        self,
        id: str = None,
        object: str = "file",
        bytes: int = 0,
        created_at: int = None,
        filename: str = None,
        purpose: str = None,
        status: str = None,
        expires_at: int = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.id = id
        self.object = object
        self.bytes = bytes
        self.created_at = created_at
        self.filename = filename
        self.purpose = purpose
        self.status = status
        self.expires_at = expires_at


# =============================================================================
# Batches
# =============================================================================

class RequestCounts(BaseModel):
    def __init__(self, total: int = 0, completed: int = 0, failed: int = 0, **kwargs):
        super().__init__(**kwargs)
        self.total = total
        self.completed = completed
        self.failed = failed


class BatchError(BaseModel):
    """One validation or execution error of a batch."""
    def __init__(self, code: str = None, message: str = None, param: str = None, line: int = None, **kwargs):
        super().__init__(**kwargs)
        self.code = code
        self.message = message
        self.param = param
        self.line = line


class BatchErrors(BaseModel):
    def __init__(self, object: str = "list", data: List[BatchError] = None, **kwargs):
        super().__init__(**kwargs)
        self.object = object
        self.data = data

    @classmethod
    def from_dict(cls, data):
        if data is None:
            return None
        payload = dict(data)
        errors = parse_list(BatchError, payload.pop("data", None))
        return cls(data=errors, **payload)


class Batch(BaseModel):
    """A batch job and its lifecycle timestamps."""
    def __init__(
        self,
        id: str = None,
        object: str = "batch",
        endpoint: str = None,
        errors: BatchErrors = None,
        input_file_id: str = None,
        completion_window: str = None,
        status: str = None,
        output_file_id: str = None,
        error_file_id: str = None,
        created_at: int = None,
        in_progress_at: int = None,
        expires_at: int = None,
        finalizing_at: int = None,
        completed_at: int = None,
        failed_at: int = None,
        expired_at: int = None,
        cancelling_at: int = None,
        cancelled_at: int = None,
        request_counts: RequestCounts = None,
        metadata: Dict[str, str] = None,
        **kwargs,
    ):
        super().__init__(**kwargs)
        self.id = id
        self.object = object
        self.endpoint = endpoint
        self.errors = errors
        self.input_file_id = input_file_id
        self.completion_window = completion_window
        self.status = status
        self.output_file_id = output_file_id
        self.error_file_id = error_file_id
        self.created_at = created_at
        self.in_progress_at = in_progress_at
        self.expires_at = expires_at
        self.finalizing_at = finalizing_at
        self.completed_at = completed_at
        self.failed_at = failed_at
        self.expired_at = expired_at
        self.cancelling_at = cancelling_at
        self.cancelled_at = cancelled_at
        self.request_counts = request_counts or RequestCounts()
        self.metadata = metadata

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        errors = BatchErrors.from_dict(payload.pop("errors", None))
        counts = RequestCounts.from_dict(payload.pop("request_counts", None))
        return cls(errors=errors, request_counts=counts, **payload)

    @property
    def is_finished(self) -> bool:
        return self.status in FINISHED_STATUSES

    @property
    def is_processing(self) -> bool:
        return self.status in PROCESSING_STATUSES

    @property
    def completion_percentage(self) -> float:
        counts = self.request_counts
        if not counts.total:
            return 0.0
        return (counts.completed + counts.failed) / counts.total * 100


class BatchRequestLine(BaseModel):
    """One line of a batch input file."""
    def __init__(self, custom_id: str = None, method: str = "POST", url: str = None,
                 body: Dict[str, Any] = None, **kwargs):
        super().__init__(**kwargs)
        self.custom_id = custom_id
        self.method = method
        self.url = url
        self.body = body or {}


class BatchResponseData(BaseModel):
    def __init__(self, status_code: int = None, request_id: str = None, body: Dict[str, Any] = None, **kwargs):
        super().__init__(**kwargs)
        self.status_code = status_code
        self.request_id = request_id
        self.body = body


class BatchResult(BaseModel):
    """One line of a batch output or error file."""
    def __init__(self, id: str = None, custom_id: str = None, response: BatchResponseData = None,
                 error: BatchError = None, **kwargs):
        super().__init__(**kwargs)
        self.id = id
        self.custom_id = custom_id
        self.response = response
        self.error = error

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        response = BatchResponseData.from_dict(payload.pop("response", None))
        error = BatchError.from_dict(payload.pop("error", None))
        return cls(response=response, error=error, **payload)

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.response is not None and self.response.status_code == 200


# =============================================================================
# Moderations
# =============================================================================

class ModerationResult(BaseModel):
    """Single moderation result."""
    def __init__(self, flagged: bool = False, categories: Dict[str, bool] = None,
                 category_scores: Dict[str, float] = None,
                 category_applied_input_types: Dict[str, List[str]] = None, **kwargs):
        super().__init__(**kwargs)
        self.flagged = flagged
        self.categories = categories or {}
        self.category_scores = category_scores or {}
        self.category_applied_input_types = category_applied_input_types

    @property
    def flagged_categories(self) -> List[str]:
        return sorted(name for name, hit in self.categories.items() if hit)


class ModerationResponse(BaseModel):
    """Moderation response."""
    def __init__(self, id: str = None, model: str = None, results: List[ModerationResult] = None, **kwargs):
        super().__init__(**kwargs)
        self.id = id
        self.model = model
        self.results = results or []

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        results = parse_list(ModerationResult, payload.pop("results", None))
        return cls(results=results, **payload)


# =============================================================================
# Models
# =============================================================================

class ModelInfo(BaseModel):
    """Model information."""
    def __init__(self, id: str = None, object: str = "model", created: int = None, owned_by: str = None, **kwargs):
        super().__init__(**kwargs)
        self.id = id
        self.object = object
        self.created = created or int(time.time())
        self.owned_by = owned_by or "organization"


class ModelList(BaseModel):
    """List of models."""
    def __init__(self, object: str = "list", data: List[ModelInfo] = None, **kwargs):
        super().__init__(**kwargs)
        self.object = object
        self.data = data or []

    @classmethod
    def from_dict(cls, data):
        payload = dict(data)
        models = parse_list(ModelInfo, payload.pop("data", None))
        return cls(data=models, **payload)

    @property
    def ids(self) -> List[str]:
        return [m.id for m in self.data]
