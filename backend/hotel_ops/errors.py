from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional


@dataclass
class AppError(Exception):
    status_code: int
    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
    retryable: Optional[bool] = None

    def __str__(self) -> str:
        return f"{self.code}: {self.message}"

    def to_dict(self) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "code": self.code,
            "message": self.message,
            "details": self.details or {},
        }
        if self.retryable is not None:
            payload["retryable"] = self.retryable
        return {"error": payload}


class NotFoundError(AppError):
    """Raised when an operation targets an id absent from its store."""

    def __init__(self, entity: str, record_id: Any) -> None:
        label = entity.replace("_", " ").capitalize()
        super().__init__(
            404,
            f"{entity}_not_found",
            f"{label} not found",
            {"id": record_id},
        )
        self.entity = entity
        self.record_id = record_id


def validation_error(exc: Exception) -> AppError:
    """Wrap a pydantic ValidationError into the common AppError shape."""

    errors = exc.errors(include_url=False, include_context=False) if hasattr(exc, "errors") else [str(exc)]
    return AppError(422, "validation_error", "Request validation failed", {"errors": errors})

