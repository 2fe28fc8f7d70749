"""Domain error taxonomy.

Each error carries the HTTP status it maps to at the API boundary, so the
services stay transport-agnostic and main.py needs a single handler.
"""
from dataclasses import dataclass


@dataclass(frozen=True)
class Violation:
    field: str
    message: str

    def as_dict(self) -> dict:
        return {"field": self.field, "message": self.message}


class ChatError(Exception):
    status_code = 500
    detail = "internal error"

    def __init__(self, detail: str | None = None) -> None:
        super().__init__(detail or self.detail)
        if detail is not None:
            self.detail = detail


class ValidationError(ChatError):
    status_code = 422
    detail = "validation failed"

    def __init__(self, violations: list[Violation]) -> None:
        super().__init__("; ".join(f"{v.field}: {v.message}" for v in violations))
        self.violations = violations


class Conflict(ChatError):
    status_code = 409
    detail = "already exists"


class NotFound(ChatError):
    status_code = 404
    detail = "not found"


class Forbidden(ChatError):
    # the original client protocol answers ownership violations with 401
    status_code = 401
    detail = "not the author"


class UnknownAuthor(ChatError):
    status_code = 422
    detail = "author is not a registered participant"


class StorageError(ChatError):
    status_code = 500


class PartialFailure(ChatError):
    """A later step of a multi-step write failed after an earlier one committed."""

    status_code = 500


__all__ = [
    "Violation",
    "ChatError",
    "ValidationError",
    "Conflict",
    "NotFound",
    "Forbidden",
    "UnknownAuthor",
    "StorageError",
    "PartialFailure",
]
