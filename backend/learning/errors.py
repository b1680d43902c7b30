"""
Error taxonomy of the learning engine.

Each error carries a short machine-readable `code` (e.g. "text_required",
"nothing_to_clear") which the web adapter passes through as `detail`. The
classes also derive from the builtin the rest of the backend already maps to
HTTP statuses (ValueError -> 400, LookupError -> 404, PermissionError -> 401/403),
so generic handlers keep working.
"""
from __future__ import annotations

from typing import Sequence


class LearningError(Exception):
    code: str = "learning_error"

    def __init__(self, code: str | None = None) -> None:
        self.code = code or self.code
        super().__init__(self.code)


class ValidationError(LearningError, ValueError):
    """Candidate submission or input rejected; nothing was written."""

    code = "invalid_input"

    def __init__(
        self,
        code: str | None = None,
        *,
        missing: Sequence[str] = (),
        upload_errors: Sequence[object] = (),
    ) -> None:
        super().__init__(code)
        self.missing = tuple(missing)
        self.upload_errors = tuple(upload_errors)

    @property
    def reason(self) -> str:
        return self.code


class NotFoundError(LearningError, LookupError):
    code = "not_found"


class ConflictError(LearningError):
    """Uniqueness or state conflict; idempotent callers treat it as success."""

    code = "conflict"


class UnauthenticatedError(LearningError, PermissionError):
    """Caller identity is not established yet; clients should retry later."""

    code = "unauthenticated"
    retry = True


__all__ = [
    "ConflictError",
    "LearningError",
    "NotFoundError",
    "UnauthenticatedError",
    "ValidationError",
]
