"""
Submission-type policy: decides whether a candidate satisfies a task's mode.

Intent:
    One small validator per `SubmissionType`, selected through a dispatch
    table, so adding a mode means adding one function and one table entry.

Behavior:
    - text_only: accepted iff the text is non-blank after trimming; files ignored.
    - media_only: accepted iff at least one file; text ignored.
    - both: accepted iff non-blank text and at least one file; the decision
      names the missing half (or both halves).
    - either: accepted with any content, or with no content when the caller
      explicitly allows an empty completion.

Pure: no I/O, no clock, no repository access.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Callable, Optional, Sequence

from backend.learning.domain import SubmissionType, TaskDefinition


@dataclass(frozen=True)
class SubmissionCandidate:
    text: Optional[str] = None
    files: Sequence[object] = ()
    allow_empty: bool = False

    @property
    def has_text(self) -> bool:
        return bool((self.text or "").strip())

    @property
    def has_files(self) -> bool:
        return len(self.files) > 0


@dataclass(frozen=True)
class PolicyDecision:
    accepted: bool
    reason: Optional[str] = None
    missing: tuple[str, ...] = ()


_ACCEPT = PolicyDecision(accepted=True)


def _text_only(candidate: SubmissionCandidate) -> PolicyDecision:
    if candidate.has_text:
        return _ACCEPT
    return PolicyDecision(False, "text_required", ("text",))


def _media_only(candidate: SubmissionCandidate) -> PolicyDecision:
    if candidate.has_files:
        return _ACCEPT
    return PolicyDecision(False, "files_required", ("files",))


def _both(candidate: SubmissionCandidate) -> PolicyDecision:
    missing = []
    if not candidate.has_text:
        missing.append("text")
    if not candidate.has_files:
        missing.append("files")
    if not missing:
        return _ACCEPT
    reason = "text_and_files_required" if len(missing) == 2 else f"{missing[0]}_required"
    return PolicyDecision(False, reason, tuple(missing))


def _either(candidate: SubmissionCandidate) -> PolicyDecision:
    if candidate.has_text or candidate.has_files or candidate.allow_empty:
        return _ACCEPT
    # No content and no explicit empty completion: reject without naming a missing half.
    return PolicyDecision(False, "empty_submission")


_VALIDATORS: dict[SubmissionType, Callable[[SubmissionCandidate], PolicyDecision]] = {
    SubmissionType.TEXT_ONLY: _text_only,
    SubmissionType.MEDIA_ONLY: _media_only,
    SubmissionType.BOTH: _both,
    SubmissionType.EITHER: _either,
}


class SubmissionTypePolicy:
    def can_accept(self, task: TaskDefinition, candidate: SubmissionCandidate) -> PolicyDecision:
        validator = _VALIDATORS.get(SubmissionType(task.submission_type))
        if validator is None:  # pragma: no cover - enum and table are kept in sync
            raise ValueError("invalid_submission_type")
        return validator(candidate)


__all__ = ["PolicyDecision", "SubmissionCandidate", "SubmissionTypePolicy"]
