"""
Submission-type policy: one validator per mode, pure and side-effect free.
"""
from __future__ import annotations

import pytest

from backend.learning.domain import SubmissionType
from backend.learning.policy import SubmissionCandidate, SubmissionTypePolicy
from utils.learning_fixtures import make_task

POLICY = SubmissionTypePolicy()
FILE = object()


@pytest.mark.parametrize(
    "text,accepted",
    [("An answer", True), ("   \n\t ", False), ("", False), (None, False)],
)
def test_text_only_requires_non_blank_text(text, accepted):
    task = make_task(SubmissionType.TEXT_ONLY)
    decision = POLICY.can_accept(task, SubmissionCandidate(text=text))
    assert decision.accepted is accepted
    if not accepted:
        assert decision.reason == "text_required"
        assert decision.missing == ("text",)


def test_text_only_ignores_files():
    task = make_task(SubmissionType.TEXT_ONLY)
    decision = POLICY.can_accept(task, SubmissionCandidate(text=None, files=(FILE,)))
    assert not decision.accepted
    assert decision.reason == "text_required"


def test_media_only_requires_a_file_and_ignores_text():
    task = make_task(SubmissionType.MEDIA_ONLY)
    assert POLICY.can_accept(task, SubmissionCandidate(files=(FILE,))).accepted
    rejected = POLICY.can_accept(task, SubmissionCandidate(text="long essay"))
    assert not rejected.accepted
    assert rejected.reason == "files_required"
    assert rejected.missing == ("files",)


def test_both_accepts_text_and_file():
    task = make_task(SubmissionType.BOTH)
    assert POLICY.can_accept(task, SubmissionCandidate(text="Notes", files=(FILE,))).accepted


@pytest.mark.parametrize(
    "text,files,reason,missing",
    [
        ("Notes", (), "files_required", ("files",)),
        (None, (FILE,), "text_required", ("text",)),
        ("  ", (FILE,), "text_required", ("text",)),
        (None, (), "text_and_files_required", ("text", "files")),
    ],
)
def test_both_names_the_missing_half(text, files, reason, missing):
    task = make_task(SubmissionType.BOTH)
    decision = POLICY.can_accept(task, SubmissionCandidate(text=text, files=files))
    assert not decision.accepted
    assert decision.reason == reason
    assert decision.missing == missing


@pytest.mark.parametrize(
    "candidate",
    [
        SubmissionCandidate(allow_empty=True),
        SubmissionCandidate(text="I read it"),
        SubmissionCandidate(files=(FILE,)),
        SubmissionCandidate(text="and a photo", files=(FILE,), allow_empty=True),
    ],
)
def test_either_accepts_explicit_empty_or_any_content(candidate):
    task = make_task(SubmissionType.EITHER)
    decision = POLICY.can_accept(task, candidate)
    assert decision.accepted
    assert decision.missing == ()


def test_either_without_content_or_intent_is_incomplete_but_names_nothing_missing():
    task = make_task(SubmissionType.EITHER)
    decision = POLICY.can_accept(task, SubmissionCandidate(text="  "))
    assert not decision.accepted
    assert decision.reason == "empty_submission"
    assert decision.missing == ()
