"""
LessonDraftInitializer: one pending row per (task, learner), whatever the race.
"""
from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor

import pytest

from backend.learning.domain import SubmissionStatus, SubmissionType
from backend.learning.errors import ConflictError, NotFoundError
from backend.learning.repo_memory import InMemoryLearningRepo
from backend.learning.services.drafts import LessonDraftInitializer
from backend.learning.services.submission_store import SubmissionPayload, SubmissionStore
from utils.learning_fixtures import make_task, seed_lesson


def _seeded() -> InMemoryLearningRepo:
    repo = InMemoryLearningRepo()
    seed_lesson(
        repo,
        make_task(SubmissionType.TEXT_ONLY, task_id="t1", position=1),
        make_task(SubmissionType.MEDIA_ONLY, task_id="t2", position=2),
        make_task(SubmissionType.EITHER, task_id="t3", position=3, is_required=False),
    )
    return repo


def test_first_call_creates_pending_rows():
    repo = _seeded()
    summary = LessonDraftInitializer(repo).ensure_drafts("lesson-1", "u1", "course-1")
    assert summary.created == 3
    assert summary.existing == 0
    assert [s.task_id for s in summary.submissions] == ["t1", "t2", "t3"]
    assert all(s.status is SubmissionStatus.PENDING for s in summary.submissions)


def test_repeated_calls_are_idempotent_and_keep_existing_content():
    repo = _seeded()
    init = LessonDraftInitializer(repo)
    init.ensure_drafts("lesson-1", "u1")
    SubmissionStore(repo).create_or_replace(repo.get_task("t1"), "u1", SubmissionPayload(text="Done"))

    summary = init.ensure_drafts("lesson-1", "u1")

    assert summary.created == 0
    assert summary.existing == 3
    assert repo.get_submission("t1", "u1").status is SubmissionStatus.SUBMITTED
    assert len(repo.submissions) == 3


def test_concurrent_calls_create_exactly_one_row_per_task():
    repo = _seeded()
    init = LessonDraftInitializer(repo)

    with ThreadPoolExecutor(max_workers=8) as pool:
        summaries = list(pool.map(lambda _: init.ensure_drafts("lesson-1", "u1"), range(16)))

    assert sum(s.created for s in summaries) == 3
    assert len([k for k in repo.submissions if k[1] == "u1"]) == 3
    ids = {s.task_id: s.id for s in summaries[0].submissions}
    for summary in summaries[1:]:
        assert {s.task_id: s.id for s in summary.submissions} == ids


class _LosingRaceRepo(InMemoryLearningRepo):
    """Simulate a concurrent winner inserting between our read and write."""

    def insert_pending_submission(self, *, task, user_id, course_id, lesson_id):
        super().insert_pending_submission(task=task, user_id=user_id, course_id=course_id, lesson_id=lesson_id)
        raise ConflictError("submission_exists")


def test_uniqueness_conflict_counts_as_success():
    repo = _LosingRaceRepo()
    seed_lesson(repo, make_task(task_id="t1"))

    summary = LessonDraftInitializer(repo).ensure_drafts("lesson-1", "u1")

    assert summary.created == 0
    assert summary.existing == 1
    assert summary.submissions[0].task_id == "t1"


def test_unknown_lesson_is_not_found():
    with pytest.raises(NotFoundError) as exc:
        LessonDraftInitializer(InMemoryLearningRepo()).ensure_drafts("missing", "u1")
    assert exc.value.code == "lesson_not_found"
