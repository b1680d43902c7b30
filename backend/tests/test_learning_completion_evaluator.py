"""
CompletionEvaluator: roll-up over required tasks, monotonic once achieved.
"""
from __future__ import annotations

import pytest

from backend.learning.domain import SubmissionStatus, SubmissionType
from backend.learning.repo_memory import InMemoryLearningRepo
from backend.learning.services.completion import CompletionEvaluator
from backend.learning.services.progress import LessonProgressTracker
from backend.learning.services.submission_store import SubmissionPayload, SubmissionStore
from utils.learning_fixtures import make_task, seed_lesson


def _submit(repo: InMemoryLearningRepo, task_id: str, user_id: str = "u1"):
    return SubmissionStore(repo).create_or_replace(repo.get_task(task_id), user_id, SubmissionPayload(allow_empty=True))


@pytest.fixture
def repo() -> InMemoryLearningRepo:
    repo = InMemoryLearningRepo()
    seed_lesson(
        repo,
        make_task(SubmissionType.EITHER, task_id="r1", position=1),
        make_task(SubmissionType.EITHER, task_id="r2", position=2, is_required=None),
        make_task(SubmissionType.EITHER, task_id="r3", position=3),
        make_task(SubmissionType.EITHER, task_id="opt", position=4, is_required=False),
    )
    return repo


def test_completes_only_when_all_required_tasks_are_satisfied(repo):
    evaluator = CompletionEvaluator(repo)
    _submit(repo, "opt")
    _submit(repo, "r1")
    _submit(repo, "r2")

    partial = evaluator.evaluate("lesson-1", "u1")
    assert partial.completed is False
    assert partial.required_tasks == 3
    assert partial.satisfied_tasks == 2

    _submit(repo, "r3")
    done = evaluator.evaluate("lesson-1", "u1", course_id="course-1")
    assert done.completed is True
    assert done.newly_completed is True
    snapshot = done.progress.assessment_data
    assert snapshot["source"] == "auto"
    assert snapshot["required_tasks"] == 3
    assert snapshot["total_tasks"] == 4
    assert snapshot["tasks_completed"] == 4
    assert snapshot["completed_task_ids"] == ["r1", "r2", "r3"]


def test_optional_task_alone_never_triggers_completion(repo):
    _submit(repo, "opt")
    assert CompletionEvaluator(repo).evaluate("lesson-1", "u1").completed is False
    assert repo.get_progress("lesson-1", "u1") is None


def test_unsatisfied_optional_task_never_blocks_completion(repo):
    for task_id in ("r1", "r2", "r3"):
        _submit(repo, task_id)
    assert CompletionEvaluator(repo).evaluate("lesson-1", "u1").completed is True
    assert repo.get_submission("opt", "u1") is None


def test_approved_satisfies_but_rejected_and_revision_requested_do_not(repo):
    evaluator = CompletionEvaluator(repo)
    r1 = _submit(repo, "r1")
    r2 = _submit(repo, "r2")
    r3 = _submit(repo, "r3")
    repo.review_submission(r1.id, status=SubmissionStatus.APPROVED, score=None, review_notes=None, reviewed_by="t")
    repo.review_submission(r2.id, status=SubmissionStatus.REJECTED, score=None, review_notes=None, reviewed_by="t")
    repo.review_submission(r3.id, status=SubmissionStatus.REVISION_REQUESTED, score=None, review_notes=None, reviewed_by="t")

    outcome = evaluator.evaluate("lesson-1", "u1")
    assert outcome.completed is False
    assert outcome.satisfied_tasks == 1

    repo.review_submission(r2.id, status=SubmissionStatus.APPROVED, score=None, review_notes=None, reviewed_by="t")
    _submit(repo, "r3")
    assert evaluator.evaluate("lesson-1", "u1").completed is True


def test_pending_drafts_do_not_satisfy(repo):
    from backend.learning.services.drafts import LessonDraftInitializer

    LessonDraftInitializer(repo).ensure_drafts("lesson-1", "u1")
    assert CompletionEvaluator(repo).evaluate("lesson-1", "u1").completed is False


def test_lesson_without_required_tasks_never_auto_completes():
    repo = InMemoryLearningRepo()
    seed_lesson(repo, make_task(task_id="only-optional", is_required=False))
    _submit(repo, "only-optional")

    outcome = CompletionEvaluator(repo).evaluate("lesson-1", "u1")
    assert outcome.completed is False
    assert outcome.required_tasks == 0

    rec, changed = LessonProgressTracker(repo).complete("lesson-1", "u1", {"source": "manual"})
    assert changed and rec.is_completed


def test_completion_is_monotonic_after_clear(repo):
    evaluator = CompletionEvaluator(repo)
    for task_id in ("r1", "r2", "r3"):
        _submit(repo, task_id)
    first = evaluator.evaluate("lesson-1", "u1")
    assert first.completed

    SubmissionStore(repo).clear(repo.get_task("r2"), "u1")
    after = evaluator.evaluate("lesson-1", "u1")

    assert after.completed is True
    assert after.skipped is True
    assert after.progress.completed_at == first.progress.completed_at
    assert repo.get_progress("lesson-1", "u1").is_completed is True


def test_evaluation_is_per_learner(repo):
    for task_id in ("r1", "r2", "r3"):
        _submit(repo, task_id, user_id="u1")
    _submit(repo, "r1", user_id="u2")
    evaluator = CompletionEvaluator(repo)
    assert evaluator.evaluate("lesson-1", "u1").completed is True
    assert evaluator.evaluate("lesson-1", "u2").completed is False
