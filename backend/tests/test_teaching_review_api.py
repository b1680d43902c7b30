"""
Teaching API: reviewing learner submissions.
"""
from __future__ import annotations

import pytest

from backend.learning.domain import SubmissionType
from utils.api import ORIGIN, client, login, repo
from utils.learning_fixtures import make_task, seed_lesson

pytestmark = pytest.mark.anyio("asyncio")


async def _submitted(c, task_id: str = "essay") -> str:
    res = await c.post(f"/api/learning/tasks/{task_id}/submit", json={"submission_text": "Answer"}, headers=ORIGIN)
    assert res.status_code == 200
    return res.json()["submission"]["id"]


@pytest.mark.anyio
async def test_teacher_approves_with_score():
    seed_lesson(repo(), make_task(SubmissionType.TEXT_ONLY, task_id="essay", points=10))
    async with client() as c:
        login(c, "student")
        submission_id = await _submitted(c)
        teacher = login(c, "teacher")
        res = await c.post(
            f"/api/teaching/submissions/{submission_id}/review",
            json={"status": "approved", "score": 8, "review_notes": "  Well argued  "},
            headers=ORIGIN,
        )

    assert res.status_code == 200
    body = res.json()
    assert body["status"] == "approved"
    assert body["score"] == 8
    assert body["review_notes"] == "Well argued"
    assert body["reviewed_by"] == teacher
    assert body["reviewed_at"] is not None


@pytest.mark.anyio
async def test_rejection_after_completion_keeps_lesson_completed():
    seed_lesson(
        repo(),
        make_task(SubmissionType.TEXT_ONLY, task_id="essay"),
    )
    async with client() as c:
        student = login(c, "student")
        submission_id = await _submitted(c)
        login(c, "teacher")
        await c.post(f"/api/teaching/submissions/{submission_id}/review", json={"status": "rejected"}, headers=ORIGIN)

    # Rejection after completion never reopens the lesson.
    assert repo().get_progress("lesson-1", student).is_completed is True


@pytest.mark.anyio
@pytest.mark.parametrize(
    "payload,detail",
    [
        ({"status": "submitted"}, "invalid_status"),
        ({"status": "great"}, "invalid_status"),
        ({"status": "approved", "score": 11}, "invalid_score"),
        ({"status": "approved", "score": -1}, "invalid_score"),
        ({"status": "approved", "score": "8"}, "invalid_score"),
    ],
)
async def test_invalid_review_input_is_400(payload, detail):
    seed_lesson(repo(), make_task(SubmissionType.TEXT_ONLY, task_id="essay", points=10))
    async with client() as c:
        login(c, "student")
        submission_id = await _submitted(c)
        login(c, "teacher")
        res = await c.post(f"/api/teaching/submissions/{submission_id}/review", json=payload, headers=ORIGIN)
    assert res.status_code == 400
    assert res.json()["detail"] == detail


@pytest.mark.anyio
async def test_pending_submission_has_nothing_to_review():
    seed_lesson(repo(), make_task(SubmissionType.TEXT_ONLY, task_id="essay"))
    async with client() as c:
        login(c, "student")
        status = await c.get("/api/learning/tasks/essay/submission")
        login(c, "teacher")
        res = await c.post(
            f"/api/teaching/submissions/{status.json()['submission']['id']}/review",
            json={"status": "approved"},
            headers=ORIGIN,
        )
    assert res.status_code == 400
    assert res.json()["detail"] == "nothing_to_review"


@pytest.mark.anyio
async def test_unknown_submission_is_404_and_students_are_forbidden():
    async with client() as c:
        login(c, "teacher")
        missing = await c.post("/api/teaching/submissions/nope/review", json={"status": "approved"}, headers=ORIGIN)
        login(c, "student")
        forbidden = await c.post("/api/teaching/submissions/nope/review", json={"status": "approved"}, headers=ORIGIN)
    assert missing.status_code == 404
    assert forbidden.status_code == 403
