"""
Learning API: draft initialisation, lesson progress and task listing.
"""
from __future__ import annotations

import pytest

from backend.learning.domain import SubmissionType
from utils.api import ORIGIN, client, login, repo
from utils.learning_fixtures import make_task, seed_lesson

pytestmark = pytest.mark.anyio("asyncio")


def _seed():
    seed_lesson(
        repo(),
        make_task(SubmissionType.TEXT_ONLY, task_id="t1", position=1),
        make_task(SubmissionType.EITHER, task_id="t2", position=2, is_required=False),
    )


@pytest.mark.anyio
async def test_init_submissions_is_idempotent():
    _seed()
    async with client() as c:
        sub = login(c)
        first = await c.post("/api/learning/lessons/lesson-1/init-submissions", json={"courseId": "course-1"}, headers=ORIGIN)
        second = await c.post("/api/learning/lessons/lesson-1/init-submissions", json={"courseId": "course-1"}, headers=ORIGIN)

    assert first.status_code == 200
    assert first.json()["created"] == 2
    assert second.json()["created"] == 0
    assert second.json()["existing"] == 2
    assert first.headers["Cache-Control"] == "private, no-store"
    assert {s["status"] for s in second.json()["submissions"]} == {"pending"}
    assert len([k for k in repo().submissions if k[1] == sub]) == 2


@pytest.mark.anyio
async def test_init_submissions_unknown_lesson_is_404():
    async with client() as c:
        login(c)
        res = await c.post("/api/learning/lessons/nope/init-submissions", json={}, headers=ORIGIN)
    assert res.status_code == 404
    assert res.json() == {"error": "not_found", "detail": "lesson_not_found"}


@pytest.mark.anyio
async def test_progress_start_get_and_manual_complete():
    _seed()
    async with client() as c:
        login(c)
        before = await c.get("/api/learning/lessons/lesson-1/progress")
        started = await c.post("/api/learning/lessons/lesson-1/progress", json={"courseId": "course-1"}, headers=ORIGIN)
        restarted = await c.post("/api/learning/lessons/lesson-1/progress", json={"courseId": "course-1"}, headers=ORIGIN)
        completed = await c.put(
            "/api/learning/lessons/lesson-1/progress",
            json={"timeSpent": 14, "assessmentData": {"tasksCompleted": 1, "totalTasks": 2}},
            headers=ORIGIN,
        )
        again = await c.put(
            "/api/learning/lessons/lesson-1/progress",
            json={"timeSpent": 3, "assessmentData": {"tasksCompleted": 2, "totalTasks": 2}},
            headers=ORIGIN,
        )
        fetched = await c.get("/api/learning/lessons/lesson-1/progress")

    assert before.status_code == 200 and before.json() is None
    assert started.status_code == 200
    assert started.json()["is_completed"] is False
    assert started.json()["attempts"] == 1
    assert restarted.json()["started_at"] == started.json()["started_at"]
    body = completed.json()
    assert body["is_completed"] is True
    assert body["time_spent_minutes"] == 14
    assert body["assessment_data"]["tasks_completed"] == 1
    assert body["assessment_data"]["source"] == "manual"
    assert again.json()["completed_at"] == body["completed_at"]
    assert again.json()["assessment_data"]["tasks_completed"] == 1
    assert again.json()["time_spent_minutes"] == 14
    assert fetched.json()["is_completed"] is True


@pytest.mark.anyio
@pytest.mark.parametrize(
    "payload,detail",
    [
        ({"timeSpent": -5}, "invalid_time_spent"),
        ({"timeSpent": "soon"}, "invalid_time_spent"),
        ({"assessmentData": {"tasksCompleted": -1}}, "invalid_tasks_completed"),
        ({"assessmentData": {"totalTasks": "3"}}, "invalid_total_tasks"),
        ({"assessmentData": "all"}, "invalid_assessment_data"),
    ],
)
async def test_manual_complete_validates_numbers(payload, detail):
    _seed()
    async with client() as c:
        login(c)
        res = await c.put("/api/learning/lessons/lesson-1/progress", json=payload, headers=ORIGIN)
    assert res.status_code == 400
    assert res.json()["detail"] == detail


@pytest.mark.anyio
async def test_lesson_without_required_tasks_completes_only_manually():
    seed_lesson(repo(), make_task(SubmissionType.EITHER, task_id="opt", is_required=False))
    async with client() as c:
        login(c)
        submitted = await c.post("/api/learning/tasks/opt/submit", json={}, headers=ORIGIN)
        progress = await c.get("/api/learning/lessons/lesson-1/progress")
        manual = await c.put("/api/learning/lessons/lesson-1/progress", json={}, headers=ORIGIN)

    assert submitted.status_code == 200
    assert submitted.json()["lesson_completed"] is False
    assert progress.json() is None
    assert manual.json()["is_completed"] is True


@pytest.mark.anyio
async def test_list_lesson_tasks_reports_submission_per_task():
    _seed()
    async with client() as c:
        login(c)
        await c.post("/api/learning/tasks/t1/submit", json={"submission_text": "My answer"}, headers=ORIGIN)
        res = await c.get("/api/learning/lessons/lesson-1/tasks")

    assert res.status_code == 200
    body = res.json()
    assert [item["task"]["id"] for item in body["tasks"]] == ["t1", "t2"]
    assert body["tasks"][0]["is_completed"] is True
    assert body["tasks"][0]["submission"]["submission_text"] == "My answer"
    assert body["tasks"][1]["submission"] is None
    assert body["lesson_completed"] is True
