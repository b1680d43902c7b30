"""
YAML content loading for lessons and tasks.
"""
from __future__ import annotations

from pathlib import Path

import pytest

from backend.learning.content_loader import load_content_file, parse_content, seed_repo
from backend.learning.domain import MediaCategory, SubmissionType
from backend.learning.repo_memory import InMemoryLearningRepo

EXAMPLE = Path(__file__).resolve().parents[1] / "learning" / "content.example.yaml"


def test_example_content_file_loads_and_seeds():
    lessons, tasks = load_content_file(EXAMPLE)
    repo = InMemoryLearningRepo()
    seed_repo(repo, lessons, tasks)

    assert [l.id for l in lessons] == ["photosynthesis-1"]
    listed = repo.list_tasks_for_lesson("photosynthesis-1")
    assert [t.id for t in listed] == ["ps-summary", "ps-leaf-photo", "ps-lab-report", "ps-reflection"]
    photo = repo.get_task("ps-leaf-photo")
    assert photo.submission_type is SubmissionType.MEDIA_ONLY
    assert photo.allowed_media_types == frozenset({MediaCategory.IMAGE})
    assert photo.max_files_count == 3
    assert repo.get_task("ps-reflection").required is False


def test_defaults_apply_when_limits_missing(monkeypatch: pytest.MonkeyPatch):
    monkeypatch.setenv("LEARNING_DEFAULT_MAX_FILES", "3")
    _, tasks = parse_content({"lessons": [{"id": "l1", "tasks": [{"id": "t1"}]}]})
    task = tasks[0]
    assert task.submission_type is SubmissionType.EITHER
    assert task.max_files_count == 3
    assert task.max_file_size_mb == 200
    assert task.allowed_media_types == frozenset(MediaCategory)
    assert task.required is True
    assert task.position == 1


def test_is_required_null_counts_as_required():
    _, tasks = parse_content({"lessons": [{"id": "l1", "tasks": [{"id": "t1", "is_required": None}]}]})
    assert tasks[0].is_required is None
    assert tasks[0].required is True


@pytest.mark.parametrize(
    "document,message",
    [
        ({"lessons": [{"id": "l1", "tasks": [{"id": "t1", "submission_type": "video_only"}]}]}, "unknown submission_type"),
        ({"lessons": [{"id": "l1", "tasks": [{"id": "t1", "allowed_media_types": ["hologram"]}]}]}, "unknown media type"),
        ({"lessons": [{"id": "l1", "tasks": [{"id": "t1", "max_files_count": 0}]}]}, "max_files_count"),
        ({"lessons": [{"id": "l1", "tasks": [{"title": "no id"}]}]}, "task without id"),
        ({"lessons": [{"title": "no id"}]}, "every lesson needs an id"),
        (["not", "a", "mapping"], "mapping"),
    ],
)
def test_invalid_content_is_rejected(document, message):
    with pytest.raises(ValueError) as exc:
        parse_content(document)
    assert message in str(exc.value)


def test_empty_document_yields_nothing():
    assert parse_content(None) == ([], [])


def test_explicit_position_zero_is_kept():
    _, tasks = parse_content(
        {"lessons": [{"id": "l1", "tasks": [{"id": "t0", "position": 0}, {"id": "t1"}, {"id": "t2", "position": 7}]}]}
    )
    assert [t.position for t in tasks] == [0, 2, 7]
