"""Use case layer for the Learning context.

Re-export common use cases for convenient imports in tests.
"""

from .lessons import (
    CompleteLessonInput,
    CompleteLessonManuallyUseCase,
    InitLessonSubmissionsUseCase,
    LessonInput,
    StartLessonUseCase,
)
from .submissions import (
    ClearSubmissionInput,
    ClearSubmissionUseCase,
    SubmitTaskInput,
    SubmitTaskUseCase,
)

__all__ = [
    "ClearSubmissionInput",
    "ClearSubmissionUseCase",
    "CompleteLessonInput",
    "CompleteLessonManuallyUseCase",
    "InitLessonSubmissionsUseCase",
    "LessonInput",
    "StartLessonUseCase",
    "SubmitTaskInput",
    "SubmitTaskUseCase",
]
