"""
Storage ports used by the learning subsystem.

Keep these small and framework-agnostic so tests can supply simple fakes.
"""
from __future__ import annotations

from typing import Protocol


class SubmissionFileStorage(Protocol):
    """Minimal interface to persist submission files in a bucket/path.

    Intent:
        Let the submission use cases store accepted uploads and delete
        replaced ones without depending on a specific storage backend.

    Permissions:
        Implementations must enforce bucket/key ACLs and validation.
    """

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None: ...

    def delete_object(self, *, bucket: str, key: str) -> None: ...

    def public_url(self, *, bucket: str, key: str) -> str: ...


__all__ = ["SubmissionFileStorage"]
