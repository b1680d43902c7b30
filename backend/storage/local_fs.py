"""Filesystem-backed submission storage for dev/test and single-host deployments."""
from __future__ import annotations

import logging
import os
from pathlib import Path
from urllib.parse import quote

logger = logging.getLogger("lessonwork.storage")


class LocalFileStorage:
    """Write submission files under `root/bucket/key`.

    Keys are resolved against the root and must stay inside it; anything else
    raises `RuntimeError("path_escape_blocked")`.
    """

    def __init__(self, root_dir: str | Path, *, url_prefix: str = "/files") -> None:
        self._root = Path(root_dir).resolve()
        self._url_prefix = url_prefix.rstrip("/")

    @property
    def root(self) -> Path:
        return self._root

    def _target(self, bucket: str, key: str) -> Path:
        target = (self._root / bucket / key).resolve()
        # Enforce containment in root
        if os.path.commonpath([str(self._root), str(target)]) != str(self._root):
            raise RuntimeError("path_escape_blocked")
        return target

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:  # noqa: D401
        # content_type is not persisted; readers derive it from the stored metadata
        target = self._target(bucket, key)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(body)

    def delete_object(self, *, bucket: str, key: str) -> None:
        target = self._target(bucket, key)
        try:
            target.unlink()
        except FileNotFoundError:
            logger.debug("delete_object: already gone bucket=%s", bucket)

    def public_url(self, *, bucket: str, key: str) -> str:
        return f"{self._url_prefix}/{quote(bucket)}/{quote(key)}"


class NullFileStorage:
    """Fallback adapter that signals the storage backend is not configured."""

    def put_object(self, *, bucket: str, key: str, body: bytes, content_type: str) -> None:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")

    def delete_object(self, *, bucket: str, key: str) -> None:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")

    def public_url(self, *, bucket: str, key: str) -> str:  # noqa: D401
        raise RuntimeError("storage_adapter_not_configured")


__all__ = ["LocalFileStorage", "NullFileStorage"]
