"""
Shared helpers for wiring the learning repository and file storage.

Why:
    App startup may occur before Postgres is reachable locally. Routes build
    their dependencies lazily through these helpers so that environment
    (.env, pytest monkeypatching) is settled before the first connection, and
    tests can inject in-memory replacements via the routes' `set_*` hooks.

Behavior:
    - build_learning_repo(): Postgres repo when configured, otherwise the
      in-memory repo seeded from LEARNING_CONTENT_FILE (if any).
    - build_file_storage(): local filesystem store under STORAGE_ROOT, or a
      Null store that refuses writes when no root is configured.
"""
from __future__ import annotations

import logging
import os

from backend.learning.config import load_learning_config
from backend.learning.content_loader import load_content_file, seed_repo
from backend.learning.repo_memory import InMemoryLearningRepo
from backend.storage.config import get_storage_root
from backend.storage.local_fs import LocalFileStorage, NullFileStorage
from backend.web.config import _is_prod_like

logger = logging.getLogger("lessonwork.web")


def build_learning_repo():
    """Return the repository selected by configuration.

    Logging:
        - Info on which backend was chosen.
        - Warning when the Postgres repo cannot be created and the in-memory
          fallback is used instead (dev only; prod-like envs re-raise).
    """
    cfg = load_learning_config()
    if cfg.repo_backend == "db":
        try:
            from backend.learning.repo_db import DBLearningRepo

            repo = DBLearningRepo(dsn=cfg.database_url)
            logger.info("Learning repo wired: postgres")
            return repo
        except Exception as exc:
            if _is_prod_like(os.getenv("LESSONWORK_ENV", "dev")):
                logger.error("Learning repo unavailable in %s: %s", os.getenv("LESSONWORK_ENV"), exc.__class__.__name__)
                raise
            logger.warning("Learning repo fallback to memory: %s", exc.__class__.__name__)
    repo = InMemoryLearningRepo()
    if cfg.content_file:
        lessons, tasks = load_content_file(cfg.content_file)
        seed_repo(repo, lessons, tasks)
        logger.info("Learning content seeded: lessons=%s tasks=%s", len(lessons), len(tasks))
    logger.info("Learning repo wired: memory")
    return repo


def build_file_storage():
    root = get_storage_root()
    if root:
        return LocalFileStorage(root)
    return NullFileStorage()


__all__ = ["build_file_storage", "build_learning_repo"]
