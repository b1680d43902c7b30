"""
Pytest configuration for backend tests.

Why: Force AnyIO to use the asyncio backend to avoid sandbox restrictions
that can affect the Trio backend (e.g., socketpair permission errors).
"""
import os
import importlib
import sys
from pathlib import Path
import pytest

# Ensure modules in backend/ and backend/web are importable across tests
REPO_ROOT = Path(__file__).resolve().parents[2]
BACKEND_DIR = REPO_ROOT / "backend"
WEB_DIR = BACKEND_DIR / "web"
TESTS_DIR = BACKEND_DIR / "tests"
for p in (str(REPO_ROOT), str(BACKEND_DIR), str(WEB_DIR), str(TESTS_DIR)):
    if p not in sys.path:
        sys.path.insert(0, p)


@pytest.fixture
def anyio_backend():
    return "asyncio"


@pytest.fixture(autouse=True)
def _clear_env_toggles(monkeypatch: pytest.MonkeyPatch):
    """Clear env-driven toggles so every test starts from dev defaults.

    Behavior:
        - Unset LESSONWORK_ENV (dev) and proxy trust.
        - Unset repository/storage selection; tests that need Postgres opt in
          explicitly via `utils.db.require_db_or_skip`.
        - Unset default upload limits so tasks use the built-in defaults.
    """
    for var in (
        "LESSONWORK_ENV",
        "LESSONWORK_TRUST_PROXY",
        "LESSONWORK_SESSION_ISSUER_SECRET",
        "LEARNING_REPO_BACKEND",
        "LEARNING_CONTENT_FILE",
        "LEARNING_STORAGE_BUCKET",
        "LEARNING_DEFAULT_MAX_FILES",
        "LEARNING_DEFAULT_MAX_FILE_SIZE_MB",
        "STORAGE_ROOT",
    ):
        monkeypatch.delenv(var, raising=False)
    yield


@pytest.fixture(autouse=True)
def _reset_learning_repo_and_storage(tmp_path: Path):
    """Give every test a fresh in-memory repo and a tmp_path file store.

    Why:
        Routes hold module-level singletons; without a reset, submissions and
        stored files leak across tests.
    """
    from backend.learning.repo_memory import InMemoryLearningRepo
    from backend.storage.local_fs import LocalFileStorage

    learning = importlib.import_module("routes.learning")
    learning.set_repo(InMemoryLearningRepo())
    learning.set_storage_adapter(LocalFileStorage(tmp_path / "files"))
    yield


@pytest.fixture(autouse=True)
def _reset_session_store(monkeypatch: pytest.MonkeyPatch):
    """Reset SESSION_STORE per test on both module aliases of the app."""
    import main  # type: ignore
    from identity_access.stores import SessionStore  # type: ignore

    shared_session = SessionStore()
    monkeypatch.setattr(main, "SESSION_STORE", shared_session, raising=False)
    bwm = sys.modules.get("backend.web.main")
    if bwm is not None and bwm is not main:
        monkeypatch.setattr(bwm, "SESSION_STORE", shared_session, raising=False)
    main.SETTINGS.override_environment(None)
    yield
