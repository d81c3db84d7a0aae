import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
root_str = str(ROOT)
if root_str not in sys.path:
    sys.path.insert(0, root_str)


@pytest.fixture(autouse=True)
def _isolated_state(monkeypatch, tmp_path):
    """Fresh in-memory backends, account directory and storage root for every test."""
    from src.scout.api.main import app
    from src.scout.infrastructure import (
        asset_store,
        conversation_store,
        events,
        notification_store,
        object_storage,
        repository,
    )
    from src.scout.security import auth
    from src.scout.services import gateway, llm

    monkeypatch.setenv("SCOUT_STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setenv("SCOUT_PUBLIC_BASE_URL", "http://testserver")
    for name in (
        "SCOUT_STORE_IMPL",
        "SCOUT_RATE_LIMIT_DISABLED",
        "REDIS_URL",
        "ADMIN_EMAILS",
        "SCOUT_SMTP_HOST",
    ):
        monkeypatch.delenv(name, raising=False)

    monkeypatch.setattr(conversation_store, "_store", None)
    monkeypatch.setattr(repository, "_repo", None)
    monkeypatch.setattr(asset_store, "_store", None)
    monkeypatch.setattr(notification_store, "_store", None)
    monkeypatch.setattr(object_storage, "_storage", None)
    monkeypatch.setattr(events, "_publisher", None)
    monkeypatch.setattr(gateway, "_gateway", None)
    monkeypatch.setattr(llm, "_provider", None)
    monkeypatch.setattr(auth, "USERS", {})
    yield
    app.dependency_overrides.clear()
