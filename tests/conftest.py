from datetime import datetime, timezone

import pytest

from lingosrs.application.scheduling_service import SchedulingService
from lingosrs.infrastructure.adapters.kv import InMemoryKeyValueStore
from lingosrs.infrastructure.learner_store import KeyValueLearnerStore

T0 = datetime(2024, 3, 4, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def now():
    return T0


@pytest.fixture
def kv():
    return InMemoryKeyValueStore()


@pytest.fixture
def store(kv):
    return KeyValueLearnerStore(kv)


@pytest.fixture
def service(store):
    return SchedulingService(store)


@pytest.fixture
def mock_home(tmp_path, monkeypatch):
    """Mocks Path.home() to point to a temp dir."""
    home = tmp_path / "home"
    home.mkdir()

    # Mocking HOME to a temp directory to isolate config/logs
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.setattr(
        "lingosrs.application.config.CONFIG_FILES",
        [home / ".config/lingosrs/config.toml", home / ".lingosrs.toml"],
    )
    for var in ("STORE_BACKEND", "DB_PATH", "LOG_DIR", "LOG_LEVEL", "API_TOKENS"):
        monkeypatch.delenv(f"LINGOSRS_{var}", raising=False)
    return home
