from datetime import datetime, timezone

import pytest
from fastapi.testclient import TestClient

from caffeine_dash import config
from caffeine_dash.core import database
from caffeine_dash.core.models import to_epoch_ms


@pytest.fixture
def db(tmp_path, monkeypatch):
    path = tmp_path / "caffeine.db"
    monkeypatch.setattr(database, "DB_PATH", path)
    database.init_db()
    yield path
    database.close_connection()


@pytest.fixture
def client(db, monkeypatch):
    from caffeine_dash.main import app

    monkeypatch.setattr(config, "API_KEY", "")
    monkeypatch.setattr(config, "TIMEZONE", "Europe/Berlin")
    return TestClient(app)


@pytest.fixture
def at():
    """UTC wall-clock helper: at(8) -> epoch ms of 2024-03-05 08:00Z."""
    def _at(hour, minute=0, day=5):
        return to_epoch_ms(datetime(2024, 3, day, hour, minute, tzinfo=timezone.utc))

    return _at
