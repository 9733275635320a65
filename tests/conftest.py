"""Shared fixtures for tests."""

from __future__ import annotations

import os
import tempfile
from datetime import date, time
from decimal import Decimal
from pathlib import Path
from typing import Callable, Generator

import pytest

# Keep the real database untouched, even before the per-test fixture runs
os.environ["BUNNY_PORTAL_DB"] = os.path.join(tempfile.mkdtemp(), "portal.db")


@pytest.fixture(autouse=True)
def temp_database(tmp_path: Path, monkeypatch) -> Generator:
    """Give every test its own empty database and no live subscriptions."""
    import auth
    import storage

    monkeypatch.setattr(storage, "DB_PATH", tmp_path / "portal.db")
    storage._subscriptions.clear()
    storage.init_db()
    auth.sign_out()

    yield storage

    storage._subscriptions.clear()


@pytest.fixture
def user():
    """A signed-up password user."""
    import storage

    return storage.create_user_record("ada@example.com", display_name="Ada")


@pytest.fixture
def make_shift(user) -> Callable:
    """Create a shift directly in the store from a date and HH:MM clock times."""
    import storage
    from utils import combine_local, compute_net_hours

    def _make(day: date = date(2026, 1, 15), start: time | None = time(9, 0),
              end: time | None = time(17, 0), user_id: str | None = None):
        start_at = combine_local(day, start) if start else None
        shift_id = storage.create_shift(user_id or user.id, day, start_time=start_at)
        if end:
            end_at = combine_local(day, end)
            storage.update_shift(
                shift_id,
                end_time=end_at,
                net_hours=compute_net_hours(start_at, end_at) if start_at else Decimal("0"),
            )
        return storage.get_shift(shift_id)

    return _make


@pytest.fixture
def sample_config():
    """Create a sample Config for testing."""
    from models import Config

    return Config(
        goal_hours=Decimal("486"),
        daily_quota_hours=Decimal("8"),
        deadline=date(2026, 5, 22),
        break_deduction_hours=Decimal("1"),
        default_company="Inspire Holdings Inc.",
        dtr_fallback_time="09:30",
    )
