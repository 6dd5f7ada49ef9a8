# type: ignore
# pyright: reportMissingImports=false, reportGeneralTypeErrors=false
"""
Shared fixtures: a fresh in-memory database, a mocked chat dispatcher and a
TestClient wired to both through the dependency container.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("CRON_SECRET", "test-cron-secret")
os.environ.setdefault("REDIS_URL", "")
os.environ.setdefault("ROTATION_ROLES", "account,producer,po,uiEng,beEng")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from datetime import date, datetime  # noqa: E402
from unittest.mock import MagicMock  # noqa: E402
from zoneinfo import ZoneInfo  # noqa: E402

import pytest  # noqa: E402
from fastapi.testclient import TestClient  # noqa: E402

from main import app  # noqa: E402
from oncall_rotation.core.database import build_engine, init_schema  # noqa: E402
from oncall_rotation.core.dependencies import Container, get_container  # noqa: E402
from oncall_rotation.models.domain import Sprint  # noqa: E402
from oncall_rotation.services.slack_dispatch import SlackDispatcher  # noqa: E402

PT = ZoneInfo("America/Los_Angeles")
CRON_SECRET = os.environ["CRON_SECRET"]


def pt(year, month, day, hour=12, minute=0) -> datetime:
    """An aware instant in Pacific time."""
    return datetime(year, month, day, hour, minute, tzinfo=PT)


@pytest.fixture
def engine():
    eng = build_engine("sqlite://")
    init_schema(eng)
    yield eng
    eng.dispose()


@pytest.fixture
def dispatcher():
    mock = MagicMock(spec=SlackDispatcher)
    mock.send_direct_message.return_value = True
    mock.sync_group_membership.return_value = True
    mock.sync_channel_topic.return_value = True
    mock.notify_rotation_changes.side_effect = lambda changes: sum(
        bool(c.get("old_user")) + bool(c.get("new_user")) for c in changes
    )
    return mock


@pytest.fixture
def container(engine, dispatcher):
    return Container(engine, dispatcher)


@pytest.fixture
def client(container):
    app.dependency_overrides[get_container] = lambda: container
    yield TestClient(app)
    app.dependency_overrides.clear()


@pytest.fixture
def file_container(tmp_path, dispatcher):
    """A seeded container on a file-backed database, for multi-threaded tests."""
    eng = build_engine(f"sqlite:///{tmp_path / 'rotation.db'}")
    init_schema(eng)
    yield seed_rotation(Container(eng, dispatcher))
    eng.dispose()


@pytest.fixture
def seeded(container):
    return seed_rotation(container)


def seed_rotation(container):
    """
    Sprints 10-12 sharing boundary dates, a three-person PO rotation and a
    two-person backend rotation. Other roles are left empty.
    """
    sprints = container.sprint_repo
    sprints.upsert(Sprint(index=10, name="Sprint 10", start_date=date(2026, 1, 1), end_date=date(2026, 1, 14)))
    sprints.upsert(Sprint(index=11, name="Sprint 11", start_date=date(2026, 1, 14), end_date=date(2026, 1, 28)))
    sprints.upsert(Sprint(index=12, name="Sprint 12", start_date=date(2026, 1, 28), end_date=date(2026, 2, 11)))
    roster = container.roster_repo
    for user in ("UA", "UB", "UC"):
        roster.add_member("po", user, f"User {user[-1]}")
    for user in ("UX", "UY"):
        roster.add_member("beEng", user, f"User {user[-1]}")
    return container
