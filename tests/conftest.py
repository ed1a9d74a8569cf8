"""
Pytest Configuration and Fixtures.

This file configures pytest and provides shared fixtures for all tests.
"""
import sys
from datetime import UTC, datetime, timedelta
from pathlib import Path

import pytest

# Add project root to path
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from focusloop.config import Settings  # noqa: E402
from focusloop.core.clock import FixedClock  # noqa: E402
from focusloop.core.errors import CollaboratorUnavailable  # noqa: E402
from focusloop.db.outbox import PersistenceOutbox  # noqa: E402
from focusloop.db.store import InMemoryStore  # noqa: E402
from focusloop.learning.skill_ledger import Skill  # noqa: E402
from focusloop.study.events import EventOutbox  # noqa: E402


def pytest_configure(config):
    """Configure pytest markers."""
    config.addinivalue_line("markers", "unit: Unit tests")
    config.addinivalue_line("markers", "integration: Integration tests (in-memory SQLite, API client)")
    config.addinivalue_line("markers", "slow: Slow tests")


def pytest_collection_modifyitems(config, items):
    """Automatically mark tests based on their location."""
    for item in items:
        if "unit" in str(item.fspath):
            item.add_marker(pytest.mark.unit)
        elif "integration" in str(item.fspath):
            item.add_marker(pytest.mark.integration)


START = datetime(2024, 1, 1, 9, 0, tzinfo=UTC)


class FlakyStore(InMemoryStore):
    """InMemoryStore whose writes can be switched off to simulate an outage."""

    def __init__(self):
        super().__init__()
        self.fail_writes = False
        self.fail_notes = False
        self.fail_next_writes = 0
        self.write_attempts = 0

    def _check(self):
        self.write_attempts += 1
        if self.fail_next_writes > 0:
            self.fail_next_writes -= 1
            raise CollaboratorUnavailable("store offline")
        if self.fail_writes:
            raise CollaboratorUnavailable("store offline")

    def save_skill(self, skill):
        self._check()
        super().save_skill(skill)

    def save_session(self, session):
        self._check()
        super().save_session(session)

    def add_note(self, note):
        if self.fail_notes:
            raise CollaboratorUnavailable("notes table offline")
        super().add_note(note)


@pytest.fixture(scope="session")
def project_root():
    """Return the project root directory."""
    return PROJECT_ROOT


@pytest.fixture
def settings():
    """Settings isolated from the environment and any .env file."""
    return Settings(_env_file=None, database_url="sqlite://")


@pytest.fixture
def clock():
    return FixedClock(START)


@pytest.fixture
def store():
    return InMemoryStore()


@pytest.fixture
def flaky_store():
    return FlakyStore()


@pytest.fixture
def events():
    return EventOutbox()


@pytest.fixture
def outbox():
    """Outbox driven manually by tests (no worker thread, instant backoff)."""
    return PersistenceOutbox(base_delay=0.0, max_delay=0.0, max_attempts=3)


@pytest.fixture
def make_skill(clock):
    """Factory for Skill records with sensible defaults."""

    def _make(domain="fractions_comparison", mastery=0.0, decay_rate=0.15, days_ago=None, **kwargs):
        last_seen = None
        if days_ago is not None:
            last_seen = clock.now() - timedelta(days=days_ago)
        return Skill(
            id=kwargs.pop("id", f"skill-{domain}"),
            student_id=kwargs.pop("student_id", "student-1"),
            domain=domain,
            category=kwargs.pop("category", "math"),
            display_name=kwargs.pop("display_name", domain.replace("_", " ").title()),
            mastery=mastery,
            decay_rate=decay_rate,
            last_seen=last_seen,
            **kwargs,
        )

    return _make
