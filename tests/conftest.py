"""
Shared fixtures for leaveguard tests.
"""

import re
from datetime import datetime, timedelta, timezone

import pytest

from leaveguard.access import Classification, PolicyConfiguration, Role
from leaveguard.auth import Actor, Authenticator, JWTHandler, Notifier, UserDatabase
from leaveguard.leaves import LeaveStore, ResourceSnapshot


SECRET = "test-secret-key-for-leaveguard-tests-0123456789"
PASSWORD = "CorrectHorse42!"


class FakeClock:
    """Callable clock that only moves when told to."""

    def __init__(self, now: datetime):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


class RecordingNotifier(Notifier):
    """Notifier that keeps every message instead of sending it."""

    def __init__(self):
        super().__init__(max_workers=1)
        self.sent = []

    def send(self, contact: str, message: str) -> None:
        self.sent.append((contact, message))

    def wait(self) -> None:
        self._executor.submit(lambda: None).result()

    def last_code(self) -> str:
        self.wait()
        return re.search(r"\b(\d{6})\b", self.sent[-1][1]).group(1)


class FailingNotifier(Notifier):
    def send(self, contact: str, message: str) -> None:
        raise ConnectionRefusedError("smtp down")


def local_time(hhmm: str):
    """Local clock frozen at ``hhmm`` on a weekday."""
    hours, minutes = (int(part) for part in hhmm.split(":"))
    return lambda: datetime(2025, 3, 3, hours, minutes)


@pytest.fixture
def db_path(tmp_path):
    return tmp_path / "leaveguard.db"


@pytest.fixture
def db(db_path):
    return UserDatabase(db_path)


@pytest.fixture
def leaves(db_path):
    return LeaveStore(db_path)


@pytest.fixture
def clock():
    return FakeClock(datetime(2025, 3, 3, 10, 0, tzinfo=timezone.utc))


@pytest.fixture
def tokens(clock):
    return JWTHandler(SECRET, clock=clock)


@pytest.fixture
def notifier():
    notifier = RecordingNotifier()
    yield notifier
    notifier.shutdown()


@pytest.fixture
def authenticator(db, tokens, notifier, clock):
    return Authenticator(db, tokens, notifier, clock=clock)


@pytest.fixture
def config():
    return PolicyConfiguration()


@pytest.fixture
def alice(db):
    """Registered Employee in Engineering."""
    return db.create_user(
        name="Alice",
        email="alice@example.com",
        password=PASSWORD,
        role=Role.EMPLOYEE,
        department="Engineering",
        location="HQ",
    )


def make_actor(role=Role.EMPLOYEE, actor_id="actor-1", **attrs) -> Actor:
    return Actor(id=actor_id, role=role, **attrs)


def make_snapshot(classification=Classification.INTERNAL, owner="owner-1", delegated=(), **attrs):
    return ResourceSnapshot(
        id="11111111-1111-1111-1111-111111111111",
        classification=classification,
        owner=owner,
        delegated_access=tuple(delegated),
        **attrs,
    )
