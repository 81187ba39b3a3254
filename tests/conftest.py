import os
from datetime import datetime, timedelta
from typing import Callable, Generator

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_reservations.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("SWEEPER_ENABLED", "false")
os.environ.setdefault("EVENTS_ENABLED", "false")

from common.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from common.auth import create_access_token  # noqa: E402
from common.database import Base, SessionLocal, engine  # noqa: E402
from common.models import RoleEnum  # noqa: E402
from common.reservations import ReservationService  # noqa: E402
from services.reservations.app import app as reservations_app  # noqa: E402

T0 = datetime(2025, 3, 3, 8, 0, 0)


class FrozenClock:
    """Manually advanced clock for TTL tests."""

    def __init__(self, now: datetime = T0) -> None:
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current += timedelta(**kwargs)
        return self.current


class RecordingPublisher:
    def __init__(self) -> None:
        self.events: list[dict] = []

    def __call__(self, message: dict) -> bool:
        self.events.append(message)
        return True

    @property
    def names(self) -> list[str]:
        return [event["event"] for event in self.events]


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def clock() -> FrozenClock:
    return FrozenClock()


@pytest.fixture()
def publisher() -> RecordingPublisher:
    return RecordingPublisher()


@pytest.fixture()
def service(db_session, clock, publisher) -> ReservationService:
    return ReservationService(db_session, clock=clock, publisher=publisher)


@pytest.fixture()
def at() -> Callable[[str], datetime]:
    """Build a datetime on the test day from ``HH:MM``."""

    def build(hhmm: str) -> datetime:
        hours, minutes = (int(part) for part in hhmm.split(":"))
        return T0.replace(hour=hours, minute=minutes)

    return build


def auth_header(subject: str, role: RoleEnum = RoleEnum.REGULAR) -> dict[str, str]:
    token = create_access_token({"sub": subject, "role": role.value})
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture()
def owner_headers() -> dict[str, str]:
    return auth_header("dr-meier")


@pytest.fixture()
def other_headers() -> dict[str, str]:
    return auth_header("dr-huber")


@pytest.fixture()
def admin_headers() -> dict[str, str]:
    return auth_header("practice-admin", RoleEnum.ADMIN)


@pytest.fixture()
def reservations_client() -> Generator[TestClient, None, None]:
    with TestClient(reservations_app) as client:
        yield client
    reservations_app.dependency_overrides.clear()
