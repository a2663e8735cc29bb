import os
from typing import Generator, List, Tuple

import pytest
from fastapi.testclient import TestClient

os.environ.setdefault("DATABASE_URL", "sqlite:///./test.db")
os.environ.setdefault("RATE_LIMITING_ENABLED", "false")
os.environ.setdefault("LOG_DIR", "logs")

from confbook.config import reset_settings_cache  # noqa: E402

reset_settings_cache()

from confbook.database import Base, SessionLocal, engine  # noqa: E402
from confbook.side_effects import InlineDispatcher  # noqa: E402
from services.bookings.app import app as bookings_app  # noqa: E402
from services.reports.app import app as reports_app  # noqa: E402
from services.rooms.app import app as rooms_app  # noqa: E402
from services.rooms.app import room_listing_cache  # noqa: E402
from services.users.app import app as users_app  # noqa: E402

ALL_APPS = (users_app, rooms_app, bookings_app, reports_app)


class RecordingNotifier:
    """Keeps every notification in memory instead of sending it."""

    def __init__(self) -> None:
        self.sent: List[Tuple[str, int, str]] = []

    def notify_created(self, booking) -> None:
        self.sent.append(("created", booking.id, booking.status))

    def notify_status_changed(self, booking, new_status: str) -> None:
        self.sent.append(("status_changed", booking.id, new_status))

    def notify_rescheduled(self, booking) -> None:
        self.sent.append(("rescheduled", booking.id, booking.status))

    def notify_reminder(self, booking) -> None:
        self.sent.append(("reminder", booking.id, booking.status))

    def kinds(self) -> List[str]:
        return [kind for kind, _, _ in self.sent]


@pytest.fixture(autouse=True, scope="function")
def _create_test_database() -> Generator[None, None, None]:
    Base.metadata.drop_all(bind=engine)
    Base.metadata.create_all(bind=engine)
    room_listing_cache.invalidate()
    yield
    Base.metadata.drop_all(bind=engine)


@pytest.fixture(autouse=True)
def notifier() -> Generator[RecordingNotifier, None, None]:
    recording = RecordingNotifier()
    for service_app in ALL_APPS:
        service_app.state.notifier = recording
        service_app.state.dispatcher = InlineDispatcher()
    yield recording


@pytest.fixture()
def db_session() -> Generator:
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()


@pytest.fixture()
def users_client() -> Generator[TestClient, None, None]:
    with TestClient(users_app) as client:
        yield client


@pytest.fixture()
def rooms_client() -> Generator[TestClient, None, None]:
    with TestClient(rooms_app) as client:
        yield client


@pytest.fixture()
def bookings_client() -> Generator[TestClient, None, None]:
    with TestClient(bookings_app) as client:
        yield client


@pytest.fixture()
def reports_client() -> Generator[TestClient, None, None]:
    with TestClient(reports_app) as client:
        yield client
