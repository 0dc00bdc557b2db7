from datetime import datetime, timedelta, timezone

import pytest
from fastapi.testclient import TestClient

from otpgate.config import Settings
from otpgate.database import Database
from otpgate.dependencies import build_services
from otpgate.errors import DeliveryError
from otpgate.main import create_app
from otpgate.services.tokens import create_admin_token


class FrozenClock:
    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)


class RecordingEmailSender:
    def __init__(self) -> None:
        self.sent = []

    def send(self, to, subject, html_body, tags):
        self.sent.append(
            {"to": to, "subject": subject, "html_body": html_body, "tags": tags}
        )


class FailingEmailSender:
    def __init__(self) -> None:
        self.attempts = 0

    def send(self, to, subject, html_body, tags):
        self.attempts += 1
        raise DeliveryError("Failed to send OTP email")


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite://",
        otp_ttl_seconds=600,
        rate_limit_max_requests=3,
        rate_limit_window_seconds=3600,
        brevo_api_key="test-key",
        otp_email_sender="security@example.com",
        otp_sender_name="Example",
        jwt_secret="test-secret",
        cors_origins=("*",),
    )


@pytest.fixture
def clock():
    return FrozenClock(datetime(2026, 1, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def database(settings):
    db = Database(settings.database_url)
    db.init_db()
    yield db
    db.dispose()


@pytest.fixture
def email_sender():
    return RecordingEmailSender()


@pytest.fixture
def services(settings, database, email_sender, clock):
    return build_services(settings, database, email_sender, clock)


@pytest.fixture
def app(settings, database, email_sender, clock):
    return create_app(
        settings=settings, database=database, email_sender=email_sender, clock=clock
    )


@pytest.fixture
def client(app):
    with TestClient(app) as test_client:
        yield test_client


@pytest.fixture
def admin_headers(settings):
    token = create_admin_token(settings, "admin@example.com")
    return {"Authorization": f"Bearer {token}"}


@pytest.fixture
def failing_sender():
    return FailingEmailSender()


@pytest.fixture
def failing_services(settings, database, failing_sender, clock):
    return build_services(settings, database, failing_sender, clock)
