"""
Test fixtures for the escalation pipeline.

Provides:
- File-backed SQLite database per test (concurrent sessions need real connections)
- Seeded school directory: one school, one class, students with assorted guardians
- Stub Twilio API (httpx.MockTransport) and stub SMTP sender
- Controllable clock for dedup window tests
- A fully wired pipeline built from the stubs, and an API client over it
"""

import asyncio
from datetime import datetime, timedelta, timezone
from email.message import EmailMessage
from typing import AsyncGenerator
from urllib.parse import parse_qs

import aiosmtplib
import httpx
import pytest
import pytest_asyncio
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

from riskescalation.alerting.dedup import DeduplicationStore
from riskescalation.alerting.mail import EmailGateway, SmtpConfig
from riskescalation.alerting.sms import SmsGateway, TwilioConfig
from riskescalation.api.app import create_app
from riskescalation.config import Settings
from riskescalation.db.engine import Base
from riskescalation.db.models import (  # noqa: F401 — register all models
    GuardianContactRecord,
    School,
    SchoolClass,
    StaffNotification,
    Student,
)
from riskescalation.pipeline import EscalationPipeline, build_pipeline

SCHOOL_ID = "sch-1"
CLASS_ID = "cls-1"

TWILIO_CONFIG = TwilioConfig(
    account_sid="AC" + "1" * 32,
    auth_token="t" * 32,
    from_number="+15005550006",
    bulk_interval_seconds=0,
)
SMTP_CONFIG = SmtpConfig(host="smtp.test", port=587, from_address="alerts@school.test")


# ── Database ─────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def engine(tmp_path):
    """Fresh database with all tables."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'test.db'}", echo=False)
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest_asyncio.fixture
async def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db(session_factory) -> AsyncGenerator[AsyncSession, None]:
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def directory(session_factory):
    """
    Seed the school directory.

    stu-1  Aline Marie Uwase  — Jean (email + phone), Grace (phone only, blank email)
    stu-2  Eric Habimana      — one guardian with no usable contact
    stu-3  Diane Mukamana     — no class, one guardian with email only
    """
    async with session_factory() as session:
        session.add(School(id=SCHOOL_ID, name="Green Hills Academy"))
        session.add(SchoolClass(id=CLASS_ID, school_id=SCHOOL_ID, name="Senior 2A"))
        await session.flush()

        session.add_all([
            Student(id="stu-1", school_id=SCHOOL_ID, class_id=CLASS_ID,
                    first_name="Aline", middle_name="Marie", last_name="Uwase"),
            Student(id="stu-2", school_id=SCHOOL_ID, class_id=CLASS_ID,
                    first_name="Eric", last_name="Habimana"),
            Student(id="stu-3", school_id=SCHOOL_ID, class_id=None,
                    first_name="Diane", last_name="Mukamana"),
        ])
        await session.flush()

        session.add_all([
            GuardianContactRecord(student_id="stu-1", position=0, name="Jean Uwase",
                                  email="jean@example.com", phone="0788123456",
                                  relation="Father", is_primary=True),
            GuardianContactRecord(student_id="stu-1", position=1, name="Grace Uwase",
                                  email="  ", phone="788765432", relation="Mother"),
            GuardianContactRecord(student_id="stu-2", position=0, name="Nobody",
                                  email="", phone="   "),
            GuardianContactRecord(student_id="stu-3", position=0, name="Paul Mukamana",
                                  email="paul@example.com", phone=None),
        ])
        await session.commit()
    return session_factory


# ── Clock ────────────────────────────────────────────────────────────────


class FakeClock:
    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 3, 1, 8, 0, tzinfo=timezone.utc)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


# ── Channel stubs ────────────────────────────────────────────────────────


class TwilioStub:
    """Answers like the Twilio Messages API."""

    def __init__(self):
        self.requests: list[httpx.Request] = []
        self.sent: list[dict] = []
        self.fail_numbers: set[str] = set()
        self.raise_network_error = False
        self.status_payload: dict = {
            "status": "delivered",
            "date_sent": "Sat, 01 Mar 2025 08:00:05 +0000",
            "date_updated": "Sat, 01 Mar 2025 08:00:09 +0000",
            "error_code": None,
            "error_message": None,
        }

    def handler(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.raise_network_error:
            raise httpx.ConnectError("connection refused", request=request)

        if request.method == "GET":
            return httpx.Response(200, json=self.status_payload)

        form = {k: v[0] for k, v in parse_qs(request.content.decode()).items()}
        if form["To"] in self.fail_numbers:
            return httpx.Response(
                400,
                json={"code": 21211, "message": f"The 'To' number {form['To']} is not a valid phone number."},
            )
        self.sent.append(form)
        return httpx.Response(201, json={"sid": f"SM{len(self.sent):032d}", "status": "queued"})

    def transport(self) -> httpx.MockTransport:
        return httpx.MockTransport(self.handler)


class SmtpStub:
    def __init__(self):
        self.messages: list[EmailMessage] = []
        self.fail_addresses: set[str] = set()
        self.delay: float = 0

    async def send(self, msg: EmailMessage) -> None:
        if self.delay:
            await asyncio.sleep(self.delay)
        if str(msg["To"]) in self.fail_addresses:
            raise aiosmtplib.SMTPResponseException(550, "Mailbox unavailable")
        self.messages.append(msg)


@pytest.fixture
def twilio() -> TwilioStub:
    return TwilioStub()


@pytest.fixture
def smtp() -> SmtpStub:
    return SmtpStub()


@pytest_asyncio.fixture
async def sms_gateway(twilio) -> AsyncGenerator[SmsGateway, None]:
    gateway = SmsGateway(TWILIO_CONFIG, transport=twilio.transport())
    yield gateway
    await gateway.close()


@pytest.fixture
def email_gateway(smtp) -> EmailGateway:
    return EmailGateway(SMTP_CONFIG, sender=smtp.send)


# ── Pipeline ─────────────────────────────────────────────────────────────


@pytest.fixture
def test_settings() -> Settings:
    return Settings(
        DEDUP_WINDOW_HOURS=24,
        FANOUT_CONCURRENCY=4,
        CHANNEL_TIMEOUT_SECONDS=2,
        BATCH_CONCURRENCY=4,
        GUARDIAN_ESCALATION_LEVELS="HIGH,CRITICAL",
    )


@pytest_asyncio.fixture
async def pipeline(directory, sms_gateway, email_gateway, clock, test_settings) -> EscalationPipeline:
    store = DeduplicationStore(directory, window=timedelta(hours=24), clock=clock)
    return build_pipeline(
        session_factory=directory,
        sms=sms_gateway,
        email=email_gateway,
        store=store,
        config=test_settings,
    )


# ── API ──────────────────────────────────────────────────────────────────


@pytest_asyncio.fixture
async def client(pipeline) -> AsyncGenerator[httpx.AsyncClient, None]:
    """Async test client over an app wired to the stub pipeline."""
    app = create_app(pipeline)
    async with httpx.AsyncClient(transport=httpx.ASGITransport(app=app), base_url="http://test") as c:
        yield c
