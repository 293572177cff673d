"""
Pytest configuration and shared fixtures.

Test environment variables are set here before any app import, and the
settings cache is cleared so they take effect.
"""

import os

os.environ.setdefault("DATABASE_URL", "sqlite:///./test_burst_sms.db")
os.environ.setdefault("LOG_LEVEL", "WARNING")
os.environ.setdefault("INTERNAL_GATEWAY_TOKEN", "test-internal-token")
os.environ.setdefault("TELNYX_API_KEY", "test-telnyx-key")

import pytest

from burst_sms.config import get_settings
get_settings.cache_clear()

from fastapi.testclient import TestClient

from burst_sms.exceptions import GatewayTransportError
from burst_sms.gateway import GatewayResponse
from burst_sms.main import app, get_gateway_factory
from burst_sms.models import Lead, MessageRecord, ReplyPrompt
from burst_sms.storage import SessionLocal, Base, engine


TEST_TOKEN = os.environ["INTERNAL_GATEWAY_TOKEN"]
AUTH_HEADERS = {"Authorization": f"Bearer {TEST_TOKEN}"}

ORG_ID = "org-1"
ORG_NUMBER = "+15550001111"


class FakeGateway:
    """
    Stands in for TelnyxClient. Each send() consumes the next scripted
    reply; a reply that is an exception is raised instead of returned.
    Unscripted sends succeed with a generated id.
    """

    def __init__(self, replies=None):
        self.replies = list(replies or [])
        self.calls = []

    def send(self, to, from_, text, media_urls=None, **kwargs):
        self.calls.append({"to": to, "from": from_, "text": text, "media_urls": media_urls})
        if self.replies:
            reply = self.replies.pop(0)
        else:
            reply = GatewayResponse(ok=True, data={"data": {"id": f"tx-{len(self.calls)}"}}, status_code=200)
        if isinstance(reply, Exception):
            raise reply
        return reply

    def send_group_mms(self, to, from_, text, media_urls=None):
        self.calls.append({"to": to, "from": from_, "text": text, "media_urls": media_urls, "group": True})
        return GatewayResponse(ok=True, data={"data": {"id": "group-1"}}, status_code=200)


def ok_reply(message_id):
    return GatewayResponse(ok=True, data={"data": {"id": message_id}}, status_code=200)


def rejected_reply(error="Invalid destination number"):
    return GatewayResponse(ok=False, data={"errors": [{"detail": error}]}, error=error, status_code=422)


def transport_error(message="Gateway request timed out after 15.0s"):
    return GatewayTransportError(message)


@pytest.fixture(scope="function")
def db():
    """Fresh tables and a session for each test."""
    Base.metadata.create_all(bind=engine)
    session = SessionLocal()
    try:
        yield session
    finally:
        session.close()
        Base.metadata.drop_all(bind=engine)


@pytest.fixture
def gateway():
    return FakeGateway()


@pytest.fixture(scope="function")
def client(db, gateway):
    """Test client wired to the fake gateway."""
    app.dependency_overrides[get_gateway_factory] = lambda: (lambda: gateway)
    with TestClient(app) as test_client:
        yield test_client
    app.dependency_overrides.clear()


def add_lead(db, phone, opt_in=None, message_status="queued", org_id=ORG_ID):
    lead = Lead(org_id=org_id, phone=phone, opt_in=opt_in, message_status=message_status)
    db.add(lead)
    db.commit()
    db.refresh(lead)
    return lead


def add_queued(db, lead, text="Hi from the team", org_id=ORG_ID, from_number=ORG_NUMBER):
    record = MessageRecord(
        org_id=org_id,
        lead_id=lead.id if lead is not None else None,
        number=lead.phone if lead is not None else "+15559990000",
        from_number=from_number,
        message=text,
        direction="outbound",
        status="queued",
    )
    db.add(record)
    db.commit()
    db.refresh(record)
    return record


def add_prompt(db, reply_message, org_id=ORG_ID):
    prompt = ReplyPrompt(org_id=org_id, reply_message=reply_message)
    db.add(prompt)
    db.commit()
    return prompt


def fetch(db, model, pk):
    """Re-read a row from the database, bypassing the session identity map."""
    db.expire_all()
    return db.get(model, pk)
