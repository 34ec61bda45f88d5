import pytest

from triage.models import Tenant
from triage.providers.sms_provider import SmsSendResult
from triage.services.conversation import ConversationEngine, InboundSms
from triage.services.extraction import SignalExtractor

CALLER = "+447700900123"
OWNER = "+447700900001"
INBOUND_NUMBER = "+441610000000"


class RecordingSender:
    """Captures outbound texts instead of sending them."""

    def __init__(self):
        self.sent = []

    def send_sms(self, from_phone, to_phone, body):
        self.sent.append({"from": from_phone, "to": to_phone, "body": body})
        return SmsSendResult(sid=f"TEST_{len(self.sent)}", provider="test")

    def bodies_to(self, phone):
        return [msg["body"] for msg in self.sent if msg["to"] == phone]


class FailingSender:
    def send_sms(self, from_phone, to_phone, body):
        raise RuntimeError("provider unavailable")


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def tenant(db):
    return Tenant.objects.create(
        name="Riverside Lettings",
        inbound_phone_number=INBOUND_NUMBER,
        owner_notification_phone_number=OWNER,
        timezone="Europe/London",
        booking_url_viewings="https://book.example.com/viewings",
    )


@pytest.fixture
def engine(sender):
    return ConversationEngine(sender=sender, extractor=SignalExtractor(use_openai=False))


@pytest.fixture
def text(engine, tenant):
    """Deliver an inbound text from CALLER and return the branch label."""
    def _text(body, phone=CALLER):
        return engine.handle_inbound_sms(InboundSms(
            tenant=tenant, from_phone=phone, to_phone=INBOUND_NUMBER, body=body,
        ))
    return _text
