"""
SMS Provider: the outbound messaging boundary.

Anything that can send a text implements send_sms(from_phone, to_phone, body)
and returns an SmsSendResult. The conversation engine, job executor and
missed-call handler receive a sender in their constructors, so tests and
local development swap in another implementation instead of patching.

SMS_PROVIDER=mock (the default) logs the message and returns a fake id;
SMS_PROVIDER=twilio sends through the Twilio REST API.
"""
import logging
import random
import time

from django.conf import settings

logger = logging.getLogger(__name__)


class SmsSendResult:
    def __init__(self, sid: str, provider: str):
        self.sid = sid
        self.provider = provider

    def __repr__(self):
        return f"SmsSendResult(sid={self.sid!r}, provider={self.provider!r})"


class MockSmsSender:
    """Logs outbound texts instead of sending them."""

    def __init__(self):
        self.name = "mock"

    def send_sms(self, from_phone: str, to_phone: str, body: str) -> SmsSendResult:
        sid = f"MOCK_{int(time.time() * 1000)}_{random.randint(0, 999_999)}"
        logger.info("[sms:mock] OUTBOUND from=%s to=%s sid=%s body=%r", from_phone, to_phone, sid, body)
        return SmsSendResult(sid=sid, provider=self.name)


class TwilioSmsSender:
    """Sends texts through Twilio. Errors propagate so the caller can retry."""

    def __init__(self, account_sid: str | None = None, auth_token: str | None = None):
        from twilio.rest import Client

        account_sid = account_sid or settings.TWILIO_ACCOUNT_SID
        auth_token = auth_token or settings.TWILIO_AUTH_TOKEN
        if not account_sid or not auth_token:
            raise ValueError("TWILIO_ACCOUNT_SID and TWILIO_AUTH_TOKEN are required for Twilio SMS sending")

        self.name = "twilio"
        self.client = Client(account_sid, auth_token)

    def send_sms(self, from_phone: str, to_phone: str, body: str) -> SmsSendResult:
        message = self.client.messages.create(to=to_phone, from_=from_phone, body=body)
        logger.info("[sms:twilio] OUTBOUND to=%s sid=%s", to_phone, message.sid)
        return SmsSendResult(sid=message.sid, provider=self.name)


def get_sms_sender():
    """Build the sender configured by SMS_PROVIDER."""
    if settings.SMS_PROVIDER == "twilio":
        return TwilioSmsSender()
    return MockSmsSender()
