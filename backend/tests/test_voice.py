import uuid
from datetime import datetime, timezone

import pytest

from conftest import CALLER, INBOUND_NUMBER, OWNER
from triage.models import Call, CallOutcome, Job, JobType, Lead, Tenant
from triage.services.templates import DEFAULT_TEMPLATES
from triage.services.voice import DialStatusEvent, classify_dial_status, handle_dial_status

FRIDAY_AFTERNOON = datetime(2026, 2, 13, 16, 0, tzinfo=timezone.utc)


@pytest.mark.parametrize("raw, outcome, triage", [
    ("no-answer", CallOutcome.NO_ANSWER, True),
    (" BUSY ", CallOutcome.BUSY, True),
    ("failed", CallOutcome.FAILED, True),
    ("completed", CallOutcome.ANSWERED, False),
    ("", CallOutcome.ANSWERED, False),
    (None, CallOutcome.ANSWERED, False),
])
def test_classify_dial_status(raw, outcome, triage):
    result = classify_dial_status(raw)
    assert result.outcome == outcome
    assert result.should_start_triage is triage
    assert result.answered is not triage


def _event(tenant, status, call_sid="CA123"):
    return DialStatusEvent(
        tenant_id=tenant.id, from_phone=CALLER, to_phone=INBOUND_NUMBER,
        external_call_id=call_sid, dial_status=status,
    )


@pytest.mark.django_db
def test_missed_call_starts_triage(tenant, sender):
    result = handle_dial_status(_event(tenant, "no-answer"), sender, now=FRIDAY_AFTERNOON)

    assert result["triage_started"] is True
    lead = Lead.objects.get()
    assert str(lead.id) == result["lead_id"]
    assert lead.source_call_id == "CA123"
    assert lead.first_outbound_at == FRIDAY_AFTERNOON

    assert [(m["to"], m["body"]) for m in sender.sent] == [
        (CALLER, DEFAULT_TEMPLATES["missedCallTriage"]),
        (OWNER, "Missed call from +447700900123. Triage SMS was sent and follow-ups are scheduled."),
    ]

    jobs = list(Job.objects.order_by("run_at"))
    assert [j.type for j in jobs] == [JobType.LEAD_FOLLOW_UP] * 2
    assert [j.payload["followUpSequence"] for j in jobs] == [1, 2]
    assert all(j.lead_id == lead.id and j.payload["reason"] == "MISSED_CALL_FOLLOW_UP" for j in jobs)
    assert [j.run_at for j in jobs] == [
        datetime(2026, 2, 13, 18, 0, tzinfo=timezone.utc),
        datetime(2026, 2, 16, 9, 30, tzinfo=timezone.utc),
    ]


@pytest.mark.django_db
def test_answered_call_is_only_logged(tenant, sender):
    result = handle_dial_status(_event(tenant, "completed"), sender)

    assert result == {"call_id": result["call_id"], "lead_id": None, "triage_started": False}
    assert Lead.objects.count() == 0
    assert Job.objects.count() == 0
    assert sender.sent == []
    assert Call.objects.get().answered is True


@pytest.mark.django_db
def test_repeated_callbacks_upsert_the_call(tenant, sender):
    handle_dial_status(_event(tenant, "ringing"), sender)
    handle_dial_status(_event(tenant, "busy"), sender)

    call = Call.objects.get()
    assert call.outcome == CallOutcome.BUSY
    assert call.dial_status == "busy"


@pytest.mark.django_db
def test_calls_without_sid_are_inserted(tenant, sender):
    handle_dial_status(_event(tenant, "completed", call_sid=None), sender)
    handle_dial_status(_event(tenant, "completed", call_sid=None), sender)

    assert Call.objects.count() == 2


@pytest.mark.django_db
def test_unknown_tenant_raises(sender):
    event = DialStatusEvent(tenant_id=uuid.uuid4(), from_phone=CALLER, to_phone=INBOUND_NUMBER,
                            dial_status="no-answer")
    with pytest.raises(Tenant.DoesNotExist):
        handle_dial_status(event, sender)
