"""
Missed-call triage.

When a forwarded call ends without being answered, the caller gets the
triage menu by text, two follow-ups are queued and the agency owner is told.
Answered calls are only logged.
"""
import logging
from datetime import datetime

from triage.models.call import Call, CallOutcome
from triage.models.job import Job, JobType
from triage.models.lead import Lead, LeadIntent, LeadStatus
from triage.models.tenant import Tenant
from triage.services.outbound import notify_owner, send_and_log
from triage.services.scheduling import compute_missed_call_follow_up_run_times
from triage.services.templates import resolve_template
from triage.utils import utcnow

logger = logging.getLogger(__name__)

MISSED_CALL_FOLLOW_UP = "MISSED_CALL_FOLLOW_UP"

_MISSED_STATUSES = {
    "no-answer": CallOutcome.NO_ANSWER,
    "busy": CallOutcome.BUSY,
    "failed": CallOutcome.FAILED,
}


class DialStatusClassification:
    def __init__(self, outcome: str, answered: bool, should_start_triage: bool):
        self.outcome = outcome
        self.answered = answered
        self.should_start_triage = should_start_triage


class DialStatusEvent:
    def __init__(self, tenant_id, from_phone: str, to_phone: str,
                 external_call_id: str | None = None, dial_status: str | None = None):
        self.tenant_id = tenant_id
        self.from_phone = from_phone
        self.to_phone = to_phone
        self.external_call_id = external_call_id or None
        self.dial_status = dial_status


def classify_dial_status(raw: str | None) -> DialStatusClassification:
    outcome = _MISSED_STATUSES.get((raw or "").strip().lower())
    if outcome is None:
        return DialStatusClassification(CallOutcome.ANSWERED, answered=True, should_start_triage=False)
    return DialStatusClassification(outcome, answered=False, should_start_triage=True)


def _record_call(tenant, event, classification) -> Call:
    fields = {
        "tenant": tenant,
        "caller_phone": event.from_phone,
        "to_phone": event.to_phone,
        "dial_status": event.dial_status,
        "outcome": classification.outcome,
        "answered": classification.answered,
    }
    if event.external_call_id:
        call, _ = Call.objects.update_or_create(external_call_id=event.external_call_id, defaults=fields)
        return call
    return Call.objects.create(**fields)


def handle_dial_status(event: DialStatusEvent, sender, now: datetime | None = None) -> dict:
    """
    Record the call and, for missed calls, start triage.
    Raises Tenant.DoesNotExist for an unknown tenant id.
    """
    tenant = Tenant.objects.get(id=event.tenant_id)
    classification = classify_dial_status(event.dial_status)
    call = _record_call(tenant, event, classification)

    if not classification.should_start_triage:
        return {"call_id": str(call.id), "lead_id": None, "triage_started": False}

    now = now or utcnow()
    lead = Lead.objects.create(
        tenant=tenant,
        caller_phone=event.from_phone,
        source_call_id=event.external_call_id,
        status=LeadStatus.OPEN,
        intent=LeadIntent.UNKNOWN,
        flow_step=0,
        first_outbound_at=now,
    )

    send_and_log(sender, tenant, event.from_phone, resolve_template(tenant, "missedCallTriage"), lead=lead)

    run_times = compute_missed_call_follow_up_run_times(now, tenant.timezone)
    Job.objects.bulk_create([
        Job(
            tenant=tenant,
            type=JobType.LEAD_FOLLOW_UP,
            run_at=run_at,
            lead=lead,
            payload={
                "reason": MISSED_CALL_FOLLOW_UP,
                "followUpSequence": sequence,
                "leadId": str(lead.id),
                "callerPhone": event.from_phone,
            },
        )
        for sequence, run_at in enumerate(run_times, start=1)
    ])

    notify_owner(
        sender, tenant,
        f"Missed call from {event.from_phone}. Triage SMS was sent and follow-ups are scheduled.",
        lead=lead,
    )

    logger.info(
        "Missed call (%s) from %s for tenant %s: lead %s, %d follow-ups queued",
        classification.outcome, event.from_phone, tenant.id, lead.id, len(run_times),
    )
    return {"call_id": str(call.id), "lead_id": str(lead.id), "triage_started": True}
