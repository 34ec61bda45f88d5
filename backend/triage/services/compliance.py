"""
Compliance Policy Engine

Derives a document's status from its expiry date and the tenant's policy,
and turns the policy into a concrete set of reminder jobs:

- derive_policy()                    : tolerant parse of Tenant.compliance_policy
- derive_status()                    : OK / DUE_SOON / OVERDUE / MISSING
- compute_reminder_events()          : DUE_SOON thresholds + one OVERDUE reminder
- schedule_reminders_for_document()  : cancel pending reminders, insert fresh set
- schedule_reminders_for_tenant()    : resync every document (django-q sweep)
"""
import logging
import math
from datetime import datetime, timedelta

from django.db import transaction

from triage.models.compliance_document import ComplianceDocument, ComplianceStatus
from triage.models.job import Job, JobStatus, JobType
from triage.utils import utcnow

logger = logging.getLogger(__name__)

DEFAULT_DUE_SOON_DAYS = [30, 14, 7]
DEFAULT_OVERDUE_REMINDER_DAYS = 7

REMINDER_DUE_SOON = "DUE_SOON"
REMINDER_OVERDUE = "OVERDUE"


class CompliancePolicy:
    """due_soon_days is sorted descending, distinct and positive."""
    def __init__(self, due_soon_days: list[int], overdue_reminder_days: int):
        self.due_soon_days = due_soon_days
        self.overdue_reminder_days = overdue_reminder_days


class ReminderEvent:
    def __init__(self, run_at: datetime, reminder_kind: str, threshold_days: int | None):
        self.run_at = run_at
        self.reminder_kind = reminder_kind
        self.threshold_days = threshold_days

    def __repr__(self):
        return f"ReminderEvent({self.reminder_kind}, {self.run_at.isoformat()}, threshold={self.threshold_days})"


def _is_finite_number(value) -> bool:
    return isinstance(value, (int, float)) and not isinstance(value, bool) and math.isfinite(value)


def derive_policy(source) -> CompliancePolicy:
    """Parse a policy JSON blob, falling back to defaults field by field."""
    if not isinstance(source, dict):
        return CompliancePolicy(list(DEFAULT_DUE_SOON_DAYS), DEFAULT_OVERDUE_REMINDER_DAYS)

    due_soon_raw = source.get("dueSoonDays")
    if isinstance(due_soon_raw, list):
        cleaned = {max(1, math.floor(v)) for v in due_soon_raw if _is_finite_number(v)}
        due_soon_days = sorted(cleaned, reverse=True)
    else:
        due_soon_days = []

    overdue_raw = source.get("overdueReminderDays")
    if _is_finite_number(overdue_raw):
        overdue_reminder_days = max(1, math.floor(overdue_raw))
    else:
        overdue_reminder_days = DEFAULT_OVERDUE_REMINDER_DAYS

    return CompliancePolicy(
        due_soon_days=due_soon_days or list(DEFAULT_DUE_SOON_DAYS),
        overdue_reminder_days=overdue_reminder_days,
    )


def derive_status(expiry: datetime | None, now: datetime, policy: CompliancePolicy) -> str:
    if expiry is None:
        return ComplianceStatus.MISSING

    days_to_expiry = math.ceil((expiry - now).total_seconds() / 86400)
    if days_to_expiry < 0:
        return ComplianceStatus.OVERDUE
    if days_to_expiry <= max(policy.due_soon_days):
        return ComplianceStatus.DUE_SOON
    return ComplianceStatus.OK


def compute_reminder_events(
    expiry: datetime | None, policy: CompliancePolicy, now: datetime,
) -> list[ReminderEvent]:
    """
    One DUE_SOON event per threshold that is still ahead of `now`, plus exactly
    one OVERDUE event at expiry + overdue_reminder_days (pulled forward to
    now + 1s when that moment has already passed). Sorted by run time.
    """
    if expiry is None:
        return []

    events = []
    for days in policy.due_soon_days:
        run_at = expiry - timedelta(days=days)
        if run_at > now:
            events.append(ReminderEvent(run_at, REMINDER_DUE_SOON, days))

    overdue_at = expiry + timedelta(days=policy.overdue_reminder_days)
    if overdue_at <= now:
        overdue_at = now + timedelta(seconds=1)
    events.append(ReminderEvent(overdue_at, REMINDER_OVERDUE, None))

    return sorted(events, key=lambda event: event.run_at)


def reminder_payload(document_id, reminder_kind: str, threshold_days: int | None) -> dict:
    return {
        "complianceDocumentId": str(document_id),
        "reminderKind": reminder_kind,
        "thresholdDays": threshold_days,
    }


def cancel_pending_reminders_for_document(document_id, reason: str) -> int:
    return (
        Job.objects
        .filter(
            type=JobType.COMPLIANCE_REMINDER,
            status=JobStatus.PENDING,
            payload__complianceDocumentId=str(document_id),
        )
        .update(status=JobStatus.CANCELED, canceled_at=utcnow(), last_error=reason, updated_at=utcnow())
    )


def schedule_reminders_for_document(document_id, now: datetime | None = None) -> int:
    """
    Rebuild a document's reminder schedule. Idempotent: existing PENDING
    reminders are cancelled before the fresh set is inserted.
    Returns the number of jobs created.
    """
    now = now or utcnow()

    with transaction.atomic():
        document = (
            ComplianceDocument.objects
            .select_for_update()
            .select_related("tenant")
            .filter(id=document_id)
            .first()
        )
        if document is None:
            logger.warning("Compliance document %s not found; nothing to schedule", document_id)
            return 0

        policy = derive_policy(document.tenant.compliance_policy)
        document.status = derive_status(document.expiry_date, now, policy)
        document.save(update_fields=["status", "updated_at"])

        cancelled = cancel_pending_reminders_for_document(
            document.id, "Replaced by latest compliance schedule.",
        )

        events = compute_reminder_events(document.expiry_date, policy, now)
        Job.objects.bulk_create([
            Job(
                tenant_id=document.tenant_id,
                type=JobType.COMPLIANCE_REMINDER,
                status=JobStatus.PENDING,
                run_at=event.run_at,
                payload=reminder_payload(document.id, event.reminder_kind, event.threshold_days),
            )
            for event in events
        ])

    logger.info(
        "Rescheduled compliance document %s (%s): cancelled=%d created=%d",
        document.id, document.status, cancelled, len(events),
    )
    return len(events)


def schedule_reminders_for_tenant(tenant_id) -> int:
    document_ids = ComplianceDocument.objects.filter(tenant_id=tenant_id).values_list("id", flat=True)
    return sum(schedule_reminders_for_document(document_id) for document_id in list(document_ids))


def resync_all_compliance_schedules() -> str:
    """
    Runs daily via django-q Schedule. Rebuilds every tenant's reminder set so
    policy edits and expiry changes made outside the API are picked up.
    """
    from triage.models.tenant import Tenant

    created = 0
    for tenant_id in Tenant.objects.values_list("id", flat=True):
        try:
            created += schedule_reminders_for_tenant(tenant_id)
        except Exception:
            logger.exception("Failed to resync compliance schedule for tenant %s", tenant_id)

    return f"compliance resync complete: {created} reminder jobs scheduled"
