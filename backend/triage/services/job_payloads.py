"""
Job payload decoding.

Each job type has exactly one payload shape. decode_payload() validates the
stored JSON against that shape and returns a typed payload object; any
violation (or an unknown job type) raises JobPayloadError, which the
executor turns into a cancellation rather than a retry.
"""
from uuid import UUID

from triage.models.job import JobType
from triage.serializers import (
    ComplianceReminderPayloadSerializer,
    LeadFollowUpPayloadSerializer,
    OwnerNotificationPayloadSerializer,
)


class JobPayloadError(ValueError):
    pass


class LeadFollowUpPayload:
    def __init__(self, lead_id: UUID | None, follow_up_sequence: int, reason: str | None = None,
                 caller_phone: str | None = None):
        self.lead_id = lead_id
        self.follow_up_sequence = follow_up_sequence
        self.reason = reason
        self.caller_phone = caller_phone


class ComplianceReminderPayload:
    def __init__(self, compliance_document_id: UUID, reminder_kind: str, threshold_days: int | None):
        self.compliance_document_id = compliance_document_id
        self.reminder_kind = reminder_kind
        self.threshold_days = threshold_days


class OwnerNotificationPayload:
    def __init__(self, body: str | None, to_phone: str | None):
        self.body = body
        self.to_phone = to_phone


def _validated(serializer_class, job) -> dict:
    if not isinstance(job.payload, dict):
        raise JobPayloadError(f"{job.type} payload must be a JSON object.")
    serializer = serializer_class(data=job.payload)
    if not serializer.is_valid():
        raise JobPayloadError(f"Invalid {job.type} payload: {dict(serializer.errors)}")
    return serializer.validated_data


def decode_payload(job):
    if job.type == JobType.LEAD_FOLLOW_UP:
        data = _validated(LeadFollowUpPayloadSerializer, job)
        return LeadFollowUpPayload(
            lead_id=data.get("leadId"),
            follow_up_sequence=data.get("followUpSequence") or 1,
            reason=data.get("reason"),
            caller_phone=data.get("callerPhone"),
        )

    if job.type == JobType.COMPLIANCE_REMINDER:
        data = _validated(ComplianceReminderPayloadSerializer, job)
        return ComplianceReminderPayload(
            compliance_document_id=data["complianceDocumentId"],
            reminder_kind=data["reminderKind"],
            threshold_days=data.get("thresholdDays"),
        )

    if job.type == JobType.OWNER_NOTIFICATION:
        data = _validated(OwnerNotificationPayloadSerializer, job)
        return OwnerNotificationPayload(body=data.get("body"), to_phone=data.get("toPhone"))

    raise JobPayloadError(f"Unsupported job type: {job.type}")
