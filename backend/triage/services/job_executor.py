"""
Job Executor: performs one claimed job and finalises it.

execute() returns "SENT" or "CANCELED". Anything that means "this job can
never succeed" (bad payload, missing entity, terminal conversation, opt-out)
is a cancellation. Transport and database errors propagate so the worker can
apply retry-or-fail.
"""
import logging
from datetime import datetime, timedelta

from triage.models.compliance_document import ComplianceDocument, ComplianceStatus
from triage.models.job import Job, JobStatus, JobType
from triage.models.lead import ACTIVE_LEAD_STATUSES, Lead, LeadStatus
from triage.models.opt_out import OptOut
from triage.services.compliance import (
    REMINDER_OVERDUE, derive_policy, derive_status, reminder_payload,
)
from triage.services.job_payloads import JobPayloadError, decode_payload
from triage.services.job_store import mark_job_canceled, mark_job_sent
from triage.services.outbound import send_and_log
from triage.services.templates import resolve_template
from triage.utils import utcnow

logger = logging.getLogger(__name__)


def compliance_reminder_body(document: ComplianceDocument, status: str) -> str:
    if document.expiry_date:
        expiry_part = f"Expiry: {document.expiry_date.date().isoformat()}."
    else:
        expiry_part = "No expiry date."
    return (
        f"Compliance reminder: {document.document_type} for {document.property.property_ref} "
        f"is {status}. {expiry_part}"
    )


class JobExecutor:
    def __init__(self, sender):
        self.sender = sender
        self._handlers = {
            JobType.LEAD_FOLLOW_UP: self._execute_lead_follow_up,
            JobType.COMPLIANCE_REMINDER: self._execute_compliance_reminder,
            JobType.OWNER_NOTIFICATION: self._execute_owner_notification,
        }

    def execute(self, job: Job, now: datetime | None = None) -> str:
        now = now or utcnow()
        try:
            payload = decode_payload(job)
        except JobPayloadError as e:
            return self._cancel(job, str(e), now)

        handler = self._handlers.get(job.type)
        if handler is None:
            return self._cancel(job, f"Unsupported job type: {job.type}", now)
        return handler(job, payload, now)

    def _cancel(self, job: Job, reason: str, now: datetime) -> str:
        mark_job_canceled(job, reason, now=now)
        return JobStatus.CANCELED

    def _sent(self, job: Job, now: datetime) -> str:
        mark_job_sent(job, now=now)
        return JobStatus.SENT

    # ─── LEAD_FOLLOW_UP ──────────────────────────────────────────────────

    def _execute_lead_follow_up(self, job, payload, now):
        lead_id = job.lead_id or payload.lead_id
        if not lead_id:
            return self._cancel(job, "Missing leadId on follow-up job payload.", now)

        lead = Lead.objects.select_related("tenant").filter(id=lead_id).first()
        if lead is None:
            return self._cancel(job, f"Lead not found: {lead_id}", now)

        if lead.is_terminal:
            return self._cancel(job, f"Lead status {lead.status} is terminal for follow-up.", now)

        if OptOut.is_active_for(lead.tenant_id, lead.caller_phone):
            Lead.objects.filter(id=lead.id, status__in=ACTIVE_LEAD_STATUSES).update(
                status=LeadStatus.OPTED_OUT, updated_at=now,
            )
            return self._cancel(job, "Caller has opted out.", now)

        key = "leadFollowUpFirst" if payload.follow_up_sequence <= 1 else "leadFollowUpSecond"
        body = resolve_template(lead.tenant, key)
        if not body:
            return self._cancel(job, f"Template {key} resolved to an empty message.", now)

        send_and_log(self.sender, lead.tenant, lead.caller_phone, body, lead=lead)
        return self._sent(job, now)

    # ─── COMPLIANCE_REMINDER ─────────────────────────────────────────────

    def _execute_compliance_reminder(self, job, payload, now):
        document = (
            ComplianceDocument.objects
            .select_related("tenant", "property")
            .filter(id=payload.compliance_document_id)
            .first()
        )
        if document is None:
            return self._cancel(job, f"Compliance document not found: {payload.compliance_document_id}", now)

        tenant = document.tenant
        policy = derive_policy(tenant.compliance_policy)
        status = derive_status(document.expiry_date, now, policy)

        document.status = status
        document.last_reminder_at = now
        document.save(update_fields=["status", "last_reminder_at", "updated_at"])

        if status == ComplianceStatus.OK:
            return self._cancel(job, "Compliance document is no longer due/overdue.", now)

        if not tenant.owner_notification_phone_number:
            return self._cancel(job, "Tenant has no owner notification number.", now)

        send_and_log(
            self.sender, tenant, tenant.owner_notification_phone_number,
            compliance_reminder_body(document, status),
        )

        if status == ComplianceStatus.OVERDUE:
            self._ensure_next_overdue_reminder(job, document, policy, now)

        return self._sent(job, now)

    def _ensure_next_overdue_reminder(self, job, document, policy, now):
        has_pending_overdue = (
            Job.objects
            .filter(
                type=JobType.COMPLIANCE_REMINDER,
                status=JobStatus.PENDING,
                payload__complianceDocumentId=str(document.id),
                payload__reminderKind=REMINDER_OVERDUE,
            )
            .exclude(id=job.id)
            .exists()
        )
        if has_pending_overdue:
            return

        Job.objects.create(
            tenant_id=document.tenant_id,
            type=JobType.COMPLIANCE_REMINDER,
            run_at=now + timedelta(days=policy.overdue_reminder_days),
            payload=reminder_payload(document.id, REMINDER_OVERDUE, None),
        )
        logger.info(
            "Queued next overdue reminder for compliance document %s in %d days",
            document.id, policy.overdue_reminder_days,
        )

    # ─── OWNER_NOTIFICATION ──────────────────────────────────────────────

    def _execute_owner_notification(self, job, payload, now):
        if not payload.body or not payload.body.strip():
            return self._cancel(job, "Missing owner notification body in payload.", now)

        tenant = job.tenant
        to_phone = payload.to_phone or tenant.owner_notification_phone_number
        if not to_phone:
            return self._cancel(job, "No destination phone for owner notification.", now)

        send_and_log(
            self.sender, tenant, to_phone, payload.body,
            lead=job.lead, maintenance_request=job.maintenance_request,
        )
        return self._sent(job, now)
