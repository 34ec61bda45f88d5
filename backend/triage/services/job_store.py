"""
Job Store: lease acquisition and lifecycle finalisers for the jobs table.

Claiming is a short transaction: lock the due rows (skipping rows another
worker already holds), stamp them with our lease, commit. Execution happens
outside the transaction. A lease older than the lease timeout is treated as
abandoned, so a crashed worker's jobs are picked up again (at-least-once).

Every finaliser is a conditional UPDATE on status=PENDING. A job that has
already been sent, cancelled or failed is never moved again.
"""
import logging
from datetime import datetime, timedelta

from django.db import transaction
from django.db.models import Q

from triage.models.job import Job, JobStatus
from triage.models.lead import Lead, TERMINAL_LEAD_STATUSES
from triage.models.maintenance_request import MaintenanceRequest, TERMINAL_MAINTENANCE_STATUSES
from triage.utils import utcnow

logger = logging.getLogger(__name__)

CLOSED_CONVERSATION_REASON = "Conversation reached terminal status before job execution."


def _claimable(now: datetime, lease_timeout: timedelta) -> Q:
    return (
        Q(status=JobStatus.PENDING, run_at__lte=now)
        & (Q(locked_at__isnull=True) | Q(locked_at__lte=now - lease_timeout))
    )


def claim_due_jobs(
    worker_id: str, batch_size: int, lease_timeout: timedelta, now: datetime | None = None,
) -> list[Job]:
    """
    Lease up to batch_size due jobs for worker_id.
    Returns the claimed jobs ordered by run_at ascending.
    """
    now = now or utcnow()

    with transaction.atomic():
        ids = list(
            Job.objects
            .select_for_update(skip_locked=True)
            .filter(_claimable(now, lease_timeout))
            .order_by("run_at")
            .values_list("id", flat=True)[:batch_size]
        )
        if not ids:
            return []

        # Re-check eligibility in the UPDATE itself; on backends without row
        # locks this is what keeps two workers off the same row.
        Job.objects.filter(_claimable(now, lease_timeout), id__in=ids).update(
            locked_at=now, locked_by=worker_id, updated_at=now,
        )

    return list(
        Job.objects
        .select_related("tenant")
        .filter(id__in=ids, locked_by=worker_id, locked_at=now, status=JobStatus.PENDING)
        .order_by("run_at")
    )


def mark_job_sent(job: Job, now: datetime | None = None) -> bool:
    now = now or utcnow()
    updated = Job.objects.filter(id=job.id, status=JobStatus.PENDING).update(
        status=JobStatus.SENT,
        sent_at=now,
        attempts=job.attempts + 1,
        locked_at=None,
        locked_by=None,
        last_error=None,
        updated_at=now,
    )
    if updated:
        job.status = JobStatus.SENT
        job.sent_at = now
        job.attempts += 1
        job.locked_at = job.locked_by = job.last_error = None
    else:
        logger.warning("Job %s was no longer pending when marking it sent", job.id)
    return bool(updated)


def mark_job_canceled(job: Job, reason: str, now: datetime | None = None) -> bool:
    now = now or utcnow()
    updated = Job.objects.filter(id=job.id, status=JobStatus.PENDING).update(
        status=JobStatus.CANCELED,
        canceled_at=now,
        locked_at=None,
        locked_by=None,
        last_error=reason,
        updated_at=now,
    )
    if updated:
        job.status = JobStatus.CANCELED
        job.canceled_at = now
        job.locked_at = job.locked_by = None
        job.last_error = reason
        logger.info("Job %s (%s) cancelled: %s", job.id, job.type, reason)
    return bool(updated)


def mark_job_retry_or_failed(
    job: Job, error, retry_delay: timedelta, now: datetime | None = None,
) -> str:
    """
    Record a failed attempt. Returns "failed" once attempts reach
    max_attempts, otherwise "retried" with run_at pushed back by retry_delay.
    """
    now = now or utcnow()
    attempts = job.attempts + 1
    reason = str(error) or error.__class__.__name__

    if attempts >= job.max_attempts:
        Job.objects.filter(id=job.id, status=JobStatus.PENDING).update(
            status=JobStatus.FAILED,
            attempts=attempts,
            last_error=reason,
            locked_at=None,
            locked_by=None,
            updated_at=now,
        )
        job.status = JobStatus.FAILED
        outcome = "failed"
        logger.error(
            "Job %s (%s) failed permanently after %d attempts: %s",
            job.id, job.type, attempts, reason,
        )
    else:
        job.run_at = now + retry_delay
        Job.objects.filter(id=job.id, status=JobStatus.PENDING).update(
            attempts=attempts,
            run_at=job.run_at,
            last_error=reason,
            locked_at=None,
            locked_by=None,
            updated_at=now,
        )
        outcome = "retried"
        logger.warning(
            "Job %s (%s) attempt %d/%d failed, retrying at %s: %s",
            job.id, job.type, attempts, job.max_attempts, job.run_at.isoformat(), reason,
        )

    job.attempts = attempts
    job.last_error = reason
    job.locked_at = job.locked_by = None
    return outcome


def cancel_jobs_for_conversation(lead=None, maintenance_request=None, reason: str = "") -> int:
    """Cancel every PENDING job linked to a lead and/or maintenance request."""
    clauses = Q()
    if lead is not None:
        clauses |= Q(lead_id=lead.id) | Q(payload__leadId=str(lead.id))
    if maintenance_request is not None:
        clauses |= Q(maintenance_request_id=maintenance_request.id)
    if not clauses:
        return 0

    now = utcnow()
    return Job.objects.filter(clauses, status=JobStatus.PENDING).update(
        status=JobStatus.CANCELED,
        canceled_at=now,
        locked_at=None,
        locked_by=None,
        last_error=reason,
        updated_at=now,
    )


def cancel_pending_jobs_for_closed_conversations() -> int:
    closed_leads = Lead.objects.filter(status__in=TERMINAL_LEAD_STATUSES).values("id")
    closed_requests = MaintenanceRequest.objects.filter(
        status__in=TERMINAL_MAINTENANCE_STATUSES,
    ).values("id")

    now = utcnow()
    return (
        Job.objects
        .filter(status=JobStatus.PENDING)
        .filter(Q(lead_id__in=closed_leads) | Q(maintenance_request_id__in=closed_requests))
        .update(
            status=JobStatus.CANCELED,
            canceled_at=now,
            last_error=CLOSED_CONVERSATION_REASON,
            updated_at=now,
        )
    )
