import uuid
from django.db import models


class JobType(models.TextChoices):
    LEAD_FOLLOW_UP = "LEAD_FOLLOW_UP"
    COMPLIANCE_REMINDER = "COMPLIANCE_REMINDER"
    OWNER_NOTIFICATION = "OWNER_NOTIFICATION"


class JobStatus(models.TextChoices):
    PENDING = "PENDING"
    SENT = "SENT"
    CANCELED = "CANCELED"
    FAILED = "FAILED"


def _default_max_attempts():
    from django.conf import settings
    return settings.JOB_MAX_ATTEMPTS


class Job(models.Model):
    """
    A unit of deferred work, executed by the job worker at or after run_at.

    Lifecycle only moves forward: PENDING -> SENT / CANCELED / FAILED, or
    PENDING -> PENDING on retry (attempts incremented, run_at pushed back).
    A worker holds a lease (locked_at/locked_by) while executing; an expired
    lease can be taken over by any other worker.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey("Tenant", on_delete=models.CASCADE, related_name="jobs")

    # What to do
    type = models.CharField(max_length=32, choices=JobType.choices)
    payload = models.JSONField(default=dict, blank=True)

    # When
    run_at = models.DateTimeField(db_index=True)

    # Execution tracking
    status = models.CharField(max_length=20, choices=JobStatus.choices, default=JobStatus.PENDING)
    locked_at = models.DateTimeField(null=True, blank=True)
    locked_by = models.CharField(max_length=100, null=True, blank=True)
    attempts = models.IntegerField(default=0)
    max_attempts = models.IntegerField(default=_default_max_attempts)
    last_error = models.TextField(null=True, blank=True)
    sent_at = models.DateTimeField(null=True, blank=True)
    canceled_at = models.DateTimeField(null=True, blank=True)

    # Conversation the job belongs to (compliance jobs carry neither)
    lead = models.ForeignKey(
        "Lead", on_delete=models.CASCADE, null=True, blank=True, related_name="jobs"
    )
    maintenance_request = models.ForeignKey(
        "MaintenanceRequest", on_delete=models.CASCADE, null=True, blank=True, related_name="jobs"
    )

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "jobs"
        ordering = ["run_at"]
        indexes = [
            models.Index(fields=["status", "run_at"], name="idx_job_status_run_at"),
        ]

    def __str__(self):
        return f"{self.type} at {self.run_at} ({self.status}, attempts={self.attempts})"
