import uuid
from django.db import models


class CallOutcome(models.TextChoices):
    ANSWERED = "ANSWERED"
    NO_ANSWER = "NO_ANSWER"
    BUSY = "BUSY"
    FAILED = "FAILED"


class Call(models.Model):
    """Telephony event log, upserted by the provider's call id."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey("Tenant", on_delete=models.CASCADE, related_name="calls")

    external_call_id = models.CharField(max_length=64, unique=True, null=True, blank=True)
    caller_phone = models.CharField(max_length=32)
    to_phone = models.CharField(max_length=32)

    dial_status = models.CharField(max_length=32, null=True, blank=True)
    outcome = models.CharField(max_length=20, choices=CallOutcome.choices)
    answered = models.BooleanField(default=False)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "calls"
        ordering = ["-created_at"]

    def __str__(self):
        return f"Call {self.caller_phone} ({self.outcome})"
