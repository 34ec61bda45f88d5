import uuid
from django.db import models


class LeadIntent(models.TextChoices):
    UNKNOWN = "UNKNOWN"
    VIEWING = "VIEWING"
    MAINTENANCE = "MAINTENANCE"
    GENERAL = "GENERAL"


class LeadStatus(models.TextChoices):
    OPEN = "OPEN"
    QUALIFIED = "QUALIFIED"
    SCHEDULED = "SCHEDULED"
    NEEDS_HUMAN = "NEEDS_HUMAN"
    CLOSED = "CLOSED"
    OUT_OF_AREA = "OUT_OF_AREA"
    OPTED_OUT = "OPTED_OUT"


ACTIVE_LEAD_STATUSES = (LeadStatus.OPEN, LeadStatus.QUALIFIED)

# No automated step or follow-up runs once a lead reaches one of these
TERMINAL_LEAD_STATUSES = frozenset({
    LeadStatus.CLOSED,
    LeadStatus.OPTED_OUT,
    LeadStatus.OUT_OF_AREA,
    LeadStatus.NEEDS_HUMAN,
    LeadStatus.SCHEDULED,
})


class Lead(models.Model):
    """
    A viewing or general enquiry conversation with a caller.

    Created on first contact (missed call or first text) and advanced one
    flow step per inbound message. Only the most recent OPEN/QUALIFIED lead
    for a (tenant, caller phone) pair is ever considered active.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey("Tenant", on_delete=models.CASCADE, related_name="leads")

    caller_phone = models.CharField(max_length=32)
    source_call_id = models.CharField(max_length=64, null=True, blank=True)

    intent = models.CharField(max_length=20, choices=LeadIntent.choices, default=LeadIntent.UNKNOWN)
    status = models.CharField(max_length=20, choices=LeadStatus.choices, default=LeadStatus.OPEN)

    # Which field the conversation is collecting next
    flow_step = models.IntegerField(default=0)

    # Collected details
    name = models.CharField(max_length=200, null=True, blank=True)
    desired_area = models.CharField(max_length=200, null=True, blank=True)
    postcode = models.CharField(max_length=16, null=True, blank=True)
    property_query = models.TextField(null=True, blank=True)
    requirements = models.TextField(null=True, blank=True)
    notes = models.TextField(null=True, blank=True)

    first_outbound_at = models.DateTimeField(null=True, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "leads"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["tenant", "caller_phone", "status"], name="idx_lead_tenant_phone"),
        ]

    def __str__(self):
        return f"Lead {self.caller_phone} ({self.intent}/{self.status}, step {self.flow_step})"

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_LEAD_STATUSES
