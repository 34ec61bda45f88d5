import uuid
from django.db import models


class MaintenanceStatus(models.TextChoices):
    OPEN = "OPEN"
    LOGGED = "LOGGED"
    IN_PROGRESS = "IN_PROGRESS"
    NEEDS_HUMAN = "NEEDS_HUMAN"
    CLOSED = "CLOSED"
    OUT_OF_AREA = "OUT_OF_AREA"
    OPTED_OUT = "OPTED_OUT"


class Severity(models.TextChoices):
    ROUTINE = "ROUTINE"
    URGENT = "URGENT"
    EMERGENCY = "EMERGENCY"


ACTIVE_MAINTENANCE_STATUSES = (
    MaintenanceStatus.OPEN,
    MaintenanceStatus.LOGGED,
    MaintenanceStatus.IN_PROGRESS,
)

TERMINAL_MAINTENANCE_STATUSES = frozenset({
    MaintenanceStatus.CLOSED,
    MaintenanceStatus.NEEDS_HUMAN,
    MaintenanceStatus.OUT_OF_AREA,
    MaintenanceStatus.OPTED_OUT,
})


class MaintenanceRequest(models.Model):
    """
    A repair / incident conversation. Mirrors Lead, but collects address,
    issue and severity. A lead that turns out to be about maintenance is
    closed and a new request is opened for the same caller.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey("Tenant", on_delete=models.CASCADE, related_name="maintenance_requests")

    caller_phone = models.CharField(max_length=32)
    source_call_id = models.CharField(max_length=64, null=True, blank=True)

    status = models.CharField(
        max_length=20, choices=MaintenanceStatus.choices, default=MaintenanceStatus.OPEN
    )
    severity = models.CharField(max_length=20, choices=Severity.choices, null=True, blank=True)
    needs_human = models.BooleanField(default=False)
    flow_step = models.IntegerField(default=0)

    name = models.CharField(max_length=200, null=True, blank=True)
    property_address = models.TextField(null=True, blank=True)
    postcode = models.CharField(max_length=16, null=True, blank=True)
    issue_description = models.TextField(null=True, blank=True)
    notes = models.TextField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "maintenance_requests"
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["tenant", "caller_phone", "status"], name="idx_maint_tenant_phone"),
        ]

    def __str__(self):
        return f"Maintenance {self.caller_phone} ({self.status}, severity={self.severity})"
