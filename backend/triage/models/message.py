import uuid
from django.db import models


class MessageDirection(models.TextChoices):
    INBOUND = "INBOUND"
    OUTBOUND = "OUTBOUND"


class Message(models.Model):
    """
    Append-only SMS log. Every inbound text and every automated send gets
    exactly one row, linked to the conversation that owned it at the time.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey("Tenant", on_delete=models.CASCADE, related_name="messages")

    direction = models.CharField(max_length=10, choices=MessageDirection.choices)
    from_phone = models.CharField(max_length=32)
    to_phone = models.CharField(max_length=32)
    body = models.TextField()
    provider_message_id = models.CharField(max_length=64, null=True, blank=True)

    lead = models.ForeignKey(
        "Lead", on_delete=models.SET_NULL, null=True, blank=True, related_name="messages"
    )
    maintenance_request = models.ForeignKey(
        "MaintenanceRequest", on_delete=models.SET_NULL, null=True, blank=True, related_name="messages"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        db_table = "messages"
        ordering = ["created_at"]
        indexes = [
            models.Index(fields=["tenant", "-created_at"], name="idx_message_tenant_date"),
        ]

    def __str__(self):
        return f"{self.direction} {self.from_phone} -> {self.to_phone}"
