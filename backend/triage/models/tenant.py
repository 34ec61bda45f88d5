import uuid
from django.db import models


class Tenant(models.Model):
    """
    A letting agency using the triage desk. Everything else hangs off a tenant:
    routing numbers, the allowed service area, message wording and the
    compliance reminder policy.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    name = models.CharField(max_length=200)

    # Routing
    inbound_phone_number = models.CharField(max_length=32, unique=True)
    forward_to_phone_number = models.CharField(max_length=32, null=True, blank=True)
    owner_notification_phone_number = models.CharField(max_length=32)

    # IANA zone used for "next business day" follow-ups
    timezone = models.CharField(max_length=64, default="Europe/London")
    business_hours = models.JSONField(default=dict, blank=True)

    # Postcode prefixes we serve, e.g. ["SW", "SE", "E"]. Empty = everywhere.
    allowed_postcode_prefixes = models.JSONField(default=list, blank=True)

    booking_url_viewings = models.URLField(null=True, blank=True)
    booking_url_calls = models.URLField(null=True, blank=True)

    # Overrides for built-in message templates (key -> text)
    message_templates = models.JSONField(default=dict, blank=True)
    # {"dueSoonDays": [30, 14, 7], "overdueReminderDays": 7}
    compliance_policy = models.JSONField(default=dict, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "tenants"
        ordering = ["name"]

    def __str__(self):
        return f"{self.name} ({self.inbound_phone_number})"
