import uuid
from django.db import models


class OptOut(models.Model):
    """Per-(tenant, phone) suppression of all automated outbound texts."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey("Tenant", on_delete=models.CASCADE, related_name="opt_outs")
    phone = models.CharField(max_length=32)
    active = models.BooleanField(default=True)
    reason = models.CharField(max_length=200, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "opt_outs"
        constraints = [
            models.UniqueConstraint(fields=["tenant", "phone"], name="uniq_optout_tenant_phone"),
        ]

    def __str__(self):
        return f"OptOut {self.phone} ({'active' if self.active else 'cleared'})"

    @classmethod
    def is_active_for(cls, tenant_id, phone: str) -> bool:
        return cls.objects.filter(tenant_id=tenant_id, phone=phone, active=True).exists()
