import uuid
from django.db import models


class ComplianceStatus(models.TextChoices):
    OK = "OK"
    DUE_SOON = "DUE_SOON"
    OVERDUE = "OVERDUE"
    MISSING = "MISSING"


class DocumentType(models.TextChoices):
    GAS_SAFETY = "GAS_SAFETY"
    EICR = "EICR"
    EPC = "EPC"
    DEPOSIT_PROTECTION = "DEPOSIT_PROTECTION"
    HMO_LICENCE = "HMO_LICENCE"
    OTHER = "OTHER"


class Property(models.Model):
    """A managed property. Compliance reminders name it by property_ref."""

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey("Tenant", on_delete=models.CASCADE, related_name="properties")
    property_ref = models.CharField(max_length=64)
    address_line1 = models.CharField(max_length=200)
    city = models.CharField(max_length=100, null=True, blank=True)
    postcode = models.CharField(max_length=16, null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "properties"
        ordering = ["property_ref"]
        constraints = [
            models.UniqueConstraint(fields=["tenant", "property_ref"], name="uniq_property_ref"),
        ]

    def __str__(self):
        return f"{self.property_ref}: {self.address_line1}"


class ComplianceDocument(models.Model):
    """
    A certificate or licence with an expiry date (gas safety, EICR, ...).

    status is a cache: it is re-derived from expiry_date and the tenant's
    policy whenever the reminder schedule is rebuilt or a reminder runs.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    tenant = models.ForeignKey("Tenant", on_delete=models.CASCADE, related_name="compliance_documents")
    property = models.ForeignKey("Property", on_delete=models.CASCADE, related_name="compliance_documents")

    document_type = models.CharField(max_length=32, choices=DocumentType.choices)
    status = models.CharField(max_length=20, choices=ComplianceStatus.choices, default=ComplianceStatus.MISSING)
    issue_date = models.DateTimeField(null=True, blank=True)
    expiry_date = models.DateTimeField(null=True, blank=True)
    last_reminder_at = models.DateTimeField(null=True, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        db_table = "compliance_documents"
        ordering = ["expiry_date"]
        constraints = [
            models.UniqueConstraint(
                fields=["tenant", "property", "document_type"], name="uniq_compliance_doc",
            ),
        ]

    def __str__(self):
        return f"{self.document_type} for {self.property_id} ({self.status})"
