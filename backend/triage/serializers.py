"""
DRF serializers for webhook/API validation, job payloads and the OpenAI
extraction response. Separates wire contracts from DB models.
"""
from rest_framework import serializers

from triage.models import Job, JobStatus, LeadIntent, Severity


# ─── Webhooks ────────────────────────────────────────────────────────────────

class InboundSmsSerializer(serializers.Serializer):
    """Provider inbound-SMS webhook (form-encoded, provider field names)."""
    From = serializers.CharField()
    To = serializers.CharField()
    Body = serializers.CharField(allow_blank=True, trim_whitespace=False, default="")
    MessageSid = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class DialStatusSerializer(serializers.Serializer):
    """Provider dial-status callback for a forwarded call."""
    tenantId = serializers.UUIDField()
    From = serializers.CharField()
    To = serializers.CharField()
    CallSid = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    DialCallStatus = serializers.CharField(required=False, allow_null=True, allow_blank=True)


# ─── Jobs ────────────────────────────────────────────────────────────────────

class JobSerializer(serializers.ModelSerializer):
    class Meta:
        model = Job
        fields = [
            'id', 'tenant_id', 'type', 'status', 'run_at', 'payload',
            'attempts', 'max_attempts', 'last_error',
            'locked_at', 'locked_by', 'sent_at', 'canceled_at',
            'lead_id', 'maintenance_request_id', 'created_at',
        ]


class JobListQuerySerializer(serializers.Serializer):
    status = serializers.ChoiceField(choices=JobStatus.choices, default=JobStatus.PENDING)
    limit = serializers.IntegerField(min_value=1, max_value=500, default=50)


class LeadFollowUpPayloadSerializer(serializers.Serializer):
    leadId = serializers.UUIDField(required=False, allow_null=True)
    followUpSequence = serializers.IntegerField(required=False, allow_null=True, min_value=1)
    reason = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    callerPhone = serializers.CharField(required=False, allow_null=True, allow_blank=True)


class ComplianceReminderPayloadSerializer(serializers.Serializer):
    complianceDocumentId = serializers.UUIDField()
    reminderKind = serializers.ChoiceField(choices=["DUE_SOON", "OVERDUE"])
    thresholdDays = serializers.IntegerField(required=False, allow_null=True)


class OwnerNotificationPayloadSerializer(serializers.Serializer):
    body = serializers.CharField(required=False, allow_null=True, allow_blank=True)
    toPhone = serializers.CharField(required=False, allow_null=True, allow_blank=True)


# ─── Signal extraction (OpenAI JSON response) ────────────────────────────────

class SignalExtractionSerializer(serializers.Serializer):
    stop = serializers.BooleanField(default=False)
    intent = serializers.ChoiceField(choices=LeadIntent.choices, default=LeadIntent.UNKNOWN)
    postcode = serializers.CharField(allow_null=True, allow_blank=True, default=None)
    severity = serializers.ChoiceField(choices=Severity.choices, allow_null=True, default=None)
    angerSignals = serializers.BooleanField(default=False)
    safetyRisk = serializers.BooleanField(default=False)
    name = serializers.CharField(allow_null=True, allow_blank=True, default=None)
    areaOrProperty = serializers.CharField(allow_null=True, allow_blank=True, default=None)
    callbackText = serializers.CharField(allow_null=True, allow_blank=True, default=None)
    issueDescription = serializers.CharField(allow_null=True, allow_blank=True, default=None)
    summary = serializers.CharField(allow_null=True, allow_blank=True, default=None)
