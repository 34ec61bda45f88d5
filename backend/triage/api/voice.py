"""Dial-status callback for forwarded calls; missed calls start SMS triage."""
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status

from triage.models.tenant import Tenant
from triage.providers.sms_provider import get_sms_sender
from triage.serializers import DialStatusSerializer
from triage.services.voice import DialStatusEvent, handle_dial_status


class DialStatusView(APIView):
    def post(self, request):
        serializer = DialStatusSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        event = DialStatusEvent(
            tenant_id=data["tenantId"],
            from_phone=data["From"],
            to_phone=data["To"],
            external_call_id=data.get("CallSid"),
            dial_status=data.get("DialCallStatus"),
        )
        try:
            result = handle_dial_status(event, sender=get_sms_sender())
        except Tenant.DoesNotExist:
            return Response(
                {"detail": f"Tenant {data['tenantId']} not found"},
                status=status.HTTP_404_NOT_FOUND,
            )

        return Response(result)
