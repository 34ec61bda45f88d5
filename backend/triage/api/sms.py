"""
Inbound SMS webhook. The tenant is resolved from the number the text was
sent to; the conversation engine does the rest.
"""
import logging

from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status

from triage.providers.sms_provider import get_sms_sender
from triage.serializers import InboundSmsSerializer
from triage.services.conversation import ConversationEngine, InboundSms
from triage.services.extraction import SignalExtractor
from triage.services.tenants import find_tenant_by_number

logger = logging.getLogger(__name__)


class InboundSmsView(APIView):
    def post(self, request):
        serializer = InboundSmsSerializer(data=request.data)
        serializer.is_valid(raise_exception=True)
        data = serializer.validated_data

        tenant = find_tenant_by_number(data["To"])
        if tenant is None:
            logger.warning("Inbound SMS to unknown number %s", data["To"])
            return Response(
                {"detail": f"No tenant configured for {data['To']}"},
                status=status.HTTP_404_NOT_FOUND,
            )

        engine = ConversationEngine(sender=get_sms_sender(), extractor=SignalExtractor())
        action = engine.handle_inbound_sms(InboundSms(
            tenant=tenant,
            from_phone=data["From"],
            to_phone=data["To"],
            body=data["Body"],
            external_message_id=data.get("MessageSid") or None,
        ))

        return Response({"tenant_id": str(tenant.id), "action": action})
