"""Compliance schedule maintenance."""
from rest_framework.views import APIView
from rest_framework.response import Response
from rest_framework import status

from triage.models.compliance_document import ComplianceDocument
from triage.services.compliance import schedule_reminders_for_document


class RescheduleComplianceView(APIView):
    """Rebuild a document's reminder jobs after its expiry or the tenant policy changed."""

    def post(self, request, document_id):
        if not ComplianceDocument.objects.filter(id=document_id).exists():
            return Response(
                {"detail": f"Compliance document {document_id} not found"},
                status=status.HTTP_404_NOT_FOUND,
            )

        created = schedule_reminders_for_document(document_id)
        document = ComplianceDocument.objects.get(id=document_id)
        return Response({
            "document_id": str(document.id),
            "status": document.status,
            "reminders_scheduled": created,
        })
