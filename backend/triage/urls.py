"""
Triage API routes, mounted under /api/.
"""
from django.urls import path
from triage.api import sms, voice, jobs, compliance

urlpatterns = [
    # Provider webhooks
    path('sms/inbound', sms.InboundSmsView.as_view()),
    path('voice/dial-status', voice.DialStatusView.as_view()),

    # Operator endpoints
    path('jobs', jobs.JobListView.as_view()),
    path('compliance/<uuid:document_id>/reschedule', compliance.RescheduleComplianceView.as_view()),
]
