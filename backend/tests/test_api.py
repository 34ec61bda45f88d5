from datetime import timedelta
from urllib.parse import urlencode

import pytest
from rest_framework.test import APIClient

from conftest import CALLER, INBOUND_NUMBER
from triage.models import ComplianceDocument, DocumentType, Job, JobStatus, JobType, Lead, Property
from triage.utils import utcnow

pytestmark = pytest.mark.django_db


@pytest.fixture
def client():
    return APIClient()


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    assert response.json() == {"status": "healthy"}


def test_inbound_sms_form_post(client, tenant):
    response = client.post(
        "/api/sms/inbound",
        urlencode({"From": CALLER, "To": "+44 161 000 0000", "Body": "1", "MessageSid": "SM1"}),
        content_type="application/x-www-form-urlencoded",
    )

    assert response.status_code == 200
    assert response.json()["action"] == "viewing_started"
    assert Lead.objects.get(caller_phone=CALLER).intent == "VIEWING"


def test_inbound_sms_unknown_number(client, tenant):
    response = client.post("/api/sms/inbound", {"From": CALLER, "To": "+15550000000", "Body": "hi"}, format="json")
    assert response.status_code == 404


def test_inbound_sms_requires_from(client, tenant):
    response = client.post("/api/sms/inbound", {"To": INBOUND_NUMBER, "Body": "hi"}, format="json")
    assert response.status_code == 400


def test_dial_status(client, tenant):
    response = client.post("/api/voice/dial-status", {
        "tenantId": str(tenant.id), "From": CALLER, "To": INBOUND_NUMBER,
        "CallSid": "CA9", "DialCallStatus": "no-answer",
    }, format="json")

    assert response.status_code == 200
    assert response.json()["triage_started"] is True
    assert Job.objects.filter(type=JobType.LEAD_FOLLOW_UP).count() == 2


def test_dial_status_unknown_tenant(client):
    response = client.post("/api/voice/dial-status", {
        "tenantId": "00000000-0000-0000-0000-000000000000", "From": CALLER, "To": INBOUND_NUMBER,
        "DialCallStatus": "busy",
    }, format="json")
    assert response.status_code == 404


def test_job_listing(client, tenant):
    now = utcnow()
    Job.objects.create(tenant=tenant, type=JobType.OWNER_NOTIFICATION, run_at=now + timedelta(hours=1),
                       payload={"body": "later"})
    Job.objects.create(tenant=tenant, type=JobType.OWNER_NOTIFICATION, run_at=now, payload={"body": "sooner"})
    Job.objects.create(tenant=tenant, type=JobType.OWNER_NOTIFICATION, run_at=now,
                       payload={"body": "done"}, status=JobStatus.SENT)

    response = client.get("/api/jobs", {"limit": 10})

    assert response.status_code == 200
    assert [j["payload"]["body"] for j in response.json()["jobs"]] == ["sooner", "later"]
    assert client.get("/api/jobs", {"status": "BOGUS"}).status_code == 400


def test_compliance_reschedule(client, tenant):
    prop = Property.objects.create(tenant=tenant, property_ref="RIV-12", address_line1="12 River Road")
    document = ComplianceDocument.objects.create(
        tenant=tenant, property=prop, document_type=DocumentType.EICR,
        expiry_date=utcnow() + timedelta(days=100),
    )

    response = client.post(f"/api/compliance/{document.id}/reschedule", format="json")

    assert response.status_code == 200
    assert response.json()["reminders_scheduled"] == 4
    assert response.json()["status"] == "OK"


def test_compliance_reschedule_unknown_document(client):
    response = client.post("/api/compliance/00000000-0000-0000-0000-000000000000/reschedule", format="json")
    assert response.status_code == 404
