from datetime import datetime, timedelta, timezone

import pytest

from triage.models import ComplianceDocument, ComplianceStatus, DocumentType, Job, JobStatus, Property
from triage.services.compliance import (
    REMINDER_DUE_SOON,
    REMINDER_OVERDUE,
    compute_reminder_events,
    derive_policy,
    derive_status,
    schedule_reminders_for_document,
    schedule_reminders_for_tenant,
)

NOW = datetime(2026, 2, 1, tzinfo=timezone.utc)


def test_policy_defaults_when_missing_or_malformed():
    for source in (None, "nonsense", {}, {"dueSoonDays": "weekly", "overdueReminderDays": "soon"}):
        policy = derive_policy(source)
        assert policy.due_soon_days == [30, 14, 7]
        assert policy.overdue_reminder_days == 7


def test_policy_cleans_custom_thresholds():
    policy = derive_policy({"dueSoonDays": [21, 7, 14, 7.8, -3, "x", True], "overdueReminderDays": 5.9})
    assert policy.due_soon_days == [21, 14, 7, 1]
    assert policy.overdue_reminder_days == 5


def test_policy_empty_threshold_list_falls_back():
    assert derive_policy({"dueSoonDays": []}).due_soon_days == [30, 14, 7]


def test_status_derivation():
    policy = derive_policy(None)
    assert derive_status(None, NOW, policy) == ComplianceStatus.MISSING
    assert derive_status(NOW - timedelta(days=2), NOW, policy) == ComplianceStatus.OVERDUE
    assert derive_status(NOW + timedelta(days=10), NOW, policy) == ComplianceStatus.DUE_SOON
    assert derive_status(NOW + timedelta(days=60), NOW, policy) == ComplianceStatus.OK


def test_status_rounds_partial_days_up():
    policy = derive_policy({"dueSoonDays": [30]})
    assert derive_status(NOW + timedelta(days=30, hours=1), NOW, policy) == ComplianceStatus.OK
    assert derive_status(NOW + timedelta(days=29, hours=23), NOW, policy) == ComplianceStatus.DUE_SOON
    assert derive_status(NOW - timedelta(hours=1), NOW, policy) == ComplianceStatus.DUE_SOON


def test_reminder_events_full_ladder():
    expiry = datetime(2026, 3, 15, tzinfo=timezone.utc)
    events = compute_reminder_events(expiry, derive_policy(None), NOW)

    assert [e.threshold_days for e in events] == [30, 14, 7, None]
    assert [e.run_at.date().isoformat() for e in events] == [
        "2026-02-13", "2026-03-01", "2026-03-08", "2026-03-22",
    ]
    assert events[-1].reminder_kind == REMINDER_OVERDUE
    assert events[-1].run_at == expiry + timedelta(days=7)


def test_reminder_events_skip_thresholds_already_passed():
    expiry = datetime(2026, 2, 21, tzinfo=timezone.utc)
    events = compute_reminder_events(expiry, derive_policy(None), NOW)

    assert [(e.reminder_kind, e.threshold_days) for e in events] == [
        (REMINDER_DUE_SOON, 14), (REMINDER_DUE_SOON, 7), (REMINDER_OVERDUE, None),
    ]


def test_overdue_event_pulled_forward_when_in_the_past():
    expiry = NOW - timedelta(days=30)
    events = compute_reminder_events(expiry, derive_policy(None), NOW)

    assert len(events) == 1
    assert events[0].reminder_kind == REMINDER_OVERDUE
    assert events[0].run_at == NOW + timedelta(seconds=1)


def test_no_expiry_means_no_events():
    assert compute_reminder_events(None, derive_policy(None), NOW) == []


@pytest.fixture
def gas_certificate(tenant):
    prop = Property.objects.create(tenant=tenant, property_ref="RIV-12", address_line1="12 River Road", postcode="SE1 7PB")
    return ComplianceDocument.objects.create(
        tenant=tenant,
        property=prop,
        document_type=DocumentType.GAS_SAFETY,
        expiry_date=datetime(2026, 3, 15, tzinfo=timezone.utc),
    )


@pytest.mark.django_db
def test_schedule_reminders_creates_jobs_and_persists_status(gas_certificate):
    created = schedule_reminders_for_document(gas_certificate.id, now=NOW)

    assert created == 4
    gas_certificate.refresh_from_db()
    assert gas_certificate.status == ComplianceStatus.OK

    jobs = list(Job.objects.filter(status=JobStatus.PENDING).order_by("run_at"))
    assert [j.payload["thresholdDays"] for j in jobs] == [30, 14, 7, None]
    assert all(j.payload["complianceDocumentId"] == str(gas_certificate.id) for j in jobs)


@pytest.mark.django_db
def test_rescheduling_replaces_pending_reminders(gas_certificate):
    schedule_reminders_for_document(gas_certificate.id, now=NOW)
    schedule_reminders_for_document(gas_certificate.id, now=NOW)

    assert Job.objects.filter(status=JobStatus.PENDING).count() == 4
    canceled = Job.objects.filter(status=JobStatus.CANCELED)
    assert canceled.count() == 4
    assert {j.last_error for j in canceled} == {"Replaced by latest compliance schedule."}


@pytest.mark.django_db
def test_schedule_for_unknown_document_is_noop(tenant):
    assert schedule_reminders_for_document("00000000-0000-0000-0000-000000000000", now=NOW) == 0


@pytest.mark.django_db
def test_schedule_for_tenant_covers_every_document(tenant, gas_certificate):
    ComplianceDocument.objects.create(
        tenant=tenant, property=gas_certificate.property, document_type=DocumentType.EPC, expiry_date=None,
    )
    # The EPC has no expiry, so only the gas certificate contributes jobs
    assert schedule_reminders_for_tenant(tenant.id) >= 1
    assert ComplianceDocument.objects.get(document_type=DocumentType.EPC).status == ComplianceStatus.MISSING
