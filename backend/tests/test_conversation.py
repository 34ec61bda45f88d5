from datetime import timedelta

import pytest

from conftest import CALLER, OWNER
from triage.models import (
    Job, JobStatus, JobType, Lead, LeadIntent, LeadStatus,
    MaintenanceRequest, MaintenanceStatus, Message, MessageDirection, OptOut,
)
from triage.services.conversation import is_postcode_out_of_area
from triage.services.templates import DEFAULT_TEMPLATES
from triage.utils import utcnow

pytestmark = pytest.mark.django_db


def _pending_follow_up(tenant, lead=None, maintenance_request=None):
    return Job.objects.create(
        tenant=tenant,
        type=JobType.LEAD_FOLLOW_UP,
        run_at=utcnow() + timedelta(hours=2),
        lead=lead,
        maintenance_request=maintenance_request,
        payload={"followUpSequence": 1},
    )


def test_out_of_area_prefix_matching():
    assert is_postcode_out_of_area("SW1A 1AA", ["M1"]) is True
    assert is_postcode_out_of_area("m1 4bt", ["M1"]) is False
    assert is_postcode_out_of_area("SE1 7PB", ["se 1"]) is False
    assert is_postcode_out_of_area("SW1A 1AA", []) is False
    assert is_postcode_out_of_area(None, ["M1"]) is False


def test_blank_message_is_ignored(text, sender):
    assert text("   ") == "ignored_empty"
    assert Message.objects.count() == 0
    assert sender.sent == []


def test_maintenance_menu_choice_converts_lead(text, sender):
    assert text("2") == "maintenance_started"

    request = MaintenanceRequest.objects.get(caller_phone=CALLER)
    assert request.status == MaintenanceStatus.OPEN
    assert request.flow_step == 1

    lead = Lead.objects.get(caller_phone=CALLER)
    assert lead.status == LeadStatus.CLOSED
    assert lead.intent == LeadIntent.MAINTENANCE
    assert lead.notes == "Converted to maintenance flow"

    assert sender.bodies_to(CALLER) == [DEFAULT_TEMPLATES["maintenanceAskName"]]
    assert len(sender.sent) == 1


def test_maintenance_name_then_address(text, sender):
    text("2")
    assert text("My name is John Smith") == "maintenance_name_collected"

    request = MaintenanceRequest.objects.get(caller_phone=CALLER)
    assert request.name == "John Smith"
    assert request.flow_step == 2
    assert sender.sent[-1]["body"] == DEFAULT_TEMPLATES["maintenanceAskAddress"]

    inbound = Message.objects.filter(direction=MessageDirection.INBOUND).order_by("created_at")
    assert [m.maintenance_request_id for m in inbound][-1] == request.id


def test_maintenance_flow_to_logged(text, sender, tenant):
    MaintenanceRequest.objects.create(tenant=tenant, caller_phone=CALLER, flow_step=2, name="Priya Shah")

    assert text("Flat 3, 9 Canal Street, M1 3HE") == "maintenance_address_collected"
    assert text("The kitchen tap drips constantly") == "maintenance_issue_collected"
    assert text("not sure") == "maintenance_severity_requested"
    assert text("It's urgent") == "maintenance_logged"

    request = MaintenanceRequest.objects.get(caller_phone=CALLER)
    assert request.postcode == "M1 3HE"
    assert request.issue_description == "The kitchen tap drips constantly"
    assert request.severity == "URGENT"
    assert request.status == MaintenanceStatus.LOGGED
    assert sender.bodies_to(OWNER) == ["Maintenance logged (URGENT): Priya Shah (+447700900123)."]


def test_gas_leak_forces_emergency_handoff_at_any_step(text, sender, tenant):
    request = MaintenanceRequest.objects.create(
        tenant=tenant, caller_phone=CALLER, flow_step=3, name="John Smith",
    )
    job = _pending_follow_up(tenant, maintenance_request=request)

    assert text("I can smell gas in the hallway") == "emergency_handoff"

    request.refresh_from_db()
    assert request.status == MaintenanceStatus.NEEDS_HUMAN
    assert request.severity == "EMERGENCY"
    assert request.needs_human is True
    assert request.issue_description == "I can smell gas in the hallway"

    job.refresh_from_db()
    assert job.status == JobStatus.CANCELED

    assert [m["to"] for m in sender.sent] == [CALLER, OWNER]
    assert sender.sent[0]["body"] == DEFAULT_TEMPLATES["emergencySafety"]
    assert sender.sent[1]["body"] == "Emergency maintenance handoff: John Smith (+447700900123)."


def test_stop_opts_out_and_silences_later_messages(text, sender, tenant):
    lead = Lead.objects.create(
        tenant=tenant, caller_phone=CALLER, intent=LeadIntent.VIEWING, flow_step=2,
    )
    job = _pending_follow_up(tenant, lead=lead)

    assert text("STOP") == "opted_out"

    assert OptOut.objects.get(tenant=tenant, phone=CALLER).active is True
    lead.refresh_from_db()
    assert lead.status == LeadStatus.OPTED_OUT
    job.refresh_from_db()
    assert job.status == JobStatus.CANCELED
    assert sender.bodies_to(CALLER) == [DEFAULT_TEMPLATES["optOutConfirm"]]

    assert text("Can someone still call me?") == "suppressed_opted_out"
    assert len(sender.sent) == 1
    assert Message.objects.filter(direction=MessageDirection.INBOUND).count() == 2
    assert Lead.objects.filter(caller_phone=CALLER).count() == 1


def test_postcode_outside_allowed_area(text, sender, tenant):
    tenant.allowed_postcode_prefixes = ["M1"]
    tenant.save()
    lead = Lead.objects.create(tenant=tenant, caller_phone=CALLER, intent=LeadIntent.VIEWING, flow_step=2)
    job = _pending_follow_up(tenant, lead=lead)

    assert text("SW1A 1AA") == "out_of_area"

    lead.refresh_from_db()
    assert lead.status == LeadStatus.OUT_OF_AREA
    job.refresh_from_db()
    assert job.status == JobStatus.CANCELED
    assert [m["body"] for m in sender.sent] == [DEFAULT_TEMPLATES["outOfArea"]]


def test_postcode_only_checked_at_area_step(text, sender, tenant):
    tenant.allowed_postcode_prefixes = ["M1"]
    tenant.save()
    Lead.objects.create(tenant=tenant, caller_phone=CALLER, intent=LeadIntent.VIEWING, flow_step=3)

    assert text("2 beds near SW1A 1AA") == "viewing_requirements_collected"
    assert Lead.objects.get(caller_phone=CALLER).status == LeadStatus.OPEN


def test_anger_on_general_enquiry_hands_off(text, sender, tenant):
    lead = Lead.objects.create(tenant=tenant, caller_phone=CALLER, intent=LeadIntent.GENERAL, flow_step=2)
    job = _pending_follow_up(tenant, lead=lead)

    assert text("I have made a complaint and I will call my lawyer") == "calm_handoff"

    lead.refresh_from_db()
    assert lead.status == LeadStatus.NEEDS_HUMAN
    job.refresh_from_db()
    assert job.status == JobStatus.CANCELED

    assert len(sender.sent) == 2
    assert sender.sent[0]["body"] == DEFAULT_TEMPLATES["calmDeescalation"]
    assert sender.sent[1]["to"] == OWNER
    assert sender.sent[1]["body"] == (
        'Calm-mode handoff required for +447700900123. '
        'Last message: "I have made a complaint and I will call my lawyer"'
    )


def test_anger_on_maintenance_sets_needs_human_flag(text, tenant):
    request = MaintenanceRequest.objects.create(tenant=tenant, caller_phone=CALLER, flow_step=3)

    assert text("This is ridiculous, nobody has come out") == "calm_handoff"

    request.refresh_from_db()
    assert request.status == MaintenanceStatus.NEEDS_HUMAN
    assert request.needs_human is True


def test_unknown_intent_resends_menu(text, sender):
    assert text("hello?") == "triage_menu_resent"
    assert sender.bodies_to(CALLER) == [DEFAULT_TEMPLATES["missedCallTriage"]]
    assert Lead.objects.get(caller_phone=CALLER).flow_step == 0


def test_viewing_flow_ends_with_booking_link(text, sender):
    assert text("1") == "viewing_started"
    assert text("I am Alex Carter") == "viewing_name_collected"
    assert text("SE1 7PB") == "viewing_area_collected"
    assert text("2 beds, budget 2000") == "viewing_requirements_collected"
    assert text("book") == "viewing_scheduled"

    lead = Lead.objects.get(caller_phone=CALLER)
    assert lead.name == "Alex Carter"
    assert lead.postcode == "SE1 7PB"
    assert lead.desired_area is None
    assert lead.requirements == "2 beds, budget 2000"
    assert lead.status == LeadStatus.SCHEDULED

    assert sender.bodies_to(CALLER)[-1] == "Please book your viewing here: https://book.example.com/viewings"
    assert sender.bodies_to(OWNER) == ["Viewing lead scheduled: Alex Carter (+447700900123)"]


def test_viewing_callback_qualifies_lead(text, sender, tenant):
    Lead.objects.create(
        tenant=tenant, caller_phone=CALLER, intent=LeadIntent.VIEWING, flow_step=4, name="Alex Carter",
    )

    assert text("Please ring me tomorrow after 5pm") == "viewing_qualified"

    lead = Lead.objects.get(caller_phone=CALLER)
    assert lead.status == LeadStatus.QUALIFIED
    assert lead.notes == "Please ring me tomorrow after 5pm"
    assert sender.bodies_to(CALLER)[-1].startswith("Thanks Alex Carter.")
    assert sender.bodies_to(OWNER)[-1].startswith("Viewing lead qualified: Alex Carter")


def test_general_flow_collects_callback(text, sender):
    assert text("3") == "general_started"
    assert text("This is Sam Lee") == "general_name_collected"
    assert text("Question about my deposit") == "general_topic_collected"
    assert text("whenever") == "general_callback_requested"
    assert text("Tomorrow at 10am please") == "general_qualified"

    lead = Lead.objects.get(caller_phone=CALLER)
    assert lead.status == LeadStatus.QUALIFIED
    assert lead.notes == "Question about my deposit\nCallback: Tomorrow at 10am please"
    assert sender.bodies_to(OWNER) == [
        "General enquiry qualified: Sam Lee (+447700900123). Callback: Tomorrow at 10am please",
    ]


def test_inbound_logged_once_per_message(text):
    text("1")
    text("I am Alex Carter")

    inbound = Message.objects.filter(direction=MessageDirection.INBOUND)
    assert inbound.count() == 2
    assert all(m.lead_id is not None for m in inbound)
