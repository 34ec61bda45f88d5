"""
Conversation State Machine

Advances a Lead or MaintenanceRequest one step per inbound text, using the
signals from the extractor. Each conversation collects its fields in order,
tracked by flow_step:

    viewing      name -> area/postcode -> requirements -> booking or callback
    general      name -> topic -> callback
    maintenance  name -> address/postcode -> issue -> severity

Before any step logic, cross-cutting interceptors run in this order:
stop, existing opt-out, safety (maintenance only), anger. Out-of-area is
checked only at the area/address step.

Entity writes are conditional on the conversation still being active, so a
message racing a job (or another message) cannot revive a closed thread.
"""
import logging
import re

from django.db import transaction

from triage.models.lead import ACTIVE_LEAD_STATUSES, Lead, LeadIntent, LeadStatus
from triage.models.maintenance_request import (
    ACTIVE_MAINTENANCE_STATUSES, MaintenanceRequest, MaintenanceStatus, Severity,
)
from triage.models.opt_out import OptOut
from triage.services.extraction import SignalExtractor
from triage.services.job_store import cancel_jobs_for_conversation
from triage.services.outbound import log_inbound, notify_owner, send_and_log
from triage.services.templates import resolve_template
from triage.utils import truncate_for_owner, utcnow

logger = logging.getLogger(__name__)

SAFETY_KEYWORDS = re.compile(
    r"\b(gas leak|smell gas|fire|sparks|carbon monoxide|co alarm|electrical burning|flood|smoke)\b", re.I
)
WANTS_BOOKING = re.compile(r"\b(book|booking|schedule|link|slot)\b", re.I)
VIEWING_CALLBACK = re.compile(r"\b(call|callback|ring|tomorrow|am|pm)\b", re.I)
GENERAL_CALLBACK = re.compile(r"\b(call|callback|ring|am|pm|tomorrow|today)\b", re.I)

STOP_REASON = "STOP message"
CONVERTED_NOTE = "Converted to maintenance flow"


def normalize_postcode_prefix(value: str) -> str:
    return re.sub(r"\s+", "", value).upper()


def is_postcode_out_of_area(postcode: str | None, allowed_prefixes) -> bool:
    """An empty (or missing) allowed list means the agency covers everywhere."""
    if not postcode or not allowed_prefixes:
        return False
    normalized = normalize_postcode_prefix(postcode)
    prefixes = [normalize_postcode_prefix(p) for p in allowed_prefixes if isinstance(p, str) and p.strip()]
    if not prefixes:
        return False
    return not any(normalized.startswith(prefix) for prefix in prefixes)


def has_safety_keyword(text: str) -> bool:
    return bool(SAFETY_KEYWORDS.search(text))


def find_active_lead(tenant_id, caller_phone: str) -> Lead | None:
    return (
        Lead.objects
        .filter(tenant_id=tenant_id, caller_phone=caller_phone, status__in=ACTIVE_LEAD_STATUSES)
        .order_by("-created_at")
        .first()
    )


def find_active_maintenance(tenant_id, caller_phone: str) -> MaintenanceRequest | None:
    return (
        MaintenanceRequest.objects
        .filter(tenant_id=tenant_id, caller_phone=caller_phone, status__in=ACTIVE_MAINTENANCE_STATUSES)
        .order_by("-created_at")
        .first()
    )


class InboundSms:
    def __init__(self, tenant, from_phone: str, to_phone: str, body: str,
                 external_message_id: str | None = None):
        self.tenant = tenant
        self.from_phone = from_phone
        self.to_phone = to_phone
        self.body = body
        self.external_message_id = external_message_id


class ConversationEngine:
    """
    Entry point for inbound texts. The sender and extractor are injected so
    tests (and local dev) can run the full flow without a provider.

    handle_inbound_sms() returns a short label naming the branch that handled
    the message, which the webhook echoes back and the logs record.
    """

    def __init__(self, sender, extractor=None):
        self.sender = sender
        self.extractor = extractor or SignalExtractor()

    # ─── Entry point ─────────────────────────────────────────────────────

    def handle_inbound_sms(self, inbound: InboundSms) -> str:
        body = (inbound.body or "").strip()
        if not body:
            return "ignored_empty"

        tenant = inbound.tenant
        phone = inbound.from_phone
        signals = self.extractor.extract(body)
        lead = find_active_lead(tenant.id, phone)
        maintenance = find_active_maintenance(tenant.id, phone)

        if signals.stop:
            self._log(inbound, body, lead, maintenance)
            self._process_stop(tenant, phone, lead, maintenance)
            return "opted_out"

        if OptOut.is_active_for(tenant.id, phone):
            self._log(inbound, body, lead, maintenance)
            logger.info("Inbound from opted-out %s for tenant %s logged only", phone, tenant.id)
            return "suppressed_opted_out"

        if maintenance is not None:
            self._log(inbound, body, None, maintenance)
            safety = signals.safety_risk or has_safety_keyword(body)
            if signals.anger_signals and not safety:
                self._process_calm_handoff(tenant, phone, body, maintenance=maintenance)
                return "calm_handoff"
            return self._advance_maintenance(tenant, maintenance, phone, body, signals)

        if lead is None:
            lead = Lead.objects.create(
                tenant=tenant,
                caller_phone=phone,
                status=LeadStatus.OPEN,
                intent=LeadIntent.UNKNOWN,
                flow_step=0,
            )
        self._log(inbound, body, lead, None)

        if signals.anger_signals:
            self._process_calm_handoff(tenant, phone, body, lead=lead)
            return "calm_handoff"

        if lead.intent == LeadIntent.UNKNOWN:
            return self._select_intent(tenant, lead, phone, signals.intent)

        if lead.intent == LeadIntent.MAINTENANCE:
            request = self._convert_to_maintenance(lead)
            return self._advance_maintenance(tenant, request, phone, body, signals)

        if lead.intent == LeadIntent.VIEWING:
            return self._advance_viewing(tenant, lead, phone, body, signals)

        return self._advance_general(tenant, lead, phone, body, signals)

    # ─── Helpers ─────────────────────────────────────────────────────────

    def _log(self, inbound: InboundSms, body: str, lead, maintenance):
        log_inbound(
            inbound.tenant, inbound.from_phone, inbound.to_phone, body,
            provider_message_id=inbound.external_message_id,
            lead=lead, maintenance_request=maintenance,
        )

    def _reply(self, tenant, phone: str, key: str, variables=None, lead=None, maintenance=None):
        send_and_log(
            self.sender, tenant, phone, resolve_template(tenant, key, variables),
            lead=lead, maintenance_request=maintenance,
        )

    def _notify_owner(self, tenant, body: str, lead=None, maintenance=None):
        notify_owner(self.sender, tenant, body, lead=lead, maintenance_request=maintenance)

    def _update_lead(self, lead: Lead, **fields) -> bool:
        fields["updated_at"] = utcnow()
        updated = Lead.objects.filter(id=lead.id, status__in=ACTIVE_LEAD_STATUSES).update(**fields)
        if updated:
            for name, value in fields.items():
                setattr(lead, name, value)
        else:
            logger.info("Lead %s left the active set before update; skipped %s", lead.id, sorted(fields))
        return bool(updated)

    def _update_maintenance(self, request: MaintenanceRequest, **fields) -> bool:
        fields["updated_at"] = utcnow()
        updated = MaintenanceRequest.objects.filter(
            id=request.id, status__in=ACTIVE_MAINTENANCE_STATUSES,
        ).update(**fields)
        if updated:
            for name, value in fields.items():
                setattr(request, name, value)
        else:
            logger.info(
                "Maintenance request %s left the active set before update; skipped %s",
                request.id, sorted(fields),
            )
        return bool(updated)

    # ─── Interceptors ────────────────────────────────────────────────────

    def _process_stop(self, tenant, phone, lead, maintenance):
        OptOut.objects.update_or_create(
            tenant=tenant, phone=phone,
            defaults={"active": True, "reason": STOP_REASON},
        )
        if lead is not None:
            self._update_lead(lead, status=LeadStatus.OPTED_OUT)
        if maintenance is not None:
            self._update_maintenance(maintenance, status=MaintenanceStatus.OPTED_OUT)

        cancel_jobs_for_conversation(lead=lead, maintenance_request=maintenance, reason="Caller opted out.")
        self._reply(tenant, phone, "optOutConfirm", lead=lead, maintenance=maintenance)
        logger.info("Opt-out recorded for %s (tenant %s)", phone, tenant.id)

    def _process_calm_handoff(self, tenant, phone, body, lead=None, maintenance=None):
        if lead is not None:
            self._update_lead(lead, status=LeadStatus.NEEDS_HUMAN)
        if maintenance is not None:
            self._update_maintenance(maintenance, status=MaintenanceStatus.NEEDS_HUMAN, needs_human=True)

        cancel_jobs_for_conversation(
            lead=lead, maintenance_request=maintenance, reason="Handed off to a human (calm mode).",
        )
        self._reply(tenant, phone, "calmDeescalation", lead=lead, maintenance=maintenance)
        self._notify_owner(
            tenant,
            f'Calm-mode handoff required for {phone}. Last message: "{truncate_for_owner(body)}"',
            lead=lead, maintenance=maintenance,
        )

    def _process_out_of_area(self, tenant, phone, lead=None, maintenance=None) -> str:
        if lead is not None:
            self._update_lead(lead, status=LeadStatus.OUT_OF_AREA)
        if maintenance is not None:
            self._update_maintenance(maintenance, status=MaintenanceStatus.OUT_OF_AREA)

        cancel_jobs_for_conversation(lead=lead, maintenance_request=maintenance, reason="Out of area.")
        self._reply(tenant, phone, "outOfArea", lead=lead, maintenance=maintenance)
        return "out_of_area"

    # ─── Intent selection ────────────────────────────────────────────────

    def _select_intent(self, tenant, lead, phone, intent) -> str:
        if intent == LeadIntent.VIEWING:
            self._update_lead(lead, intent=LeadIntent.VIEWING, flow_step=1)
            self._reply(tenant, phone, "viewingAskName", lead=lead)
            return "viewing_started"

        if intent == LeadIntent.GENERAL:
            self._update_lead(lead, intent=LeadIntent.GENERAL, flow_step=1)
            self._reply(tenant, phone, "generalAskName", lead=lead)
            return "general_started"

        if intent == LeadIntent.MAINTENANCE:
            request = self._convert_to_maintenance(lead)
            self._reply(tenant, phone, "maintenanceAskName", maintenance=request)
            return "maintenance_started"

        self._reply(tenant, phone, "missedCallTriage", lead=lead)
        return "triage_menu_resent"

    def _convert_to_maintenance(self, lead: Lead) -> MaintenanceRequest:
        """
        Close the lead and hand the caller over to a maintenance request,
        reusing an already-active request for the same phone if there is one.
        """
        with transaction.atomic():
            request = find_active_maintenance(lead.tenant_id, lead.caller_phone)
            if request is None:
                request = MaintenanceRequest.objects.create(
                    tenant_id=lead.tenant_id,
                    caller_phone=lead.caller_phone,
                    source_call_id=lead.source_call_id,
                    status=MaintenanceStatus.OPEN,
                    flow_step=1,
                )
            self._update_lead(
                lead, intent=LeadIntent.MAINTENANCE, status=LeadStatus.CLOSED, notes=CONVERTED_NOTE,
            )

        logger.info("Lead %s converted to maintenance request %s", lead.id, request.id)
        return request

    # ─── Viewing flow ────────────────────────────────────────────────────

    def _advance_viewing(self, tenant, lead, phone, body, signals) -> str:
        step = lead.flow_step or 1

        if step <= 1:
            if signals.name:
                self._update_lead(lead, name=signals.name, flow_step=2)
                self._reply(tenant, phone, "viewingAskArea", lead=lead)
                return "viewing_name_collected"
            self._reply(tenant, phone, "viewingAskName", lead=lead)
            return "viewing_name_requested"

        if step == 2:
            if is_postcode_out_of_area(signals.postcode, tenant.allowed_postcode_prefixes):
                return self._process_out_of_area(tenant, phone, lead=lead)

            area_or_property = signals.area_or_property or body
            self._update_lead(
                lead,
                desired_area=None if signals.postcode else area_or_property,
                postcode=signals.postcode or lead.postcode,
                property_query=area_or_property,
                flow_step=3,
            )
            self._reply(tenant, phone, "viewingAskRequirements", lead=lead)
            return "viewing_area_collected"

        if step == 3:
            self._update_lead(lead, requirements=body, flow_step=4)
            self._reply(tenant, phone, "viewingAskBooking", lead=lead)
            return "viewing_requirements_collected"

        display_name = lead.name or "Unknown name"

        if WANTS_BOOKING.search(body) and tenant.booking_url_viewings:
            self._update_lead(lead, status=LeadStatus.SCHEDULED, flow_step=5)
            cancel_jobs_for_conversation(lead=lead, reason="Viewing booked.")
            self._reply(
                tenant, phone, "viewingBookingLink",
                {"bookingUrlViewings": tenant.booking_url_viewings}, lead=lead,
            )
            self._notify_owner(tenant, f"Viewing lead scheduled: {display_name} ({phone})", lead=lead)
            return "viewing_scheduled"

        if signals.callback_text or VIEWING_CALLBACK.search(body):
            callback = signals.callback_text or body
            self._update_lead(lead, status=LeadStatus.QUALIFIED, flow_step=5, notes=callback)
            self._reply(tenant, phone, "viewingQualified", {"name": lead.name or "there"}, lead=lead)
            self._notify_owner(
                tenant,
                f"Viewing lead qualified: {display_name} ({phone}). Callback requested: {callback}",
                lead=lead,
            )
            return "viewing_qualified"

        self._reply(tenant, phone, "viewingAskBooking", lead=lead)
        return "viewing_booking_requested"

    # ─── General flow ────────────────────────────────────────────────────

    def _advance_general(self, tenant, lead, phone, body, signals) -> str:
        step = lead.flow_step or 1

        if step <= 1:
            if signals.name:
                self._update_lead(lead, name=signals.name, flow_step=2)
                self._reply(tenant, phone, "generalAskTopic", lead=lead)
                return "general_name_collected"
            self._reply(tenant, phone, "generalAskName", lead=lead)
            return "general_name_requested"

        if step == 2:
            self._update_lead(lead, notes=body, flow_step=3)
            self._reply(tenant, phone, "generalAskCallback", lead=lead)
            return "general_topic_collected"

        if not signals.callback_text and not GENERAL_CALLBACK.search(body):
            self._reply(tenant, phone, "generalAskCallback", lead=lead)
            return "general_callback_requested"

        callback = signals.callback_text or body
        notes = f"{lead.notes or ''}\nCallback: {callback}".strip()
        self._update_lead(lead, status=LeadStatus.QUALIFIED, flow_step=4, notes=notes)
        self._reply(tenant, phone, "generalQualified", {"name": lead.name or "there"}, lead=lead)
        self._notify_owner(
            tenant,
            f"General enquiry qualified: {lead.name or 'Unknown name'} ({phone}). Callback: {callback}",
            lead=lead,
        )
        return "general_qualified"

    # ─── Maintenance flow ────────────────────────────────────────────────

    def _advance_maintenance(self, tenant, request, phone, body, signals) -> str:
        if signals.safety_risk or has_safety_keyword(body):
            self._update_maintenance(
                request,
                status=MaintenanceStatus.NEEDS_HUMAN,
                needs_human=True,
                severity=Severity.EMERGENCY,
                issue_description=request.issue_description or body,
            )
            cancel_jobs_for_conversation(maintenance_request=request, reason="Emergency handoff.")
            self._reply(tenant, phone, "emergencySafety", maintenance=request)
            self._notify_owner(
                tenant,
                f"Emergency maintenance handoff: {request.name or 'Unknown name'} ({phone}).",
                maintenance=request,
            )
            logger.warning("Emergency maintenance handoff for %s (request %s)", phone, request.id)
            return "emergency_handoff"

        step = request.flow_step or 1

        if step <= 1:
            if signals.name:
                self._update_maintenance(request, name=signals.name, flow_step=2)
                self._reply(tenant, phone, "maintenanceAskAddress", maintenance=request)
                return "maintenance_name_collected"
            self._reply(tenant, phone, "maintenanceAskName", maintenance=request)
            return "maintenance_name_requested"

        if step == 2:
            if is_postcode_out_of_area(signals.postcode, tenant.allowed_postcode_prefixes):
                return self._process_out_of_area(tenant, phone, maintenance=request)

            self._update_maintenance(
                request,
                property_address=signals.area_or_property or body,
                postcode=signals.postcode or request.postcode,
                flow_step=3,
            )
            self._reply(tenant, phone, "maintenanceAskIssue", maintenance=request)
            return "maintenance_address_collected"

        if step == 3:
            self._update_maintenance(request, issue_description=signals.issue_description or body, flow_step=4)
            self._reply(tenant, phone, "maintenanceAskSeverity", maintenance=request)
            return "maintenance_issue_collected"

        if not signals.severity:
            self._reply(tenant, phone, "maintenanceAskSeverity", maintenance=request)
            return "maintenance_severity_requested"

        self._update_maintenance(request, severity=signals.severity, status=MaintenanceStatus.LOGGED, flow_step=5)
        self._reply(tenant, phone, "maintenanceLogged", {"name": request.name or "there"}, maintenance=request)
        self._notify_owner(
            tenant,
            f"Maintenance logged ({signals.severity}): {request.name or 'Unknown name'} ({phone}).",
            maintenance=request,
        )
        return "maintenance_logged"
