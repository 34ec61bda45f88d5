"""
Message templates: every text a caller or owner can receive from the
automated flows is resolved here.

Tenants may override any key through Tenant.message_templates; blank or
non-string overrides are ignored. Placeholders use {{name}} syntax and
anything not supplied in the variable map renders as an empty string.
"""
import re

DEFAULT_TEMPLATES = {
    "missedCallTriage": (
        "Sorry we missed your call - are you contacting us about: 1) Renting/viewing a property "
        "2) A repair/maintenance issue 3) Something else. Reply 1, 2, or 3."
    ),
    "optOutConfirm": "You are now opted out and will not receive further automated messages from us.",
    "outOfArea": (
        "Thanks for your message. It looks like this postcode is outside our current area. "
        "We have marked this as out-of-area."
    ),
    "viewingAskName": "Thanks for your interest. Can I take your full name?",
    "viewingAskArea": (
        "Please share your desired area/postcode, or the property reference/address you are enquiring about."
    ),
    "viewingAskRequirements": "Please share brief requirements (beds and budget are helpful but optional).",
    "viewingAskBooking": (
        "Would you like to book directly online, or prefer a callback time? "
        "Reply with BOOK or share a callback time."
    ),
    "viewingBookingLink": "Please book your viewing here: {{bookingUrlViewings}}",
    "viewingQualified": (
        "Thanks {{name}}. We have logged your details and a colleague will contact you to confirm next steps."
    ),
    "generalAskName": "Thanks for contacting us. Can I take your full name?",
    "generalAskTopic": "Please share what this is about in one or two lines.",
    "generalAskCallback": "Please share the best callback time for you.",
    "generalQualified": (
        "Thanks {{name}}. We have logged this and a colleague will get back to you at the requested time."
    ),
    "maintenanceAskName": "Thanks for reporting this. Can I take your full name?",
    "maintenanceAskAddress": "Please share the property address or postcode.",
    "maintenanceAskIssue": "Please describe the issue briefly.",
    "maintenanceAskSeverity": "How severe is this issue? Reply ROUTINE, URGENT, or EMERGENCY.",
    "maintenanceLogged": "Thanks {{name}}. We have logged your maintenance request and will follow up shortly.",
    "leadFollowUpFirst": "Just checking in on your enquiry. Reply 1, 2, or 3 so we can route this quickly.",
    "leadFollowUpSecond": (
        "We are still here to help with your enquiry. Reply with details and we will follow up as soon as possible."
    ),
    "emergencySafety": (
        "This sounds safety-critical. Please call emergency services if there is immediate danger. "
        "A human team member is taking over now."
    ),
    "calmDeescalation": (
        "Thanks for raising this. We are sorry for the frustration. "
        "A human colleague will review and contact you within one business day."
    ),
}

_PLACEHOLDER = re.compile(r"\{\{(\w+)\}\}")


def read_template_overrides(source) -> dict[str, str]:
    if not isinstance(source, dict):
        return {}
    return {
        key: value
        for key, value in source.items()
        if isinstance(value, str) and value.strip()
    }


def render_template(template: str, variables: dict | None = None) -> str:
    variables = variables or {}

    def _substitute(match: re.Match) -> str:
        value = variables.get(match.group(1))
        return "" if value is None else str(value)

    return _PLACEHOLDER.sub(_substitute, template)


def resolve_template(tenant, key: str, variables: dict | None = None) -> str:
    """Tenant override, else built-in default, else empty string; rendered and trimmed."""
    overrides = read_template_overrides(tenant.message_templates)
    template = overrides.get(key) or DEFAULT_TEMPLATES.get(key, "")
    return render_template(template, variables).strip()
