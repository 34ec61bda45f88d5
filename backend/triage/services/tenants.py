"""Tenant routing: which agency does an inbound number belong to."""
import re

from triage.models.tenant import Tenant

_PHONE_NOISE = re.compile(r"[\s\-().]")


def normalize_phone(value: str | None) -> str:
    """Strip formatting characters, keeping a leading '+'."""
    if not value:
        return ""
    return _PHONE_NOISE.sub("", value.strip())


def find_tenant_by_number(number: str | None) -> Tenant | None:
    normalized = normalize_phone(number)
    if not normalized:
        return None
    candidates = {normalized, (number or "").strip()}
    return Tenant.objects.filter(inbound_phone_number__in=candidates).first()
