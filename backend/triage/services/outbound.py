"""
Outbound send + message log.

Every automated text goes through send_and_log so that the Message table is
a complete record of what a caller or owner was sent. Inbound texts are
logged with log_inbound.
"""
import logging

from triage.models.message import Message, MessageDirection

logger = logging.getLogger(__name__)


def send_and_log(sender, tenant, to_phone: str, body: str, lead=None, maintenance_request=None):
    """
    Send `body` from the tenant's inbound number and record it.
    Empty bodies (e.g. a template that resolved to nothing) are never sent.
    Returns the Message row, or None when nothing was sent.
    """
    if not body or not body.strip():
        logger.warning("Skipping empty outbound SMS to %s for tenant %s", to_phone, tenant.id)
        return None

    result = sender.send_sms(tenant.inbound_phone_number, to_phone, body)

    return Message.objects.create(
        tenant=tenant,
        direction=MessageDirection.OUTBOUND,
        from_phone=tenant.inbound_phone_number,
        to_phone=to_phone,
        body=body,
        provider_message_id=result.sid,
        lead=lead,
        maintenance_request=maintenance_request,
    )


def notify_owner(sender, tenant, body: str, lead=None, maintenance_request=None):
    """Alert the agency's owner number. No-op when the tenant has none configured."""
    if not tenant.owner_notification_phone_number:
        logger.info("Tenant %s has no owner notification number; alert dropped: %s", tenant.id, body)
        return None
    return send_and_log(
        sender, tenant, tenant.owner_notification_phone_number, body,
        lead=lead, maintenance_request=maintenance_request,
    )


def log_inbound(
    tenant, from_phone: str, to_phone: str, body: str,
    provider_message_id: str | None = None, lead=None, maintenance_request=None,
) -> Message:
    return Message.objects.create(
        tenant=tenant,
        direction=MessageDirection.INBOUND,
        from_phone=from_phone,
        to_phone=to_phone,
        body=body,
        provider_message_id=provider_message_id,
        lead=lead,
        maintenance_request=maintenance_request,
    )
