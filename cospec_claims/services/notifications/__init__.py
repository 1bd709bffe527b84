"""Outbound notifications for claim events."""

from cospec_claims.services.notifications.dispatcher import DispatchReport, DispatchResult, NotificationDispatcher
from cospec_claims.services.notifications.push_client import PushClient
from cospec_claims.services.notifications.whatsapp_client import WhatsAppClient, normalize_phone

__all__ = [
    "DispatchReport",
    "DispatchResult",
    "NotificationDispatcher",
    "PushClient",
    "WhatsAppClient",
    "normalize_phone",
]
