"""WhatsApp messaging collaborator: outbound client and webhook verification."""

from .client import MockWhatsAppClient, WhatsAppClient
from .webhook import compute_signature, verify_webhook_signature

__all__ = [
    "WhatsAppClient",
    "MockWhatsAppClient",
    "compute_signature",
    "verify_webhook_signature",
]
