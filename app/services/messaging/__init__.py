# Messaging: WhatsApp send (dry-run aware) and webhook signature verification.
# Re-export so "from app.services.messaging import ..." works.

from app.services.messaging.messaging import (
    MessageDeliverer,
    WhatsAppDeliverer,
    send_whatsapp_message,
)

__all__ = [
    "MessageDeliverer",
    "WhatsAppDeliverer",
    "send_whatsapp_message",
]
