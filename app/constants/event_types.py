"""
Event type constants for SystemEvent.

Use these instead of string literals to ensure consistency.
"""

# ---- WhatsApp webhook ----
EVENT_WHATSAPP_SIGNATURE_VERIFICATION_FAILURE = "whatsapp.signature_verification_failure"
EVENT_WHATSAPP_WEBHOOK_FAILURE = "whatsapp.webhook_failure"
EVENT_WHATSAPP_DUPLICATE_DELIVERY = "whatsapp.duplicate_delivery"

# ---- Qualification turn ----
EVENT_GENERATION_FAILURE = "generation.failure"
EVENT_GENERATION_FALLBACK_SENT = "generation.fallback_sent"
EVENT_DELIVERY_FAILURE = "delivery.failure"
EVENT_INTERNAL_RECORD_STRIPPED = "reply.internal_record_stripped"
EVENT_MISSING_CREDENTIALS = "profile.missing_credentials"

# ---- Conversation memory ----
EVENT_CONVERSATION_EXPIRED = "conversation.expired"
