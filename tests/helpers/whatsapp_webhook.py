"""
Test helpers for WhatsApp webhook payloads.
"""

from typing import Any


def build_text_message_payload(
    text: str,
    wa_from: str = "33612345678",
    message_id: str = "wamid.test1",
    phone_number_id: str = "E1",
) -> dict[str, Any]:
    """
    Create a Meta webhook payload carrying one inbound text message.

    Args:
        text: Message body
        wa_from: Sender WhatsApp number
        message_id: WhatsApp message id (dedupe key)
        phone_number_id: Receiving business number id (endpoint)
    """
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WABA_ID",
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {
                                "display_phone_number": "33100000000",
                                "phone_number_id": phone_number_id,
                            },
                            "messages": [
                                {
                                    "from": wa_from,
                                    "id": message_id,
                                    "timestamp": "1760000000",
                                    "type": "text",
                                    "text": {"body": text},
                                }
                            ],
                        },
                        "field": "messages",
                    }
                ],
            }
        ],
    }


def build_status_payload(phone_number_id: str = "E1") -> dict[str, Any]:
    """Delivery receipt payload (no messages)."""
    return {
        "entry": [
            {
                "changes": [
                    {
                        "value": {
                            "metadata": {"phone_number_id": phone_number_id},
                            "statuses": [{"id": "wamid.out.1", "status": "delivered"}],
                        }
                    }
                ]
            }
        ]
    }
