"""
Replay a WhatsApp text message webhook against a running instance.

Useful for exercising the qualification turn (dedupe, extraction, generation,
delivery) without sending messages from a real phone. Reuse --message-id to
check that retried deliveries are deduplicated.

Usage:
    python scripts/webhook_replay.py --text "Bonjour, je veux une rhinoplastie" [--from 33612345678]
"""

import json
import sys
import uuid
from pathlib import Path

# Add app directory to path
sys.path.insert(0, str(Path(__file__).parent.parent))

import httpx

from app.core.config import settings
from app.services.messaging.whatsapp_verification import compute_signature


def create_text_message_payload(
    endpoint_id: str,
    wa_from: str,
    text: str,
    message_id: str,
) -> dict:
    """Meta-shaped payload carrying one inbound text message."""
    return {
        "object": "whatsapp_business_account",
        "entry": [
            {
                "id": "WHATSAPP_BUSINESS_ACCOUNT_ID",
                "changes": [
                    {
                        "value": {
                            "messaging_product": "whatsapp",
                            "metadata": {
                                "display_phone_number": "33100000000",
                                "phone_number_id": endpoint_id,
                            },
                            "contacts": [{"profile": {"name": "Replay"}, "wa_id": wa_from}],
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


def send_webhook_payload(payload: dict, base_url: str) -> bool:
    """POST the payload (signed when WHATSAPP_APP_SECRET is set). Returns True on HTTP 200."""
    webhook_url = f"{base_url}/webhooks/whatsapp"
    body = json.dumps(payload).encode("utf-8")
    headers = {"Content-Type": "application/json"}
    if settings.whatsapp_app_secret:
        headers["X-Hub-Signature-256"] = compute_signature(body, settings.whatsapp_app_secret)

    print(f"Sending webhook payload to: {webhook_url}")
    try:
        with httpx.Client(timeout=30.0) as client:
            response = client.post(webhook_url, content=body, headers=headers)
    except httpx.HTTPError as e:
        print(f"Error sending webhook: {e}")
        return False

    print(f"Status: {response.status_code}")
    print(f"Body: {response.text}")
    return response.status_code == 200


def main():
    """CLI entrypoint."""
    import argparse

    parser = argparse.ArgumentParser(description="Replay a WhatsApp webhook payload")
    parser.add_argument("--text", type=str, default="Bonjour, je me renseigne pour une rhinoplastie")
    parser.add_argument(
        "--from",
        dest="wa_from",
        type=str,
        default="33612345678",
        help="Sender WhatsApp number (with country code, no +)",
    )
    parser.add_argument(
        "--endpoint",
        type=str,
        default=settings.default_phone_number_id or "test_phone_number_id",
        help="Receiving business phone_number_id",
    )
    parser.add_argument("--message-id", type=str, default=None, help="Reuse to test deduplication")
    parser.add_argument("--base-url", type=str, default="http://localhost:8000")

    args = parser.parse_args()
    message_id = args.message_id or f"wamid.replay.{uuid.uuid4().hex}"
    payload = create_text_message_payload(args.endpoint, args.wa_from, args.text, message_id)
    ok = send_webhook_payload(payload, args.base_url)
    sys.exit(0 if ok else 1)


if __name__ == "__main__":
    main()
