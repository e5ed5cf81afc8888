"""
WhatsApp messaging service with dry-run mode for development.
"""

import logging
from typing import Protocol

import httpx

from app.core.config import settings
from app.services.integrations.http_client import create_httpx_client
from app.services.profiles import ResolvedProfile
from app.services.qualification.errors import DeliveryError

logger = logging.getLogger(__name__)

GRAPH_API_BASE_URL = "https://graph.facebook.com/v20.0"


async def send_whatsapp_message(
    phone_number_id: str,
    to: str,
    message: str,
    access_token: str,
    dry_run: bool = True,
    timeout_seconds: float | None = None,
) -> dict:
    """
    Send a WhatsApp text message from a business number.

    Args:
        phone_number_id: Sending business phone number ID (the inbound endpoint)
        to: Recipient WhatsApp number (with country code, no +)
        message: Message text to send
        access_token: Graph API token for the sending number
        dry_run: If True, only log the message (don't actually send)
        timeout_seconds: Request timeout (defaults to settings.delivery_timeout_seconds)

    Returns:
        dict with status and message_id (or None in dry-run)

    Raises:
        DeliveryError: on missing token, HTTP error or timeout
    """
    if dry_run:
        logger.info(f"[DRY-RUN] Would send WhatsApp message from {phone_number_id} to {to}: {message}")
        return {
            "status": "dry_run",
            "message_id": None,
            "to": to,
            "message": message,
        }

    if not access_token:
        logger.error("WhatsApp access token missing - cannot send message")
        raise DeliveryError("WhatsApp access token not configured", phone_number_id, to)

    url = f"{GRAPH_API_BASE_URL}/{phone_number_id}/messages"
    headers = {
        "Authorization": f"Bearer {access_token}",
        "Content-Type": "application/json",
    }
    payload = {
        "messaging_product": "whatsapp",
        "to": f"+{to.lstrip('+')}",
        "type": "text",
        "text": {"body": message},
    }

    try:
        async with create_httpx_client(timeout_seconds or settings.delivery_timeout_seconds) as client:
            response = await client.post(url, headers=headers, json=payload)
            response.raise_for_status()
            result = response.json()
    except httpx.TimeoutException as e:
        raise DeliveryError(f"WhatsApp send timed out: {e}", phone_number_id, to) from e
    except httpx.HTTPStatusError as e:
        raise DeliveryError(
            f"WhatsApp API error: {e.response.status_code} - {e.response.text[:200]}",
            phone_number_id,
            to,
        ) from e
    except (httpx.HTTPError, ValueError) as e:
        raise DeliveryError(f"WhatsApp send failed: {type(e).__name__}: {e}", phone_number_id, to) from e

    return {
        "status": "sent",
        "message_id": (result.get("messages") or [{}])[0].get("id"),
        "to": to,
    }


class MessageDeliverer(Protocol):
    async def deliver(
        self,
        endpoint_id: str,
        recipient_id: str,
        text: str,
        profile: ResolvedProfile,
    ) -> dict:
        """Deliver text to recipient_id from endpoint_id, or raise DeliveryError."""
        ...


class WhatsAppDeliverer:
    """Delivers replies through the WhatsApp Cloud API using the tenant's token."""

    def __init__(self, dry_run: bool | None = None, timeout_seconds: float | None = None):
        self.dry_run = settings.whatsapp_dry_run if dry_run is None else dry_run
        self.timeout_seconds = timeout_seconds

    async def deliver(
        self,
        endpoint_id: str,
        recipient_id: str,
        text: str,
        profile: ResolvedProfile,
    ) -> dict:
        return await send_whatsapp_message(
            phone_number_id=endpoint_id,
            to=recipient_id,
            message=text,
            access_token=profile.wa_token,
            dry_run=self.dry_run,
            timeout_seconds=self.timeout_seconds,
        )
