"""
Inbound webhook authentication for the WhatsApp Cloud API.

Meta signs every POST with HMAC-SHA256 of the raw body, keyed by the app
secret, in the X-Hub-Signature-256 header ("sha256=<hex>"). The GET handshake
is authenticated by the verify token instead.
"""

import hashlib
import hmac
import logging

from app.core.config import settings

logger = logging.getLogger(__name__)

SIGNATURE_PREFIX = "sha256="


def compute_signature(payload: bytes, app_secret: str) -> str:
    """Header value Meta would send for payload ("sha256=<hex>")."""
    digest = hmac.new(app_secret.encode("utf-8"), payload, hashlib.sha256).hexdigest()
    return SIGNATURE_PREFIX + digest


def verify_whatsapp_signature(
    payload: bytes,
    signature_header: str | None,
    app_secret: str | None = None,
) -> bool:
    """
    Check the X-Hub-Signature-256 header against the raw request body.

    Without a configured app secret the check is skipped (dev mode); startup
    validation refuses that configuration in production.
    """
    secret = app_secret if app_secret is not None else settings.whatsapp_app_secret
    if not secret:
        logger.warning("WHATSAPP_APP_SECRET not set - webhook signature not verified")
        return True

    if not signature_header or not signature_header.startswith(SIGNATURE_PREFIX):
        logger.warning(f"Missing or malformed X-Hub-Signature-256 header: {signature_header!r}")
        return False

    is_valid = hmac.compare_digest(
        signature_header.encode("utf-8"), compute_signature(payload, secret).encode("utf-8")
    )
    if not is_valid:
        logger.warning("WhatsApp webhook signature mismatch - request rejected")
    return is_valid


def verify_subscription(mode: str | None, token: str | None) -> bool:
    """GET handshake: hub.mode must be "subscribe" and hub.verify_token must match."""
    return mode == "subscribe" and bool(token) and hmac.compare_digest(
        token.encode("utf-8"), settings.whatsapp_verify_token.encode("utf-8")
    )
