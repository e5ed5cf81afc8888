import json
import logging

from fastapi import APIRouter, Depends, HTTPException, Query, Request, Response
from fastapi.responses import JSONResponse
from sqlalchemy.orm import Session

from app.api.dependencies import get_message_deliverer, get_reply_generator
from app.constants.event_types import (
    EVENT_WHATSAPP_SIGNATURE_VERIFICATION_FAILURE,
    EVENT_WHATSAPP_WEBHOOK_FAILURE,
)
from app.db.deps import get_db
from app.middleware.correlation_id import get_correlation_id
from app.services import system_event_service
from app.services.integrations.openai_client import ReplyGenerator
from app.services.messaging.messaging import MessageDeliverer
from app.services.messaging.whatsapp_verification import (
    verify_subscription,
    verify_whatsapp_signature,
)
from app.services.qualification.errors import MissingCredentialsError
from app.services.qualification.orchestrator import (
    InboundMessage,
    TurnState,
    handle_inbound_message,
)

logger = logging.getLogger(__name__)

router = APIRouter()


def _wa_error_response(status_code: int, error: str, **content_extras) -> JSONResponse:
    """Build JSONResponse for WhatsApp webhook errors: {"received": False, "error": ...}."""
    content: dict = {"received": False, "error": error, **content_extras}
    return JSONResponse(status_code=status_code, content=content)


async def _verify_whatsapp_webhook(
    request: Request, db: Session
) -> tuple[bytes | None, JSONResponse | None]:
    """
    Read raw body, verify WhatsApp webhook signature.
    Returns (raw_body, None) on success; (None, error_response) on failure.
    """
    raw_body = await request.body()
    signature_header = request.headers.get("X-Hub-Signature-256")
    if not verify_whatsapp_signature(raw_body, signature_header):
        system_event_service.warn(
            db=db,
            event_type=EVENT_WHATSAPP_SIGNATURE_VERIFICATION_FAILURE,
            payload={"has_signature_header": signature_header is not None},
        )
        return None, _wa_error_response(403, "Invalid webhook signature")
    return raw_body, None


def parse_inbound_message(payload: dict) -> InboundMessage | None:
    """
    Reduce a Meta webhook payload to the four fields the engine uses.

    Returns None for non-message events (delivery receipts, read statuses).
    Non-text messages come back with empty text so the turn ends as incomplete input.
    """
    entry = payload.get("entry") or []
    if not entry:
        return None
    changes = entry[0].get("changes") or []
    if not changes:
        return None
    value = changes[0].get("value") or {}
    messages = value.get("messages") or []
    if not messages:
        return None

    message = messages[0]
    text = ""
    if message.get("type", "text") == "text":
        text = (message.get("text") or {}).get("body") or ""
    return InboundMessage(
        endpoint_id=str((value.get("metadata") or {}).get("phone_number_id") or ""),
        sender_id=str(message.get("from") or ""),
        message_id=str(message.get("id") or ""),
        text=text,
    )


@router.get("/whatsapp")
def whatsapp_verify(
    hub_mode: str | None = Query(None, alias="hub.mode"),
    hub_verify_token: str | None = Query(None, alias="hub.verify_token"),
    hub_challenge: str | None = Query(None, alias="hub.challenge"),
):
    if verify_subscription(hub_mode, hub_verify_token):
        logger.info("WhatsApp webhook subscription verified")
        return Response(content=hub_challenge or "", media_type="text/plain")
    raise HTTPException(status_code=403, detail="Verification failed")


@router.post("/whatsapp")
async def whatsapp_inbound(
    request: Request,
    db: Session = Depends(get_db),
    generator: ReplyGenerator = Depends(get_reply_generator),
    deliverer: MessageDeliverer = Depends(get_message_deliverer),
):
    correlation_id = get_correlation_id(request)
    logger.info(
        f"whatsapp.inbound_received correlation_id={correlation_id}",
        extra={"correlation_id": correlation_id, "event_type": "whatsapp.inbound_received"},
    )

    raw_body, err_response = await _verify_whatsapp_webhook(request, db)
    if err_response is not None:
        return err_response

    try:
        payload = json.loads(raw_body.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        logger.warning(f"Invalid JSON payload in WhatsApp webhook: {e}")
        return _wa_error_response(400, "Invalid JSON payload")
    if not isinstance(payload, dict):
        return _wa_error_response(400, "Invalid JSON payload")

    try:
        message = parse_inbound_message(payload)
    except (AttributeError, IndexError, TypeError) as e:
        logger.warning(f"Malformed WhatsApp payload: {e}")
        return {"received": True, "type": "malformed-payload"}

    if message is None:
        return {"received": True, "type": "non-message-event"}

    try:
        result = await handle_inbound_message(db, message, generator, deliverer)
    except MissingCredentialsError as e:
        logger.error(f"Cannot process message {message.message_id}: {e}")
        return _wa_error_response(500, "Missing credentials")
    except Exception as e:
        # Ack anyway so Meta does not retry a message we cannot process
        logger.error(
            f"Qualification turn failed for WhatsApp webhook - "
            f"message_id={message.message_id}, sender={message.sender_id}, "
            f"error_type={type(e).__name__}: {e}",
            exc_info=True,
        )
        db.rollback()
        system_event_service.error(
            db=db,
            event_type=EVENT_WHATSAPP_WEBHOOK_FAILURE,
            payload={"message_id": message.message_id, "endpoint_id": message.endpoint_id},
            exc=e,
        )
        return {"received": True, "message_id": message.message_id, "error": "Turn processing failed"}

    if result.state == TurnState.DEDUPE_SKIPPED:
        return {"received": True, "type": "duplicate", "message_id": message.message_id}

    return {"received": True, "message_id": message.message_id, **result.to_dict()}
