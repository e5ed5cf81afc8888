import logging

from fastapi import Depends, FastAPI
from sqlalchemy.orm import Session

from app.api.admin import router as admin_router
from app.api.webhooks import router as webhooks_router
from app.core.config import settings
from app.db.deps import get_db
from app.middleware.correlation_id import CorrelationIdLogFilter, CorrelationIdMiddleware

logger = logging.getLogger(__name__)

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - [%(correlation_id)s] %(message)s"

app = FastAPI(title="Clinic Lead Qualification Agent")

# Correlation ID on every request (echoed back as X-Correlation-ID)
app.add_middleware(CorrelationIdMiddleware)


def configure_logging() -> None:
    """Root logging setup, once per process (LOG_LEVEL)."""
    level = getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(level=level, format=LOG_FORMAT)
    root = logging.getLogger()
    root.setLevel(level)
    for handler in root.handlers:
        if not any(isinstance(f, CorrelationIdLogFilter) for f in handler.filters):
            handler.addFilter(CorrelationIdLogFilter())
    # httpx logs every request URL at INFO, which includes tenant phone number ids
    logging.getLogger("httpx").setLevel(logging.WARNING)


def validate_production_settings() -> None:
    """Fail fast when production is missing a security-relevant setting."""
    if settings.app_env != "production":
        return

    production_errors = []
    if not settings.admin_api_key:
        production_errors.append(
            "ADMIN_API_KEY is required in production. "
            "Set ADMIN_API_KEY environment variable with a strong random key."
        )
    if not settings.whatsapp_app_secret:
        production_errors.append(
            "WHATSAPP_APP_SECRET is required in production for webhook signature verification. "
            "Set WHATSAPP_APP_SECRET environment variable with your Meta App Secret."
        )

    if production_errors:
        error_message = (
            "Production environment validation failed:\n\n"
            + "\n".join(f"  - {error}" for error in production_errors)
            + "\n\n"
            "The application cannot start in production with these missing or invalid settings. "
            "Please fix the configuration and restart."
        )
        logger.error(error_message)
        raise RuntimeError(error_message)


@app.on_event("startup")
async def startup_event():
    """Run startup checks and validation."""
    configure_logging()
    validate_production_settings()

    if settings.generation_failure_policy not in ("silent", "fallback"):
        logger.warning(
            f"Unknown GENERATION_FAILURE_POLICY={settings.generation_failure_policy!r}, "
            "generation failures will send no reply"
        )
    if not (settings.default_wa_token and settings.openai_api_key):
        logger.warning(
            "Default credentials incomplete (DEFAULT_WA_TOKEN / OPENAI_API_KEY): "
            "endpoints without an active client profile cannot be answered"
        )

    # Log configuration summary (no secrets)
    logger.info(
        "Startup: Configuration loaded - "
        f"Environment: {settings.app_env}, "
        f"Model: {settings.openai_model}, "
        f"Generation failure policy: {settings.generation_failure_policy}, "
        f"WhatsApp dry-run: {settings.whatsapp_dry_run}"
    )


@app.get("/health")
def health():
    """
    Health check endpoint.

    Returns 200 immediately - used for basic health checks.
    """
    return {
        "ok": True,
        "environment": settings.app_env,
        "whatsapp_dry_run": settings.whatsapp_dry_run,
        "generation_failure_policy": settings.generation_failure_policy,
    }


@app.get("/ready")
def ready(db: Session = Depends(get_db)):
    """
    Readiness check endpoint - verifies database connectivity.

    Returns 200 if database is accessible, 503 if not.
    """
    from sqlalchemy import text
    from sqlalchemy.exc import SQLAlchemyError

    try:
        db.execute(text("SELECT 1"))
        return {"ok": True, "database": "connected"}
    except SQLAlchemyError as e:
        logger.error(f"Readiness check failed: {e}")
        from fastapi import status
        from fastapi.responses import JSONResponse

        return JSONResponse(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            content={"ok": False, "database": "disconnected", "error": str(e)},
        )


app.include_router(webhooks_router, prefix="/webhooks")
app.include_router(admin_router, prefix="/admin", tags=["admin"])
