"""
Admin authentication dependencies.
"""

import hmac

from fastapi import HTTPException, Security
from fastapi.security import APIKeyHeader

from app.core.config import settings

# API Key header name
API_KEY_HEADER = "X-Admin-API-Key"

# Security scheme
api_key_header = APIKeyHeader(name=API_KEY_HEADER, auto_error=False)


def get_admin_auth(api_key: str | None = Security(api_key_header)) -> bool:
    """
    Verify the admin API key guarding the lead and event endpoints.

    Args:
        api_key: API key from X-Admin-API-Key header

    Returns:
        True if authenticated

    Raises:
        HTTPException: 401 if the key is missing, 403 if it does not match
        RuntimeError: If in production without admin_api_key configured
    """
    # Startup validation should have refused this configuration already
    if settings.app_env == "production" and not settings.admin_api_key:
        raise RuntimeError(
            "ADMIN_API_KEY must be set in production environment. "
            "Set ADMIN_API_KEY environment variable or set APP_ENV=dev for development."
        )

    # No key configured: open access (dev only)
    if not settings.admin_api_key:
        return True

    if not api_key:
        raise HTTPException(status_code=401, detail="Missing API key. Provide X-Admin-API-Key header.")

    if not hmac.compare_digest(api_key.encode("utf-8"), settings.admin_api_key.encode("utf-8")):
        raise HTTPException(status_code=403, detail="Invalid API key.")

    return True
