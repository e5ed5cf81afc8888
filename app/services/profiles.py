"""
Client profile lookup.

Profiles are written by the onboarding flow (one per tenant WhatsApp number).
The qualification engine only reads them: an active profile matching the
inbound endpoint supplies credentials and a custom prompt, and process-wide
defaults fill whatever is missing.
"""

import logging
from dataclasses import dataclass

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.constants.statuses import PROFILE_STATUS_ACTIVE
from app.core.config import settings
from app.db.models import ClientProfile
from app.services.qualification.errors import MissingCredentialsError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedProfile:
    """Credentials and instructions to use for one turn."""

    endpoint_id: str
    wa_token: str
    openai_key: str
    prompt: str
    profile_id: str | None = None
    clinic: str | None = None

    @property
    def is_default(self) -> bool:
        return self.profile_id is None


def find_active_profile(db: Session, endpoint_id: str) -> ClientProfile | None:
    """Return the active profile whose phone_number_id matches, or None."""
    if not endpoint_id:
        return None
    stmt = (
        select(ClientProfile)
        .where(ClientProfile.phone_number_id == endpoint_id)
        .where(ClientProfile.status == PROFILE_STATUS_ACTIVE)
        .order_by(ClientProfile.created_at.desc())
    )
    return db.execute(stmt).scalars().first()


def _clean_token(value: str | None) -> str:
    # Tokens pasted into the onboarding form often carry stray whitespace/newlines
    return "".join((value or "").split())


def resolve_profile(db: Session, endpoint_id: str) -> ResolvedProfile:
    """
    Resolve credentials and prompt for an endpoint, falling back to defaults.

    Raises:
        MissingCredentialsError: if neither the tenant nor the defaults provide
            a WhatsApp token and an OpenAI key
    """
    profile = find_active_profile(db, endpoint_id)

    wa_token = _clean_token((profile.wa_token if profile else None) or settings.default_wa_token)
    openai_key = ((profile.openai_key if profile else None) or settings.openai_api_key or "").strip()
    prompt = (profile.prompt if profile else None) or settings.default_prompt

    missing = [name for name, value in (("wa_token", wa_token), ("openai_key", openai_key)) if not value]
    if missing:
        logger.error(
            f"No usable credentials for endpoint {endpoint_id}: missing {', '.join(missing)}",
            extra={"endpoint_id": endpoint_id, "profile_id": profile.id if profile else None},
        )
        raise MissingCredentialsError(
            f"Missing credentials for endpoint {endpoint_id}: {', '.join(missing)}"
        )

    return ResolvedProfile(
        endpoint_id=endpoint_id,
        wa_token=wa_token,
        openai_key=openai_key,
        prompt=prompt,
        profile_id=profile.id if profile else None,
        clinic=profile.clinic if profile else None,
    )
