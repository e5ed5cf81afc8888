"""
Client profile resolution: tenant credentials first, process defaults second,
hard failure when neither provides them.
"""

import pytest

from app.constants.statuses import PROFILE_STATUS_ACTIVE, PROFILE_STATUS_PENDING_ONBOARDING
from app.core.config import settings
from app.db.models import ClientProfile
from app.services.profiles import find_active_profile, resolve_profile
from app.services.qualification.errors import MissingCredentialsError


def _profile(db, **kwargs) -> ClientProfile:
    defaults = {
        "id": "cs_test_1",
        "email": "clinique@example.com",
        "status": PROFILE_STATUS_ACTIVE,
        "clinic": "Clinique Lumière",
        "phone_number_id": "E1",
        "wa_token": "tenant_wa_token",
        "openai_key": "sk-tenant",
        "prompt": "Tu es l'assistante de la Clinique Lumière.",
    }
    defaults.update(kwargs)
    profile = ClientProfile(**defaults)
    db.add(profile)
    db.commit()
    return profile


def test_active_profile_supplies_credentials_and_prompt(db):
    _profile(db)
    resolved = resolve_profile(db, "E1")
    assert resolved.wa_token == "tenant_wa_token"
    assert resolved.openai_key == "sk-tenant"
    assert resolved.prompt == "Tu es l'assistante de la Clinique Lumière."
    assert resolved.clinic == "Clinique Lumière"
    assert resolved.is_default is False


def test_no_profile_falls_back_to_defaults(db):
    resolved = resolve_profile(db, "UNKNOWN")
    assert resolved.wa_token == settings.default_wa_token
    assert resolved.openai_key == settings.openai_api_key
    assert resolved.prompt == settings.default_prompt
    assert resolved.is_default is True


def test_pending_profile_is_ignored(db):
    _profile(db, status=PROFILE_STATUS_PENDING_ONBOARDING)
    assert find_active_profile(db, "E1") is None
    assert resolve_profile(db, "E1").is_default is True


def test_profile_without_prompt_uses_default_prompt(db):
    _profile(db, prompt=None)
    resolved = resolve_profile(db, "E1")
    assert resolved.prompt == settings.default_prompt
    assert resolved.wa_token == "tenant_wa_token"


def test_partial_profile_uses_default_for_missing_key(db):
    _profile(db, openai_key=None)
    resolved = resolve_profile(db, "E1")
    assert resolved.openai_key == settings.openai_api_key


def test_pasted_token_whitespace_is_removed(db):
    _profile(db, wa_token="  EAAB\nxyz  ")
    assert resolve_profile(db, "E1").wa_token == "EAABxyz"


def test_missing_everywhere_raises(db, monkeypatch):
    monkeypatch.setattr(settings, "default_wa_token", None)
    monkeypatch.setattr(settings, "openai_api_key", None)
    with pytest.raises(MissingCredentialsError) as exc_info:
        resolve_profile(db, "E1")
    assert "wa_token" in str(exc_info.value)
    assert "openai_key" in str(exc_info.value)
