"""
Reply generation via the OpenAI Chat Completions API.

The engine only depends on the ReplyGenerator protocol; OpenAIReplyGenerator is
the production implementation. Any failure (HTTP error, timeout, malformed or
empty response) surfaces as GenerationError so the orchestrator can apply the
configured failure policy.
"""

import logging
from typing import Any, Protocol

import httpx

from app.core.config import settings
from app.services.integrations.http_client import create_httpx_client
from app.services.profiles import ResolvedProfile
from app.services.qualification.composer import build_generation_messages
from app.services.qualification.errors import GenerationError

logger = logging.getLogger(__name__)

OPENAI_CHAT_COMPLETIONS_URL = "https://api.openai.com/v1/chat/completions"


class ReplyGenerator(Protocol):
    async def generate(
        self,
        instructions: str,
        history: list[dict[str, Any]],
        new_message: str,
        profile: ResolvedProfile,
    ) -> str:
        """Return one natural-language reply, or raise GenerationError."""
        ...


class OpenAIReplyGenerator:
    """OpenAI chat completion client (httpx, bounded timeout)."""

    def __init__(
        self,
        model: str | None = None,
        max_tokens: int | None = None,
        temperature: float | None = None,
        timeout_seconds: float | None = None,
        history_window: int | None = None,
        max_reply_chars: int | None = None,
        url: str = OPENAI_CHAT_COMPLETIONS_URL,
    ):
        self.model = model or settings.openai_model
        self.max_tokens = max_tokens or settings.openai_max_tokens
        self.temperature = settings.openai_temperature if temperature is None else temperature
        self.timeout_seconds = timeout_seconds or settings.generation_timeout_seconds
        self.history_window = (
            settings.history_window_turns if history_window is None else history_window
        )
        self.max_reply_chars = max_reply_chars or settings.max_reply_chars
        self.url = url

    def build_payload(
        self,
        instructions: str,
        history: list[dict[str, Any]],
        new_message: str,
    ) -> dict[str, Any]:
        return {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "temperature": self.temperature,
            "messages": build_generation_messages(
                instructions, history, new_message, self.history_window
            ),
        }

    async def generate(
        self,
        instructions: str,
        history: list[dict[str, Any]],
        new_message: str,
        profile: ResolvedProfile,
    ) -> str:
        payload = self.build_payload(instructions, history, new_message)
        headers = {
            "Authorization": f"Bearer {profile.openai_key}",
            "Content-Type": "application/json",
        }
        logger.debug(f"OpenAI request: model={self.model}, messages_count={len(payload['messages'])}")

        try:
            async with create_httpx_client(self.timeout_seconds) as client:
                response = await client.post(self.url, headers=headers, json=payload)
                response.raise_for_status()
                data = response.json()
        except httpx.TimeoutException as e:
            raise GenerationError(f"OpenAI request timed out after {self.timeout_seconds}s") from e
        except httpx.HTTPStatusError as e:
            raise GenerationError(
                f"OpenAI API error: {e.response.status_code} - {e.response.text[:200]}"
            ) from e
        except (httpx.HTTPError, ValueError) as e:
            raise GenerationError(f"OpenAI request failed: {type(e).__name__}: {e}") from e

        if not isinstance(data, dict):
            raise GenerationError("OpenAI returned a malformed response")
        content = ""
        choices = data.get("choices") or []
        if choices:
            content = ((choices[0].get("message") or {}).get("content") or "").strip()
        if not content:
            raise GenerationError("OpenAI returned an empty reply")

        logger.debug(f"OpenAI usage: {data.get('usage')}")
        return content[: self.max_reply_chars]
