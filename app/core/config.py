from pydantic_settings import BaseSettings, SettingsConfigDict

DEFAULT_SYSTEM_PROMPT = (
    "Tu es BeautyAgent. Qualifie le prospect et propose un rendez-vous."
)


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        validate_assignment=True,
    )

    app_env: str = "dev"
    database_url: str
    log_level: str = "INFO"

    whatsapp_verify_token: str
    whatsapp_app_secret: str | None = None  # App Secret for webhook signature verification
    whatsapp_dry_run: bool = True  # Set to False in production to enable real sending

    # Process-wide fallbacks when no active client profile matches the endpoint
    default_wa_token: str | None = None
    default_phone_number_id: str | None = None
    openai_api_key: str | None = None
    default_prompt: str = DEFAULT_SYSTEM_PROMPT

    openai_model: str = "gpt-3.5-turbo"
    openai_max_tokens: int = 200
    openai_temperature: float = 0.4
    max_reply_chars: int = 1000

    # "silent": no outbound message when generation fails; "fallback": send fallback_reply
    generation_failure_policy: str = "silent"
    fallback_reply: str = "Merci pour votre message."

    # Conversation memory
    conversation_ttl_hours: int = 72  # Stale conversations are discarded and restarted
    max_history_turns: int = 20  # Most recent turns retained per conversation
    history_window_turns: int = 10  # Trailing turns passed to the generation call
    summary_max_chars: int = 600

    # Idempotency ledger for inbound webhook deliveries
    dedupe_ttl_hours: int = 24

    # Outbound call timeouts (seconds)
    generation_timeout_seconds: float = 15.0
    delivery_timeout_seconds: float = 10.0

    admin_api_key: str | None = (
        None  # Optional - if not set, admin endpoints are unprotected (dev mode)
    )

    system_event_retention_days: int = 90


# Settings will load from environment variables or .env file
# Required fields will raise ValidationError if missing (fail-fast)
settings = Settings()
