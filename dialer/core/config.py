"""Application configuration."""
from typing import List, Literal, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables."""

    # Twilio
    twilio_account_sid: str
    twilio_auth_token: str
    twilio_api_key: Optional[str] = None
    twilio_api_secret: Optional[str] = None
    twilio_twiml_app_sid: Optional[str] = None
    twilio_caller_id: Optional[str] = None
    twilio_voiceflow_number: Optional[str] = None  # Transfer target for voicemail drops
    twilio_timeout_seconds: float = 10.0

    # Public URL Twilio uses to reach us (ngrok, Render, ...)
    server_url: Optional[str] = None

    # Voiceflow state API (variable priming)
    voiceflow_api_key: Optional[str] = None
    voiceflow_runtime_url: str = "https://general-runtime.voiceflow.com"

    # Downstream automation webhook (transfer leg notifications)
    automation_webhook_url: Optional[str] = None
    outbound_timeout_seconds: float = 5.0

    # Voicemail drop
    transfer_notify_mode: Literal["answered", "initiated"] = "answered"
    redirect_announcement: str = "Redirecting to voicemail now."

    # Call sessions; 0 disables the sweep
    session_ttl_seconds: float = 0

    # Leads
    leads_file: Optional[str] = None

    # Server
    host: str = "0.0.0.0"
    port: int = 8000
    log_level: str = "INFO"
    cors_allow_origins: List[str] = ["*"]

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
    )


settings = Settings()
