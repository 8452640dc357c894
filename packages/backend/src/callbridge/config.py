"""Application configuration via environment variables.

Uses pydantic-settings to load config from env vars with CALLBRIDGE_ prefix.
No YAML files, no file-based config — just env vars (12-factor app style).

Learn: pydantic-settings auto-loads from environment, validates types,
provides defaults. Timeouts are in seconds throughout.
"""

import os

from pydantic import model_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """All app configuration. Set via CALLBRIDGE_* env vars."""

    # Server
    environment: str = "development"
    debug: bool = False
    host: str = "0.0.0.0"
    port: int = 3333

    # Public base URL workers use to call back (tunnel URL in production)
    public_url: str = ""

    # Shared key for the tool, event and admin routes (empty = open, dev only)
    api_key: str = ""

    # The single user this bridge talks to (E.164 phone number)
    user_address: str = ""

    # Gateway relay (owns provider wire formats)
    gateway_url: str = "http://localhost:8080"
    gateway_token: str = ""
    gateway_timeout_seconds: float = 15.0

    # Worker processes
    default_adapter: str = "claude_code"
    worker_binary: str = "claude"
    worker_max_turns: int = 0  # 0 = let the worker decide
    default_working_dir: str = os.getcwd()

    # Rendezvous timeouts
    transcript_timeout_seconds: float = 180.0
    ask_timeout_seconds: float = 60.0
    receive_timeout_seconds: float = 5.0
    channel_wait_timeout_seconds: float = 300.0

    # Always-on chat
    chat_enabled: bool = True
    chat_channel: str = "whatsapp"
    chat_history_size: int = 50

    # Reaper
    reap_interval_seconds: float = 3600.0
    task_idle_max_age_seconds: float = 3600.0
    task_max_running_seconds: float = 1800.0
    conversation_retention_seconds: float = 3600.0

    model_config = {"env_prefix": "CALLBRIDGE_"}

    @model_validator(mode="after")
    def validate_production_settings(self):
        """Refuse to run outside development without somewhere to reach the user."""
        if self.environment != "development":
            missing = [
                name
                for name in ("user_address", "gateway_url", "public_url")
                if not getattr(self, name)
            ]
            if missing:
                raise ValueError(
                    "Missing required settings for non-development environment: "
                    + ", ".join(f"CALLBRIDGE_{m.upper()}" for m in missing)
                )
        if self.chat_channel not in ("sms", "whatsapp"):
            raise ValueError("CALLBRIDGE_CHAT_CHANNEL must be 'sms' or 'whatsapp'")
        return self

    @property
    def api_url(self) -> str:
        """Base URL spawned workers use for the call-back surface."""
        return (self.public_url or f"http://localhost:{self.port}").rstrip("/")


# Default instance for the uvicorn app and `callbridge serve`; tests build their own
settings = Settings()
