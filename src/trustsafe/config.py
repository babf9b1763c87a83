"""Engine configuration."""

from typing import Optional

from pydantic import ConfigDict
from pydantic_settings import BaseSettings


class EngineSettings(BaseSettings):
    """Configuration for the Trust & Safety Engine."""

    model_config = ConfigDict(
        env_prefix="TRUSTSAFE_",
        env_file=".env",
        extra="ignore",  # Ignore extra fields from .env
    )

    # Storage (":memory:" keeps everything in-process)
    db_path: str = ":memory:"
    ledger_path: str = ":memory:"

    # Server settings
    host: str = "127.0.0.1"
    port: int = 8002

    # Warning strings shown to chat users ("pt" or "en")
    locale: str = "pt"

    # Repeat contact-sharing suspends the account
    contact_violation_window_days: int = 30
    contact_violation_threshold: int = 3

    # Optimistic concurrency
    cas_max_retries: int = 5

    # Critical-report incident delivery (no webhook leaves incidents pending)
    incident_workers: int = 2
    incident_webhook_url: Optional[str] = None
    incident_webhook_timeout: float = 5.0

    # Background retry of pending incidents and expiry of fixed terms (0 disables)
    maintenance_interval_seconds: float = 60.0


config = EngineSettings()
