from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import field_validator, model_validator
from typing import Any, ClassVar
import json
from pathlib import Path
import os


class Settings(BaseSettings):
    API_V1_STR: str = "/api/v1"

    # JWT configuration (provide a fallback for local development). Tokens are
    # minted by the auth provider with the same secret; ``sub`` is the email.
    SECRET_KEY: str = "fallback_secret_for_dev_only"
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # Database URL
    # Use an absolute path so running the app from different directories
    # (e.g., repo root or backend/) always resolves the same DB file.
    BASE_DIR: ClassVar[Path] = Path(__file__).resolve().parents[2]
    SQLALCHEMY_DATABASE_URL: str = f"sqlite:///{BASE_DIR / 'messaging.db'}"
    # Create tables on startup (development convenience; the production schema
    # is owned by the hosted store).
    AUTO_CREATE_TABLES: bool = True

    # Redis connection URL for the realtime bus
    REDIS_URL: str = "redis://localhost:6379/0"
    # Mirror realtime message events across instances via Redis pub/sub
    WS_BUS_ENABLED: bool = False

    # CORS origins
    CORS_ORIGINS: list[str] = ["http://localhost:3000", "http://localhost:5173"]
    CORS_ALLOW_ALL: bool = False

    # Base frontend URL used for dashboard deep links in notifications
    FRONTEND_URL: str = "http://localhost:5173"

    # SMTP email settings
    SMTP_HOST: str = "localhost"
    SMTP_PORT: int = 25
    SMTP_USERNAME: str = ""
    SMTP_PASSWORD: str = ""
    SMTP_FROM: str = "no-reply@localhost"

    # Twilio SMS settings; SMS is skipped when any of these is blank
    TWILIO_ACCOUNT_SID: str = ""
    TWILIO_AUTH_TOKEN: str = ""
    TWILIO_FROM_NUMBER: str = ""

    # Feature flag: fan out SMS/email when a chat message is sent.
    NOTIFY_NEW_MESSAGES: bool = True

    # Messaging limits
    MESSAGE_MAX_LENGTH: int = 1000
    SMS_PREVIEW_LENGTH: int = 100

    # Observability
    LOG_LEVEL: str = "INFO"
    ENABLE_TRACING: bool = False
    ENABLE_CONSOLE_TRACING: bool = True

    model_config = SettingsConfigDict(
        extra="ignore",
        env_file=os.getenv(
            "ENV_FILE", str(Path(__file__).resolve().parents[3] / ".env")
        ),
        case_sensitive=True,
    )

    @field_validator("CORS_ORIGINS", mode="before")
    def split_origins(cls, v: Any) -> list[str]:
        """Parse comma-separated or JSON list of origins from environment."""
        if isinstance(v, str):
            try:
                parsed = json.loads(v)
                if isinstance(parsed, list):
                    return parsed
            except json.JSONDecodeError:
                pass
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator("FRONTEND_URL", "SMTP_FROM", "TWILIO_FROM_NUMBER", mode="before")
    def strip_whitespace(cls, v: Any) -> Any:
        if isinstance(v, str):
            return v.strip()
        return v

    @model_validator(mode="after")
    def allow_all_if_requested(cls, values: "Settings") -> "Settings":
        if values.CORS_ALLOW_ALL:
            values.CORS_ORIGINS = ["*"]
        return values


def load_settings() -> "Settings":
    return Settings(_env_file=os.getenv("ENV_FILE", str(Path(__file__).resolve().parents[3] / ".env")))


settings = load_settings()


def _redis_url() -> str:
    env_url = os.getenv("REDIS_URL")
    if env_url:
        return env_url
    return getattr(settings, "REDIS_URL", "redis://localhost:6379/0")


REDIS_URL = _redis_url()


def frontend_link(path: str) -> str:
    """Join ``path`` onto the configured frontend base URL."""
    base = (settings.FRONTEND_URL or "").rstrip("/")
    return f"{base}/{path.lstrip('/')}"
