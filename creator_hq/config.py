import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from dotenv import load_dotenv

logger = logging.getLogger(__name__)

INSECURE_DEV_SECRET = "INSECURE-DEV-KEY-CHANGE-IN-PRODUCTION"  # noqa: S105 - Dev fallback only


def _env_int(name: str, default: int) -> int:
    return int(os.getenv(name, str(default)))


def _env_float(name: str, default: float) -> float:
    return float(os.getenv(name, str(default)))


@dataclass(frozen=True)
class Settings:
    database_url: str = "sqlite:///./creator_hq.db"
    db_pool_size: int = 10
    db_max_overflow: int = 20
    db_pool_timeout: int = 10
    db_pool_recycle: int = 300

    redis_url: str = "redis://localhost:6379/0"
    rate_limit_requests: int = 5
    rate_limit_window_seconds: int = 60

    # Applied to every outbound call (store fetches, Google, Stripe, Resend)
    outbound_timeout_seconds: float = 10.0

    secret_key: str = INSECURE_DEV_SECRET
    token_encryption_key: Optional[str] = None

    supabase_jwt_secret: Optional[str] = None
    supabase_jwt_audience: str = "authenticated"

    default_creator_id: Optional[str] = None

    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_redirect_uri: Optional[str] = None
    oauth_state_max_age_seconds: int = 600

    stripe_secret_key: Optional[str] = None
    stripe_webhook_secret: Optional[str] = None
    payment_webhook_path: str = "/webhooks/stripe"

    resend_api_key: Optional[str] = None
    email_from_address: str = "Creator HQ <bookings@example.com>"

    frontend_url: str = "http://localhost:3000"
    allowed_origins: list[str] = field(default_factory=list)
    log_level: str = "INFO"
    environment: str = "development"
    security_headers_enabled: bool = True

    @property
    def is_production(self) -> bool:
        return self.environment.lower() == "production"

    @property
    def google_configured(self) -> bool:
        return bool(self.google_client_id and self.google_client_secret and self.google_redirect_uri)

    @classmethod
    def from_env(cls, env_file: Optional[Path] = None) -> "Settings":
        """Build settings from the process environment (and .env if present)"""
        if env_file is None:
            env_file = Path(__file__).resolve().parent.parent / ".env"
        load_dotenv(dotenv_path=env_file)

        secret_key = os.getenv("SECRET_KEY")
        if not secret_key:
            import warnings

            warnings.warn(
                "SECRET_KEY not set! Using insecure default - DO NOT USE IN PRODUCTION",
                RuntimeWarning,
                stacklevel=2,
            )
            secret_key = INSECURE_DEV_SECRET

        frontend_url = os.getenv("FRONTEND_URL", "http://localhost:3000")
        origins = os.getenv("ALLOWED_ORIGINS", frontend_url)

        return cls(
            database_url=os.getenv("DATABASE_URL", "sqlite:///./creator_hq.db"),
            db_pool_size=_env_int("DB_POOL_SIZE", 10),
            db_max_overflow=_env_int("DB_MAX_OVERFLOW", 20),
            db_pool_timeout=_env_int("DB_POOL_TIMEOUT", 10),
            db_pool_recycle=_env_int("DB_POOL_RECYCLE", 300),
            redis_url=os.getenv("REDIS_URL", "redis://localhost:6379/0"),
            rate_limit_requests=_env_int("RATE_LIMIT_REQUESTS", 5),
            rate_limit_window_seconds=_env_int("RATE_LIMIT_WINDOW_SECONDS", 60),
            outbound_timeout_seconds=_env_float("OUTBOUND_TIMEOUT_SECONDS", 10.0),
            secret_key=secret_key,
            token_encryption_key=os.getenv("TOKEN_ENCRYPTION_KEY"),
            supabase_jwt_secret=os.getenv("SUPABASE_JWT_SECRET"),
            supabase_jwt_audience=os.getenv("SUPABASE_JWT_AUDIENCE", "authenticated"),
            default_creator_id=os.getenv("DEFAULT_CREATOR_ID"),
            google_client_id=os.getenv("GOOGLE_CLIENT_ID"),
            google_client_secret=os.getenv("GOOGLE_CLIENT_SECRET"),
            # Must match the redirect URI registered with Google exactly
            google_redirect_uri=os.getenv("GOOGLE_REDIRECT_URI"),
            oauth_state_max_age_seconds=_env_int("OAUTH_STATE_MAX_AGE_SECONDS", 600),
            stripe_secret_key=os.getenv("STRIPE_SECRET_KEY"),
            stripe_webhook_secret=os.getenv("STRIPE_WEBHOOK_SECRET"),
            payment_webhook_path=os.getenv("PAYMENT_WEBHOOK_PATH", "/webhooks/stripe"),
            resend_api_key=os.getenv("RESEND_API_KEY"),
            email_from_address=os.getenv("EMAIL_FROM_ADDRESS", "Creator HQ <bookings@example.com>"),
            frontend_url=frontend_url,
            allowed_origins=[o.strip() for o in origins.split(",") if o.strip()],
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            environment=os.getenv("ENVIRONMENT", "development"),
            security_headers_enabled=os.getenv("SECURITY_HEADERS_ENABLED", "true").lower() == "true",
        )
