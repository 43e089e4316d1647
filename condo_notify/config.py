import os
import logging
from dotenv import load_dotenv

load_dotenv()


def _env_bool(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


class Config:
    # Identity provider (REQUIRED) - Supabase Auth / GoTrue admin API
    AUTH_URL = os.getenv("AUTH_URL")
    AUTH_SERVICE_KEY = os.getenv("AUTH_SERVICE_KEY")
    if not AUTH_URL or not AUTH_SERVICE_KEY:
        raise ValueError(
            "AUTH_URL and AUTH_SERVICE_KEY are required! Set them in .env file.\n"
            "Use the project URL and the service role key of the identity provider."
        )

    # Database Configuration
    DB_USER = os.getenv("DB_USER", "postgres")
    DB_PASS = os.getenv("DB_PASS", "postgres")
    DB_HOST = os.getenv("DB_HOST", "localhost")
    DB_PORT = os.getenv("DB_PORT", "5432")
    DB_NAME = os.getenv("DB_NAME", "condo_notify")
    DB_POOL_SIZE = int(os.getenv("DB_POOL_SIZE", "5"))
    DB_MAX_OVERFLOW = int(os.getenv("DB_MAX_OVERFLOW", "10"))

    @property
    def DATABASE_URL(self):
        # Prefer DATABASE_URL env var if set (for SQLite support)
        url = os.getenv("DATABASE_URL")
        if url:
            return url

        return f"postgresql+asyncpg://{self.DB_USER}:{self.DB_PASS}@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"

    # Public URL of the web app, used for redirect links when the active
    # WhatsApp config has no app_url of its own
    APP_BASE_URL = os.getenv("APP_BASE_URL", "https://notificacondo.com.br").rstrip("/")

    # Shared key for internal callers (dispatch triggers) and admin endpoints
    ADMIN_API_KEY = os.getenv("ADMIN_API_KEY")

    # Outbound HTTP (providers + identity provider)
    HTTP_TIMEOUT_SECONDS = float(os.getenv("HTTP_TIMEOUT_SECONDS", "15"))

    # Access links
    ACCESS_TOKEN_TTL_DAYS = int(os.getenv("ACCESS_TOKEN_TTL_DAYS", "7"))
    PLACEHOLDER_EMAIL_DOMAIN = os.getenv("PLACEHOLDER_EMAIL_DOMAIN", "temp.notificacondo.app")
    # When false, accounts holding an elevated role keep it on resident link access
    RESIDENT_ROLE_OVERRIDE = _env_bool("RESIDENT_ROLE_OVERRIDE", False)

    # Audit storage
    RESPONSE_BODY_LIMIT = int(os.getenv("RESPONSE_BODY_LIMIT", "2000"))
    LOG_RETENTION_DAYS = int(os.getenv("LOG_RETENTION_DAYS", "90"))

    # Public endpoint rate limiting (per client IP)
    RATE_LIMIT_REQUESTS = int(os.getenv("RATE_LIMIT_REQUESTS", "10"))
    RATE_LIMIT_WINDOW = int(os.getenv("RATE_LIMIT_WINDOW", "60"))
    # Enable only behind a reverse proxy that appends X-Forwarded-For
    TRUSTED_PROXY = _env_bool("TRUSTED_PROXY", False)

    # HTTP server + scheduler
    HOST = os.getenv("HOST", "0.0.0.0")
    PORT = int(os.getenv("PORT", "8080"))
    SCHEDULER_HOUR = int(os.getenv("SCHEDULER_HOUR", "3"))
    # Local calendar used to pick "tomorrow" for reminders
    TIMEZONE = os.getenv("TIMEZONE", "America/Sao_Paulo")

config = Config()

# Log configuration on startup
logging.info(f"Identity provider: {config.AUTH_URL}")
logging.info(f"Database: {config.DATABASE_URL.split('@')[1] if '@' in config.DATABASE_URL else 'SQLite'}")
logging.info(f"Resident role override: {'enabled' if config.RESIDENT_ROLE_OVERRIDE else 'disabled (elevated roles kept)'}")
