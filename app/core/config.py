import secrets

from pydantic_settings import BaseSettings


def _generate_dev_secret() -> str:
    """Generate a random secret for local development only."""
    return secrets.token_hex(32)


class Settings(BaseSettings):
    # App
    app_name: str = "Study Assistant"
    debug: bool = False
    environment: str = "development"  # development, production
    log_level: str = ""  # DEBUG, INFO, WARNING, ERROR, CRITICAL (empty = auto based on environment)
    log_to_file: bool = True  # Enable file logging
    log_dir: str = "logs"
    log_max_bytes: int = 10 * 1024 * 1024
    log_backup_count: int = 5

    # Database (SQLite for local dev, PostgreSQL for production)
    database_url: str = "sqlite:///./study_assistant.db"

    # JWT: no default; must be set via SECRET_KEY env var in production.
    # In development, a random key is generated per-process if not set.
    secret_key: str = ""
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 60 * 24

    # Frontend
    frontend_url: str = "http://localhost:5173"

    # CORS (comma-separated origins, empty = local dev defaults)
    allowed_origins: str = ""

    # Comma-separated emails promoted to admin on their next request
    admin_emails: str = ""

    # Anthropic Claude
    anthropic_api_key: str = ""
    claude_model: str = "claude-sonnet-4-5-20250929"
    ai_max_tokens: int = 3000
    ai_temperature: float = 0.7
    ai_timeout_seconds: float = 120.0
    ai_max_retries: int = 2

    # Uploads
    upload_dir: str = "./uploads"
    max_upload_size_mb: int = 25
    min_extracted_chars: int = 50
    ai_input_char_limit: int = 8000

    # Monthly document quota
    default_monthly_limit: int = 5
    premium_limit_floor: int = 100
    quota_reset_days: int = 30

    # Rate limiting (use a shared store such as redis:// when running several instances)
    rate_limit_enabled: bool = True
    rate_limit_storage_uri: str = "memory://"
    admin_rate_limit: str = "120/minute"
    login_rate_limit: str = "5/minute"
    register_rate_limit: str = "3/minute"

    # Audit logging
    audit_log_enabled: bool = True

    class Config:
        env_file = ".env"
        extra = "ignore"

    @property
    def max_upload_size_bytes(self) -> int:
        return self.max_upload_size_mb * 1024 * 1024

    def get_admin_emails(self) -> set[str]:
        return {e.strip().lower() for e in self.admin_emails.split(",") if e.strip()}


settings = Settings()

# Validate secret key
_KNOWN_WEAK_KEYS = {"your-secret-key-change-in-production", "changeme", "secret", ""}

if settings.secret_key in _KNOWN_WEAK_KEYS:
    if settings.environment == "production":
        raise RuntimeError(
            "SECRET_KEY is not set or uses a known weak default. "
            "Set a strong SECRET_KEY env var (e.g. `openssl rand -hex 32`)."
        )
    # Development: generate a random key so the app can start
    settings.secret_key = _generate_dev_secret()
