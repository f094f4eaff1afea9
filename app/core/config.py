import secrets

from pydantic_settings import BaseSettings


def _generate_dev_secret() -> str:
    """Generate a random secret for local development only."""
    return secrets.token_hex(32)


class Settings(BaseSettings):
    # App
    app_name: str = "StudyVault"
    environment: str = "development"  # development, production
    log_level: str = ""  # DEBUG, INFO, WARNING, ERROR, CRITICAL (empty = auto based on environment)
    log_to_file: bool = True  # Enable file logging

    # Database (SQLite for local dev, PostgreSQL for production)
    database_url: str = "sqlite:///./studyvault.db"

    # JWT: no default; must be set via SECRET_KEY env var in production.
    # In development, a random key is generated per-process if not set.
    secret_key: str = ""
    algorithm: str = "HS256"
    access_token_expire_minutes: int = 30
    refresh_token_expire_days: int = 7

    # Frontend
    frontend_url: str = "http://localhost:5173"
    # Base URL of this API; local storage files are served below <api_url>/files
    api_url: str = "http://localhost:8000"

    # CORS (comma-separated origins, empty = allow all in development)
    allowed_origins: str = ""

    # Anthropic Claude (study assistant)
    anthropic_api_key: str = ""
    claude_model: str = "claude-sonnet-4-5-20250929"
    assistant_max_tokens: int = 2000
    assistant_context_chars: int = 3000

    # Object storage: "local" (directory on disk) or "s3"
    storage_backend: str = "local"
    storage_dir: str = "./storage"
    storage_bucket: str = "resources"
    storage_region: str = ""
    storage_endpoint_url: str = ""  # S3-compatible endpoints (MinIO, R2, ...)
    storage_public_base_url: str = ""
    storage_page_size: int = 1000
    uploads_prefix: str = "uploads/"

    # Uploads
    max_upload_size_mb: int = 50

    # Audit logging
    audit_log_enabled: bool = True
    audit_log_retention_days: int = 90

    # Rate limiting
    rate_limit_enabled: bool = True

    # Email
    sendgrid_api_key: str = ""
    from_email: str = "noreply@studyvault.app"
    # Gmail SMTP (used when SendGrid is not configured)
    smtp_host: str = "smtp.gmail.com"
    smtp_port: int = 587
    smtp_user: str = ""
    smtp_password: str = ""  # Gmail App Password

    class Config:
        env_file = ".env"
        extra = "ignore"


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
