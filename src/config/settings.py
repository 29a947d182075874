from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Curriculum Access Service"
    DEBUG: bool = False

    # Paths
    BASE_DIR: str = "."
    SQLITE_DB_PATH: str = "data/profiles.db"

    # Identity provider (Supabase Auth). Optional at load time so a misconfigured
    # deployment still boots and reports a ConfigurationError per request.
    SUPABASE_URL: str | None = None
    SUPABASE_SERVICE_ROLE_KEY: str | None = None
    SUPABASE_ANON_KEY: str | None = None

    # Invitation / reset redirect target is <PUBLIC_BASE_URL>/reset-password
    PUBLIC_BASE_URL: str | None = None

    # Legacy literal-email bypass for user management. Migration shim only:
    # seed a superuser row (scripts/seed_superuser.py) and leave this unset.
    SUPER_ADMIN_EMAIL: str | None = None

    AUTH_CHECK_TIMEOUT_SECONDS: float = 5.0
    CORS_ALLOW_ORIGIN: str = "*"

    # Infrastructure
    LOG_LEVEL: str = "INFO"
    SEQ_URL: str | None = None
    SEQ_API_KEY: str | None = None

    # --- Operator alerting ---
    SLACK_WEBHOOK_URL: str | None = None
    TELEGRAM_BOT_TOKEN: str | None = None
    TELEGRAM_CHAT_ID: str | None = None

    model_config = SettingsConfigDict(env_file="secrets/.env", env_file_encoding="utf-8", extra="ignore")


settings = Settings()
