from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Application settings loaded from environment variables or a .env file."""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", case_sensitive=False)

    app_name: str = "ICC Checker API"
    app_version: str = "0.1.0"
    environment: str = "local"

    database_url: str = "sqlite+aiosqlite:///./icc_checker.db"
    secret_key: str = "dev-secret-key"
    jwt_algorithm: str = "HS256"
    access_token_exp_minutes: int = 120

    cors_origins: list[str] = ["http://localhost:5173"]
    cors_allow_credentials: bool = True
    cors_allow_methods: list[str] = ["*"]
    cors_allow_headers: list[str] = ["*"]

    log_json: bool = False

    # "dynamic" reads admin-managed items from the database, "static" uses the built-in list.
    checklist_source: str = "dynamic"
    start_history_limit: int = 3
    store_history_limit: int = 5
    audit_session_ttl_minutes: int = 240

    mail_recipient: str = ""
    date_display_format: str = "%d/%m/%Y"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
