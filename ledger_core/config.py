"""
Application configuration using Pydantic Settings.

All configuration is loaded from environment variables, with an optional .env
file as a fallback. Pydantic Settings resolves values in this order:
  1. Environment variables (highest priority)
  2. .env file values
  3. Defaults defined here (lowest priority)

Usage:
    from ledger_core.config import settings
    print(settings.DATABASE_URL)
"""

from typing import Literal

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """
    Central configuration for the ledger service.

    Required fields (no defaults) MUST be set in .env or environment:
      - SECRET_KEY: Used to verify bearer tokens issued by the auth provider
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- Application ---
    APP_NAME: str = "Ledger Core"
    APP_VERSION: str = "0.1.0"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # --- Database ---
    # SQLite for local runs; use a postgresql+asyncpg URL in production
    DATABASE_URL: str = "sqlite+aiosqlite:///./data/ledger.db"
    # Only applied to non-SQLite engines (e.g. "READ COMMITTED", "REPEATABLE READ")
    DB_ISOLATION_LEVEL: str | None = None
    CREATE_TABLES_ON_STARTUP: bool = True

    # --- Authentication ---
    # REQUIRED: shared with the auth provider that signs the tokens
    SECRET_KEY: str
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30

    # --- Payment gateway ---
    # "simulated" never leaves the process; "http" posts to PAYMENT_GATEWAY_URL
    PAYMENT_GATEWAY_MODE: Literal["simulated", "http"] = "simulated"
    PAYMENT_GATEWAY_URL: str = "http://localhost:8001/payments"
    PAYMENT_GATEWAY_TIMEOUT_SECONDS: float = 5.0
    SIMULATED_GATEWAY_OUTCOME: Literal["success", "failure", "timeout"] = "success"

    # --- CORS ---
    ALLOWED_ORIGINS: list[str] = ["http://localhost:3000"]


# Singleton: import this instance everywhere instead of creating new Settings()
settings = Settings()
