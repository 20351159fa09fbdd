# storefront/settings.py
"""
Storefront settings - environment / .env driven.
"""
from __future__ import annotations
from pathlib import Path
from typing import List, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices

class Settings(BaseSettings):
    # =========================================================================
    # File Storage (uploads, logs)
    # =========================================================================
    DATA_ROOT: Path = Field(
        default=(Path(__file__).resolve().parents[2] / "storefront-data"),
        validation_alias=AliasChoices("STOREFRONT_DATA_ROOT", "DATA_ROOT"),
    )

    # =========================================================================
    # PostgreSQL Database
    # =========================================================================
    DB_HOST: str = Field(default="localhost", validation_alias="DB_HOST")
    DB_PORT: int = Field(default=5432, validation_alias="DB_PORT")
    DB_NAME: str = Field(default="storefront", validation_alias="DB_NAME")
    DB_USER: str = Field(default="postgres", validation_alias="DB_USER")
    DB_PASSWORD: str = Field(default="postgres", validation_alias="DB_PASSWORD")

    # Connection pool settings
    DB_POOL_SIZE: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    DB_MAX_OVERFLOW: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")

    # Full async URL, wins over DB_* when set (e.g. sqlite+aiosqlite:///...)
    DATABASE_URL: Optional[str] = Field(default=None, validation_alias="DATABASE_URL")

    # =========================================================================
    # Auth
    # =========================================================================
    SECRET_KEY: str = Field(default="change-me", validation_alias="SECRET_KEY")
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 60 * 24 * 7

    # =========================================================================
    # Stripe
    # =========================================================================
    STRIPE_SECRET_KEY: str = Field(default="", validation_alias="STRIPE_SECRET_KEY")
    STRIPE_WEBHOOK_SECRET: str = Field(default="", validation_alias="STRIPE_WEBHOOK_SECRET")
    STRIPE_CURRENCY: str = "usd"
    PUBLIC_BASE_URL: Optional[str] = None

    # =========================================================================
    # External URL proxy
    # =========================================================================
    PROXY_TIMEOUT: float = 30.0
    PDF_PROXY_TIMEOUT: float = 10.0

    # =========================================================================
    # HTTP / logging
    # =========================================================================
    CORS_ORIGINS: List[str] = [
        "http://localhost:5173",
        "http://127.0.0.1:5173",
        "http://localhost:5000",
    ]
    LOG_LEVEL: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def uploads_root(self) -> Path:
        return Path(self.DATA_ROOT).expanduser() / "uploads"

    @property
    def logs_root(self) -> Path:
        return Path(self.DATA_ROOT).expanduser() / "logs"

settings = Settings()
