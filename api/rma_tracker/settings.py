# rma_tracker/settings.py
"""
RMA Tracker settings - environment / .env driven.
"""
from __future__ import annotations
from pathlib import Path
from typing import List, Literal, Optional
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field, AliasChoices
from fastapi import Request


class Settings(BaseSettings):
    # =========================================================================
    # PostgreSQL Database
    # =========================================================================
    DATABASE_URL: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("DATABASE_URL", "rma_database_url"),
        description="Full SQLAlchemy async URL; overrides the DB_* parts when set",
    )
    DB_HOST: str = Field(default="localhost", validation_alias="DB_HOST")
    DB_PORT: int = Field(default=5432, validation_alias="DB_PORT")
    DB_NAME: str = Field(default="rma_tracker", validation_alias="DB_NAME")
    DB_USER: str = Field(default="postgres", validation_alias="DB_USER")
    DB_PASSWORD: str = Field(default="postgres", validation_alias="DB_PASSWORD")

    # Connection pool settings
    DB_POOL_SIZE: int = Field(default=5, validation_alias="DB_POOL_SIZE")
    DB_MAX_OVERFLOW: int = Field(default=10, validation_alias="DB_MAX_OVERFLOW")
    DB_ECHO: bool = Field(default=False, validation_alias="DB_ECHO")

    # =========================================================================
    # Logging / HTTP
    # =========================================================================
    LOG_DIR: Path = Field(
        default=(Path(__file__).resolve().parents[1] / "logs"),
        validation_alias=AliasChoices("LOG_DIR", "rma_log_dir"),
    )
    LOG_LEVEL: str = Field(default="INFO", validation_alias="LOG_LEVEL")
    CORS_ORIGINS: List[str] = Field(
        default_factory=lambda: ["http://localhost:5173", "http://127.0.0.1:5173"],
        validation_alias="CORS_ORIGINS",
    )

    # =========================================================================
    # Business rules
    # =========================================================================
    RECEIPT_OVERAGE_POLICY: Literal["allow", "block"] = Field(
        default="allow",
        description="allow: count every intake; block: refuse intake beyond quantity_reported",
    )
    MASS_MERCHANT_RMA_TYPE: str = Field(default="Mass Merchant")
    IN_STOCK_OWNERSHIP: str = Field(default="EdTech")
    SHIPOUT_FILTER_STATUS: str = Field(default="Unowned")

    DEFAULT_PAGE_SIZE: int = Field(default=25, ge=1)
    MAX_PAGE_SIZE: int = Field(default=500, ge=1)
    RELOCATE_CHUNK_SIZE: int = Field(default=500, ge=1)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="",
        case_sensitive=False,
        extra="ignore",
    )

    @property
    def database_url(self) -> str:
        """Async database URL: DATABASE_URL or postgresql+asyncpg built from DB_*."""
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+asyncpg://"
            f"{self.DB_USER}:{self.DB_PASSWORD}@"
            f"{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )


settings = Settings()


def get_settings(request: Request) -> Settings:
    """Settings the running app was built with (tests pass their own)."""
    return getattr(request.app.state, "settings", settings)
