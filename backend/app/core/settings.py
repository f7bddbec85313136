"""
Runtime configuration for CorTrack.

Values come from the process environment first, then the repository-level
``.env`` file. Use ``get_settings()`` (cached) or the module-level
``settings`` instance.
"""
import os
import warnings
from functools import lru_cache
from pathlib import Path
from typing import Optional, List

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

REPO_ROOT = Path(__file__).resolve().parents[3]

PLACEHOLDER_SECRET = "dev-only-cortrack-signing-key"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def _split_csv(value):
    """Accept ``a,b,c`` from the environment as well as a JSON list."""
    if isinstance(value, str):
        return [part.strip() for part in value.split(",") if part.strip()]
    return value


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=REPO_ROOT / ".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # --- service ---
    PROJECT_NAME: str = "CorTrack"
    VERSION: str = "1.0.0"
    API_V1_STR: str = "/api/v1"
    DEBUG: bool = False
    ENVIRONMENT: str = Field(default="development", description="development, staging or production")

    # --- record store ---
    DB_HOST: str = "localhost"
    DB_PORT: int = 5432
    DB_NAME: str = "cortrack"
    DB_USER: str = "cortrack"
    DB_PASSWORD: str = "cortrack"
    DATABASE_URL: Optional[str] = Field(default=None, description="Takes precedence over the DB_* parts")

    # --- caller identity (bearer JWT) ---
    SECRET_KEY: str = PLACEHOLDER_SECRET
    ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = Field(default=60, ge=1)

    # --- http ---
    ALLOWED_ORIGINS: List[str] = Field(default=["http://localhost:5173", "http://localhost:3000"])

    # --- logging ---
    LOG_LEVEL: str = "INFO"
    LOG_FORMAT: str = Field(default="json", description="json or text")

    # --- scheduling ---
    DEFAULT_WARNING_DAYS: int = Field(default=7, ge=0, description="Lead time for calendar schedules without one")
    AUTO_CREATE_WORK_ORDERS: bool = Field(
        default=False, description="Open a work order when a schedule first turns overdue"
    )
    SCHEDULER_ROLES: List[str] = Field(default=["admin", "supervisor", "maintenance_manager"])

    # --- compliance scoring ---
    COMPLIANCE_GAP_THRESHOLD: float = Field(default=70.0, ge=0, le=100)
    OVERDUE_REGULATORY_SCORE_CAP: float = Field(
        default=50.0, ge=0, le=100, description="Ceiling for a sub-requirement whose regulatory schedule is overdue"
    )
    EVIDENCE_LOOKBACK_DAYS: int = Field(default=365, ge=1)

    @field_validator("ALLOWED_ORIGINS", "SCHEDULER_ROLES", mode="before")
    @classmethod
    def split_comma_lists(cls, v):
        return _split_csv(v)

    @field_validator("LOG_LEVEL")
    @classmethod
    def normalize_log_level(cls, v: str) -> str:
        v = v.upper()
        if v not in LOG_LEVELS:
            raise ValueError(f"Unknown LOG_LEVEL '{v}'")
        return v

    @field_validator("SECRET_KEY")
    @classmethod
    def reject_placeholder_secret(cls, v: str) -> str:
        # ENVIRONMENT is not validated yet at this point, read it directly
        if v == PLACEHOLDER_SECRET:
            if os.getenv("ENVIRONMENT", "development").lower() == "production":
                raise ValueError("SECRET_KEY must be set in production")
            warnings.warn("Using the development SECRET_KEY", UserWarning, stacklevel=2)
        return v

    @property
    def database_url(self) -> str:
        if self.DATABASE_URL:
            return self.DATABASE_URL
        return (
            f"postgresql+psycopg://{self.DB_USER}:{self.DB_PASSWORD}"
            f"@{self.DB_HOST}:{self.DB_PORT}/{self.DB_NAME}"
        )

    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() == "production"


@lru_cache
def get_settings() -> Settings:
    return Settings()


settings = get_settings()
