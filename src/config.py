# src/config.py

from functools import lru_cache
from typing import List, Optional, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Central application settings (Pydantic v2).

    - Aliases match the .env keys:
      APP_NAME, ENV, LOG_LEVEL, LOG_FORMAT, DATABASE_URL,
      DISPATCH_RADIUS_KM, DONATION_COOLDOWN_DAYS, NOTIFY_WEBHOOK_URL
    - Dispatch radius and slot limits are configuration, not literals in services.
    """

    # ------------------------------------------------------------------------------------
    # App / API
    # ------------------------------------------------------------------------------------
    PROJECT_NAME: str = Field(default="bloodlink-dispatch", alias="APP_NAME")
    ENVIRONMENT: str = Field(default="dev", alias="ENV")  # local|dev|staging|prod
    API_V1_STR: str = Field(default="/api/v1")
    PROJECT_VERSION: str = Field(default="1.0.0")
    LOG_LEVEL: str = Field(default="INFO")
    LOG_FORMAT: Optional[str] = Field(default=None)  # json|console, derived from ENV when unset

    # ------------------------------------------------------------------------------------
    # Database
    # ------------------------------------------------------------------------------------
    DATABASE_URL: str = Field(
        default="sqlite+aiosqlite:///./dev.db",
        description="Async SQLAlchemy URL (postgresql+asyncpg or sqlite+aiosqlite)",
    )
    DATABASE_POOL_SIZE: int = Field(default=5, ge=1)
    DATABASE_MAX_OVERFLOW: int = Field(default=10, ge=0)
    DATABASE_ECHO: bool = Field(default=False)

    # ------------------------------------------------------------------------------------
    # Dispatch / Geo
    # ------------------------------------------------------------------------------------
    DISPATCH_RADIUS_KM: float = Field(default=35.0, gt=0)
    DONATION_COOLDOWN_DAYS: int = Field(default=90, ge=0)  # 0 disables the cooldown filter
    GEOCODER_USER_AGENT: str = Field(default="BloodLink/1.0")
    GEOCODER_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)
    GOOGLE_MAPS_API_KEY: Optional[str] = Field(default=None)

    # ------------------------------------------------------------------------------------
    # Scheduling
    # ------------------------------------------------------------------------------------
    MAX_MATERIALIZE_DAYS: int = Field(default=92, ge=1)
    DEFAULT_SLOT_CAPACITY: int = Field(default=5, ge=1)

    # ------------------------------------------------------------------------------------
    # Notifications
    # ------------------------------------------------------------------------------------
    NOTIFY_WEBHOOK_URL: Optional[str] = Field(default=None)
    NOTIFY_TIMEOUT_SECONDS: float = Field(default=5.0, gt=0)

    # ------------------------------------------------------------------------------------
    # CORS / Web
    # ------------------------------------------------------------------------------------
    BACKEND_CORS_ORIGINS: Union[List[str], str] = Field(
        default_factory=lambda: [
            "http://localhost:3000",
            "http://127.0.0.1:3000",
            "http://localhost:8000",
        ]
    )

    TESTING: bool = Field(default=False)

    @field_validator("DATABASE_URL")
    @classmethod
    def _async_driver_only(cls, v: str) -> str:
        if not v.startswith(("postgresql+asyncpg://", "sqlite+aiosqlite://")):
            raise ValueError("DATABASE_URL must start with postgresql+asyncpg:// or sqlite+aiosqlite://")
        return v

    @field_validator("LOG_LEVEL")
    @classmethod
    def _known_level(cls, v: str) -> str:
        if v.upper() not in {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}:
            raise ValueError("LOG_LEVEL must be one of DEBUG, INFO, WARNING, ERROR, CRITICAL")
        return v.upper()

    # ------------------------------------------------------------------------------------
    # Helper properties
    # ------------------------------------------------------------------------------------
    @property
    def is_local(self) -> bool:
        return self.ENVIRONMENT.lower() == "local"

    @property
    def is_dev(self) -> bool:
        return self.ENVIRONMENT.lower() in {"dev", "development", "local"}

    @property
    def is_staging(self) -> bool:
        return self.ENVIRONMENT.lower() in {"stage", "staging"}

    @property
    def is_prod(self) -> bool:
        return self.ENVIRONMENT.lower() in {"prod", "production"}

    @property
    def is_sqlite(self) -> bool:
        return self.DATABASE_URL.startswith("sqlite")

    @property
    def log_format(self) -> str:
        if self.LOG_FORMAT in ("json", "console"):
            return self.LOG_FORMAT
        return "console" if self.is_dev else "json"

    def cors_origins(self) -> List[str]:
        if isinstance(self.BACKEND_CORS_ORIGINS, list):
            return self.BACKEND_CORS_ORIGINS
        if isinstance(self.BACKEND_CORS_ORIGINS, str):
            return [o.strip() for o in self.BACKEND_CORS_ORIGINS.split(",") if o.strip()]
        return []

    # ------------------------------------------------------------------------------------
    # Pydantic v2 settings config
    # ------------------------------------------------------------------------------------
    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": True,
        "populate_by_name": True,   # enable aliases
        "extra": "ignore",          # don't crash on unrelated env keys
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
