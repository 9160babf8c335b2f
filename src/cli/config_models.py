"""Pydantic configuration models for locale storage."""

import os
from pathlib import Path
from typing import Optional

from pydantic import BaseModel, Field, field_validator, model_validator

from locale_storage.models import Locale

VALID_LOG_LEVELS = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
SUPPORTED_LOCALES = {loc.value for loc in Locale}


class PathsConfig(BaseModel):
    """File paths configuration."""

    local_db: Path = Path("~/.locale-storage/storage.db")
    cookie_jar: Optional[Path] = Path("~/.locale-storage/cookies.json")

    @model_validator(mode="after")
    def expand_paths(self):
        """Expand ~ in all paths."""
        self.local_db = self.local_db.expanduser()
        if self.cookie_jar is not None:
            self.cookie_jar = self.cookie_jar.expanduser()
        return self


class CacheConfig(BaseModel):
    ttl_ms: int = Field(default=600_000, ge=0)


class HistoryConfig(BaseModel):
    """Detection history bounds."""

    max_records: int = Field(default=100, ge=1, le=10_000)
    max_age_ms: int = Field(default=30 * 24 * 60 * 60 * 1000, gt=0)


class LocalesConfig(BaseModel):
    allowed: list[str] = Field(default_factory=lambda: sorted(SUPPORTED_LOCALES))
    default: str = Locale.EN.value

    @field_validator("allowed")
    @classmethod
    def validate_allowed(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("At least one locale must be allowed")
        unknown = set(v) - SUPPORTED_LOCALES
        if unknown:
            raise ValueError(
                f"Unsupported locales: {sorted(unknown)}. Must be within {SUPPORTED_LOCALES}"
            )
        return v

    @model_validator(mode="after")
    def default_in_allowed(self):
        if self.default not in self.allowed:
            raise ValueError(f"Default locale {self.default} is not in allowed locales")
        return self


class CookieConfig(BaseModel):
    max_size: int = Field(default=4096, ge=64)
    max_age_s: int = Field(default=365 * 24 * 60 * 60, ge=0)
    secure: bool = False
    same_site: str = "Lax"

    @field_validator("same_site")
    @classmethod
    def validate_same_site(cls, v: str) -> str:
        normalized = v.capitalize()
        if normalized not in {"Lax", "Strict", "None"}:
            raise ValueError(f"Invalid SameSite value: {v}")
        return normalized


class ConsistencyConfig(BaseModel):
    timestamp_threshold_ms: int = Field(default=60_000, ge=0)


class EventsConfig(BaseModel):
    max_history: int = Field(default=100, ge=1)
    console_log: bool = True
    history_recording: bool = True


class LoggingConfig(BaseModel):
    """Logging configuration."""

    level: str = "INFO"
    json_mode: bool = Field(default=False, alias="json")

    model_config = {"populate_by_name": True}

    @field_validator("level")
    @classmethod
    def validate_level(cls, v: str) -> str:
        v_upper = v.upper()
        if v_upper not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log level: {v}. Must be one of {VALID_LOG_LEVELS}")
        return v_upper


class WhatsAppConfig(BaseModel):
    """Messaging collaborator credentials. ${VAR} values are read from the environment."""

    access_token: Optional[str] = None
    phone_number_id: Optional[str] = None
    app_secret: Optional[str] = None
    verify_token: Optional[str] = None
    api_version: str = "v18.0"


class StorageConfig(BaseModel):
    """Main configuration model."""

    paths: PathsConfig = Field(default_factory=PathsConfig)
    cache: CacheConfig = Field(default_factory=CacheConfig)
    history: HistoryConfig = Field(default_factory=HistoryConfig)
    locales: LocalesConfig = Field(default_factory=LocalesConfig)
    cookie: CookieConfig = Field(default_factory=CookieConfig)
    consistency: ConsistencyConfig = Field(default_factory=ConsistencyConfig)
    events: EventsConfig = Field(default_factory=EventsConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    whatsapp: WhatsAppConfig = Field(default_factory=WhatsAppConfig)

    @model_validator(mode="after")
    def expand_env_vars(self):
        """Expand ${VAR} patterns in WhatsApp secrets."""
        for name in ("access_token", "app_secret", "verify_token"):
            value = getattr(self.whatsapp, name)
            if value and value.startswith("${") and value.endswith("}"):
                setattr(self.whatsapp, name, os.getenv(value[2:-1], ""))
        return self

    @classmethod
    def from_dict(cls, data: dict) -> "StorageConfig":
        return cls.model_validate(data)

    def to_dict(self) -> dict:
        return self.model_dump(mode="python")
