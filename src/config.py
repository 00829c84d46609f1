"""
UCASA Configuration — Single Source of Truth (SSoT)

All application-wide settings, proximity thresholds, delivery policy
and environment-specific values are centralized here using pydantic-settings.
Values are loaded from environment variables (prefix ``UCASA_``) or `.env`.
"""

from __future__ import annotations

from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


# ─── Enums ────────────────────────────────────────────────────────────────────

class Environment(str, Enum):
    DEV = "dev"
    STAGING = "staging"
    PRODUCTION = "production"


class LogLevel(str, Enum):
    DEBUG = "DEBUG"
    INFO = "INFO"
    WARNING = "WARNING"
    ERROR = "ERROR"
    CRITICAL = "CRITICAL"


class DeliveryMode(str, Enum):
    SUBJECT_ONLY = "subject_only"
    BIDIRECTIONAL = "bidirectional"


# ─── Proximity thresholds ────────────────────────────────────────────────────

class ProximityThresholds(BaseModel):
    """Distance bands used to bucket peers. collision_meters < warning_meters."""

    collision_meters: float = Field(default=3.0, gt=0.0)
    warning_meters: float = Field(default=5.0, gt=0.0)

    @model_validator(mode="after")
    def _check_order(self) -> "ProximityThresholds":
        if self.collision_meters >= self.warning_meters:
            raise ValueError(
                f"collision_meters ({self.collision_meters}) must be less than "
                f"warning_meters ({self.warning_meters})"
            )
        return self


# ─── Core Application Settings ───────────────────────────────────────────────

class UcasaSettings(BaseSettings):
    """Global configuration loaded from environment variables / .env file."""

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_prefix="UCASA_",
        case_sensitive=False,
        extra="ignore",
    )

    # ── General ──────────────────────────────────────────────────────────────
    environment: Environment = Field(default=Environment.DEV)
    log_level: LogLevel = Field(default=LogLevel.INFO)
    debug: bool = Field(default=True)

    # ── API Server ───────────────────────────────────────────────────────────
    api_host: str = Field(default="0.0.0.0")
    api_port: int = Field(default=5000)

    # ── Database ─────────────────────────────────────────────────────────────
    db_url: str = Field(default="sqlite:///./ucasa.db")

    # ── Proximity Engine ─────────────────────────────────────────────────────
    collision_meters: float = Field(default=3.0, gt=0.0)
    warning_meters: float = Field(default=5.0, gt=0.0)
    min_sample_interval_s: float = Field(default=1.0, ge=0.0)
    movement_hysteresis_m: float = Field(default=0.3, ge=0.0)

    # ── Pair state memory bounds ─────────────────────────────────────────────
    pair_state_ttl_s: float = Field(default=600.0, gt=0.0)
    pair_state_max_entries: int = Field(default=10_000, gt=0)

    # ── Alert delivery ───────────────────────────────────────────────────────
    alert_delivery_mode: DeliveryMode = Field(default=DeliveryMode.SUBJECT_ONLY)
    toggle_ack_timeout_s: float = Field(default=5.0, gt=0.0)

    @model_validator(mode="after")
    def _check_thresholds(self) -> "UcasaSettings":
        if self.collision_meters >= self.warning_meters:
            raise ValueError(
                f"collision_meters ({self.collision_meters}) must be less than "
                f"warning_meters ({self.warning_meters})"
            )
        return self

    @property
    def thresholds(self) -> ProximityThresholds:
        return ProximityThresholds(
            collision_meters=self.collision_meters,
            warning_meters=self.warning_meters,
        )


# ─── Singleton accessor ──────────────────────────────────────────────────────

_settings: Optional[UcasaSettings] = None


def get_settings() -> UcasaSettings:
    """Return the cached global settings instance (lazy-loaded)."""
    global _settings
    if _settings is None:
        _settings = UcasaSettings()
    return _settings
