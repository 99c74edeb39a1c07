"""
errexplain/config.py — Pydantic BaseSettings configuration
Every tunable lives here: AI + store credentials, quota window,
classifier thresholds, HTTP burst limits.
"""
from __future__ import annotations

from functools import lru_cache
from typing import Literal, Optional

from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # ── Application ────────────────────────────────────────────────────────────
    environment: str = "development"
    log_level: str = "INFO"
    public_base_url: str = "http://localhost:8000"

    # ── Google Gemini (AI collaborator) ───────────────────────────────────────
    gemini_api_key: Optional[str] = None
    gemini_model: str = "gemini-2.0-flash"
    ai_timeout_seconds: float = 30.0
    ai_max_output_tokens: int = 1200

    # ── Google OAuth / Drive (durable store collaborator) ─────────────────────
    google_client_id: Optional[str] = None
    google_client_secret: Optional[str] = None
    google_refresh_token: Optional[str] = None
    drive_folder_name: str = "ERREXPLAIN"
    store_timeout_seconds: float = 10.0
    quota_collection: str = "rate_limits"
    submissions_collection: str = "error_submissions"

    # ── Quota — rolling window, same semantics for reserve and peek ──────────
    # auto → durable when store credentials are configured, else local
    quota_backend: Literal["auto", "durable", "local"] = "auto"
    quota_max_requests: int = 5
    quota_window_hours: int = 24
    quota_cas_retries: int = 5

    # ── Classifier — one rule set for the hint endpoint and the gate ─────────
    classifier_min_length: int = 8
    classifier_min_score: float = 2.0

    # ── Input limits ──────────────────────────────────────────────────────────
    max_error_length: int = 2000
    stored_error_length: int = 1000
    stored_language_length: int = 50
    history_page_size: int = 50

    # ── Per-minute burst limits (slowapi) ─────────────────────────────────────
    rate_limits: dict[str, str] = {
        "analyze": "10/minute",
        "validate": "60/minute",
        "status": "60/minute",
        "history": "30/minute",
        "share": "20/minute",
        "health": "30/minute",
    }

    @field_validator("environment")
    @classmethod
    def validate_env(cls, v: str) -> str:
        allowed = {"development", "production", "testing"}
        if v not in allowed:
            raise ValueError(f"environment must be one of {allowed}")
        return v

    @property
    def is_production(self) -> bool:
        return self.environment == "production"

    @property
    def ai_configured(self) -> bool:
        return bool(self.gemini_api_key)

    @property
    def store_configured(self) -> bool:
        """Presence of Drive credentials is the switch for durable quota + history."""
        return bool(
            self.google_client_id
            and self.google_client_secret
            and self.google_refresh_token
        )


@lru_cache()
def get_settings() -> Settings:
    """Return cached Settings instance. Use this everywhere."""
    return Settings()
