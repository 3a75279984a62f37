"""Application configuration loaded from environment variables."""

from __future__ import annotations

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Admini application settings."""

    model_config = SettingsConfigDict(
        env_prefix="ADMINI_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Core
    secret_key: str = "change-me-in-production"
    debug: bool = False
    expose_docs: bool = False

    # Storage
    data_file: Path = Path("./data.json")

    # Server
    host: str = "0.0.0.0"
    port: int = Field(default=8000, ge=1, le=65535)

    # CORS
    cors_origins: list[str] = Field(default_factory=list)
    trusted_hosts: list[str] = Field(default_factory=list)

    # Admin credentials
    admin_username: str = "admini"
    admin_password: str = "admini"

    # End-user bootstrap (seeded only when the user list is empty)
    default_user_username: str = "admin"
    default_user_password: str = "password"
    default_user_email: str = "admin@example.com"

    # Sessions
    session_max_age_seconds: int = Field(default=24 * 60 * 60, ge=60)

    # Outbound API calls
    outbound_timeout_seconds: float = Field(default=15.0, gt=0)
    action_status_display_seconds: float = Field(default=3.0, gt=0)

    # Embedded iframe markup: "sanitize" keeps only safe <iframe> elements,
    # "trusted" injects operator markup verbatim.
    iframe_embed_mode: Literal["sanitize", "trusted"] = "sanitize"

    # Response hardening
    security_headers_enabled: bool = True

    def validate_runtime_security(self) -> None:
        """Refuse to start outside debug mode with shipped credentials or keys."""
        if self.debug:
            return

        violations: list[str] = []
        if self.secret_key == "change-me-in-production" or len(self.secret_key) < 32:
            violations.append("ADMINI_SECRET_KEY must be set to a random value of 32+ chars")
        if self.admin_password == "admini" or len(self.admin_password) < 12:
            violations.append("ADMINI_ADMIN_PASSWORD must be set to 12+ chars")
        if self.default_user_password == "password":
            violations.append("ADMINI_DEFAULT_USER_PASSWORD must not be the shipped default")
        if not self.trusted_hosts:
            violations.append("ADMINI_TRUSTED_HOSTS must list the served host names")

        if violations:
            joined = "; ".join(violations)
            raise ValueError(f"Insecure production configuration: {joined}")
