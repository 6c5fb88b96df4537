from __future__ import annotations

import os
from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


def _default_app_root() -> Path:
    """
    Default application root.

      - Docker: /app
      - Local/dev: current working directory
    """
    env = os.environ.get("APP_ROOT")
    if env:
        return Path(env).resolve()
    if Path("/app").exists():
        return Path("/app").resolve()
    return Path.cwd().resolve()


class PublicConfig(BaseSettings):
    """
    Non-sensitive config with safe defaults.

    Loaded from (in order):
      - process env
      - optional `.env` file
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # --- runtime environment ---
    app_env: str = Field(default="development", validation_alias=AliasChoices("APP_ENV", "ENV"))

    # --- core paths ---
    app_root: Path = Field(default_factory=_default_app_root, alias="APP_ROOT")
    log_dir: Path = Field(
        default_factory=lambda: (Path.cwd() / "logs").resolve(), alias="TASKBOARD_LOG_DIR"
    )
    # Runtime-only state directory (SQLite DB). If unset, defaults to "<APP_ROOT>/_state".
    state_dir: Path | None = Field(default=None, alias="TASKBOARD_STATE_DIR")
    db_name: str = Field(default="taskboard.db", alias="TASKBOARD_DB_NAME")

    # --- logging ---
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_max_bytes: int = Field(default=5 * 1024 * 1024, alias="LOG_MAX_BYTES")
    log_backup_count: int = Field(default=3, alias="LOG_BACKUP_COUNT")

    # --- auth / tokens ---
    jwt_alg: str = Field(default="HS256", alias="JWT_ALG")
    access_token_minutes: int = Field(default=15, alias="ACCESS_TOKEN_MINUTES")
    rotation_token_days: int = Field(default=7, alias="ROTATION_TOKEN_DAYS")
    rotation_cookie_name: str = Field(default="refreshToken", alias="ROTATION_COOKIE_NAME")
    cookie_secure: bool = Field(default=False, alias="COOKIE_SECURE")
    # Development only; production always uses SameSite=None + Secure.
    cookie_samesite: str = Field(default="strict", alias="COOKIE_SAMESITE")
    auth_rate_limit_per_minute: int = Field(default=10, alias="AUTH_RATE_LIMIT_PER_MINUTE")

    # --- web server ---
    host: str = Field(default="127.0.0.1", alias="HOST")
    port: int = Field(default=4000, alias="PORT")
    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:3001", alias="CORS_ORIGINS"
    )

    # --- client ---
    api_base_url: str = Field(default="http://localhost:4000", alias="API_BASE_URL")
    client_timeout_s: float = Field(default=10.0, alias="CLIENT_TIMEOUT_S")

    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in (self.cors_origins or "").split(",") if o.strip()]

    def is_production(self) -> bool:
        return str(self.app_env or "").strip().lower() in {"prod", "production"}

    def resolved_state_dir(self) -> Path:
        return Path(self.state_dir or (Path(self.app_root) / "_state")).resolve()
