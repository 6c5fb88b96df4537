from __future__ import annotations

from pydantic import Field, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict


class SecretConfig(BaseSettings):
    """
    Sensitive config.

    This module is safe to commit: it contains *no* secrets, only loading logic.
    Real secret values should come from:
      - environment variables (preferred in production)
      - optional local `.env.secrets` file (developer convenience)
    """

    model_config = SettingsConfigDict(
        env_file=".env.secrets",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Access and rotation tokens MUST be signed with different secrets.
    jwt_secret: SecretStr = Field(
        default=SecretStr("dev-insecure-access-token-secret"), alias="JWT_SECRET"
    )
    rotation_token_secret: SecretStr = Field(
        default=SecretStr("dev-insecure-rotation-token-secret"), alias="REFRESH_TOKEN_SECRET"
    )
