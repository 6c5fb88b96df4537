from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from functools import lru_cache
from typing import Any

from pydantic import SecretStr

from .public_config import PublicConfig
from .secret_config import SecretConfig


class ConfigError(RuntimeError):
    pass


@dataclass(frozen=True, slots=True)
class Settings:
    """
    Merged settings view (dot-access).

    Precedence:
      - secrets override public when names overlap
    """

    public: PublicConfig
    secret: SecretConfig

    def __getattr__(self, name: str) -> Any:
        if hasattr(self.secret, name):
            return getattr(self.secret, name)
        return getattr(self.public, name)

    def cors_origin_list(self) -> list[str]:
        return self.public.cors_origin_list()

    def is_production(self) -> bool:
        return self.public.is_production()


_INSECURE_DEFAULTS = {
    "JWT_SECRET": "dev-insecure-access-token-secret",
    "REFRESH_TOKEN_SECRET": "dev-insecure-rotation-token-secret",
}


def _secret_value(secret: SecretStr | None) -> str:
    return secret.get_secret_value() if secret else ""


def _is_strong_secret(value: str) -> bool:
    v = str(value or "")
    if len(v) < 24:
        return False
    has_lower = any(c.islower() for c in v)
    has_upper = any(c.isupper() for c in v)
    has_digit = any(c.isdigit() for c in v)
    has_symbol = any(not c.isalnum() for c in v)
    classes = sum([has_lower, has_upper, has_digit, has_symbol])
    if len(v) >= 32 and classes >= 2:
        return True
    return classes >= 3


def _validate_secrets(s: Settings) -> None:
    """
    Hard-fail in production or when STRICT_SECRETS=1; warn otherwise.

    Reusing one secret for both token kinds always fails: a leaked access secret
    would otherwise mint rotation tokens.
    """
    strict = bool(int(os.environ.get("STRICT_SECRETS", "0") or "0"))
    prod = s.is_production()

    access_val = _secret_value(s.secret.jwt_secret)
    rotation_val = _secret_value(s.secret.rotation_token_secret)
    if access_val == rotation_val:
        raise ConfigError("JWT_SECRET and REFRESH_TOKEN_SECRET must be different.")

    weak: list[str] = []
    for name, val in (("JWT_SECRET", access_val), ("REFRESH_TOKEN_SECRET", rotation_val)):
        if val == _INSECURE_DEFAULTS[name]:
            weak.append(name)
        elif prod and not _is_strong_secret(val):
            weak.append(name)

    # Production hardening: explicit CORS allowlist + secure cross-site cookies.
    if prod:
        origins = s.public.cors_origin_list()
        if not origins or any("*" in o for o in origins):
            weak.append("CORS_ORIGINS")
        if not bool(s.public.cookie_secure):
            weak.append("COOKIE_SECURE")

    if weak:
        if prod or strict:
            raise ConfigError(
                "Unsafe security configuration detected: "
                + ", ".join(sorted(set(weak)))
                + ". Set them via environment variables or `.env.secrets`."
            )
        logging.getLogger("taskboard").warning(
            "weak_secrets_detected",
            extra={"weak": sorted(set(weak)), "strict_secrets": False, "production": prod},
        )


def get_safe_config_report() -> dict[str, Any]:
    """
    Deterministic, non-sensitive config report.

    - Public values are included (paths are stringified)
    - Secret values are NEVER included; only SET/UNSET markers
    """
    s = get_settings()

    pub_s: dict[str, Any] = {}
    for k, v in s.public.model_dump().items():
        pub_s[k] = str(v) if hasattr(v, "__fspath__") else v

    sec: dict[str, str] = {}
    for k in sorted(s.secret.model_fields.keys()):
        v = getattr(s.secret, k, None)
        if isinstance(v, SecretStr):
            sec[k] = "SET" if v.get_secret_value() else "UNSET"
        else:
            sec[k] = "SET" if v is not None and str(v).strip() else "UNSET"

    strict = bool(int(os.environ.get("STRICT_SECRETS", "0") or "0"))
    return {
        "strict_secrets": strict,
        "public": pub_s,
        "secrets": sec,
    }


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    public = PublicConfig()
    secret = SecretConfig()
    s = Settings(public=public, secret=secret)
    _validate_secrets(s)
    return s

