from __future__ import annotations

import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

import jwt

from taskboard.config import get_settings


class TokenKind(str, Enum):
    access = "access"
    rotation = "rotation"


class InvalidToken(RuntimeError):
    """
    Token failed verification.

    `reason` is one of: expired, bad_signature, malformed, wrong_kind.
    HTTP callers only ever see a generic rejection; the reason is for logs.
    """

    def __init__(self, reason: str) -> None:
        super().__init__(f"invalid token: {reason}")
        self.reason = reason


@dataclass(frozen=True, slots=True)
class TokenIssuer:
    """
    Mints and verifies the two signed, time-bounded tokens of a principal.

    Stateless: nothing about issued tokens is stored. Validity is a function of
    signature and `exp` alone, checked against `clock` (seconds since epoch).
    """

    access_secret: str
    rotation_secret: str
    alg: str = "HS256"
    access_ttl_s: int = 15 * 60
    rotation_ttl_s: int = 7 * 86400
    clock: Callable[[], float] = field(default=time.time)

    def __post_init__(self) -> None:
        if not self.access_secret or not self.rotation_secret:
            raise ValueError("token secrets must be non-empty")
        if self.access_secret == self.rotation_secret:
            raise ValueError("access and rotation tokens must use different secrets")

    @classmethod
    def from_settings(cls, *, clock: Callable[[], float] | None = None) -> TokenIssuer:
        s = get_settings()
        return cls(
            access_secret=s.secret.jwt_secret.get_secret_value(),
            rotation_secret=s.secret.rotation_token_secret.get_secret_value(),
            alg=str(s.jwt_alg),
            access_ttl_s=int(s.access_token_minutes) * 60,
            rotation_ttl_s=int(s.rotation_token_days) * 86400,
            clock=clock or time.time,
        )

    def _secret(self, kind: TokenKind) -> str:
        return self.access_secret if kind == TokenKind.access else self.rotation_secret

    def _ttl(self, kind: TokenKind) -> int:
        return self.access_ttl_s if kind == TokenKind.access else self.rotation_ttl_s

    def _issue(self, principal: str, kind: TokenKind) -> str:
        now = int(self.clock())
        payload: dict[str, Any] = {
            "typ": kind.value,
            "sub": str(principal),
            "iat": now,
            "exp": now + self._ttl(kind),
        }
        return jwt.encode(payload, self._secret(kind), algorithm=self.alg)

    def issue_access(self, principal: str) -> str:
        return self._issue(principal, TokenKind.access)

    def issue_rotation(self, principal: str) -> str:
        return self._issue(principal, TokenKind.rotation)

    def verify(self, token: str, kind: TokenKind | str) -> str:
        """Return the principal bound to `token`, or raise InvalidToken."""
        kind = TokenKind(kind)
        try:
            # Expiry is checked below against our own clock.
            data = jwt.decode(
                token,
                self._secret(kind),
                algorithms=[self.alg],
                options={"verify_exp": False, "verify_iat": False, "require": ["sub", "exp"]},
            )
        except jwt.InvalidSignatureError:
            raise InvalidToken("bad_signature") from None
        except jwt.InvalidTokenError:
            raise InvalidToken("malformed") from None
        if data.get("typ") != kind.value:
            raise InvalidToken("wrong_kind")
        try:
            exp = float(data["exp"])
        except (TypeError, ValueError):
            raise InvalidToken("malformed") from None
        if not self.clock() < exp:
            raise InvalidToken("expired")
        sub = str(data.get("sub") or "")
        if not sub:
            raise InvalidToken("malformed")
        return sub
