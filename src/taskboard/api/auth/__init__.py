"""
Canonical authentication helpers.

The server wires auth via:
- JWT access tokens (HS256, short TTL) sent as `Authorization: Bearer ...`
- JWT rotation tokens (distinct secret, long TTL) held in an http-only cookie
  and exchanged at `GET /auth/refresh` for a fresh access token
"""

from __future__ import annotations

from .tokens import InvalidToken, TokenIssuer, TokenKind

__all__ = [
    "InvalidToken",
    "TokenIssuer",
    "TokenKind",
]
