from __future__ import annotations

from .coordinator import RequestAttempt, TokenCoordinator, is_auth_failure
from .errors import (
    ApiError,
    AuthorizationFailed,
    ClientError,
    RefreshFailed,
    TransportFailure,
)
from .session import AuthSession

__all__ = [
    "ApiError",
    "AuthSession",
    "AuthorizationFailed",
    "ClientError",
    "RefreshFailed",
    "RequestAttempt",
    "TokenCoordinator",
    "TransportFailure",
    "is_auth_failure",
]
