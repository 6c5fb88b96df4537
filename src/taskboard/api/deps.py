from __future__ import annotations

from fastapi import HTTPException, Request, status

from taskboard.api.auth.tokens import InvalidToken, TokenIssuer, TokenKind
from taskboard.api.models import AuthStore
from taskboard.api.security import extract_bearer
from taskboard.tasks.store import TaskStore
from taskboard.utils.log import logger, set_user_id
from taskboard.utils.ratelimit import RateLimiter


def _state_attr(request: Request, name: str, label: str):
    v = getattr(request.app.state, name, None)
    if v is None:
        raise HTTPException(status_code=500, detail=f"{label} not initialized")
    return v


def get_store(request: Request) -> AuthStore:
    return _state_attr(request, "auth_store", "Auth store")


def get_task_store(request: Request) -> TaskStore:
    return _state_attr(request, "task_store", "Task store")


def get_issuer(request: Request) -> TokenIssuer:
    return _state_attr(request, "token_issuer", "Token issuer")


def get_limiter(request: Request) -> RateLimiter:
    rl = getattr(request.app.state, "rate_limiter", None)
    if rl is None:
        rl = RateLimiter()
        request.app.state.rate_limiter = rl
    return rl


async def current_principal(request: Request) -> str:
    """
    Gate for protected routes.

    - no bearer credential -> 401 (missing)
    - bearer credential that fails verification -> 403 (invalid or expired)

    Clients treat both as recoverable via /auth/refresh; they stay distinct
    status codes so the two cases can be told apart in logs and metrics.
    """
    token = extract_bearer(request)
    if not token:
        logger.info("access_token_missing", path=request.url.path)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Access token required")
    try:
        principal = get_issuer(request).verify(token, TokenKind.access)
    except InvalidToken as ex:
        logger.info("access_token_rejected", reason=ex.reason, path=request.url.path)
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Invalid or expired token"
        ) from None
    request.state.principal = principal
    set_user_id(principal)
    return principal
