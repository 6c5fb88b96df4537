from __future__ import annotations

from functools import lru_cache

from fastapi import APIRouter, Depends, HTTPException, Request, Response
from fastapi.responses import JSONResponse

from taskboard.api.auth.tokens import InvalidToken, TokenIssuer, TokenKind
from taskboard.api.deps import get_issuer, get_limiter, get_store
from taskboard.api.middleware import audit_event
from taskboard.api.models import AuthStore, EmailTaken, User, now_ts
from taskboard.api.schemas import LoginIn, RegisterIn, parse_body
from taskboard.api.security import clear_rotation_cookie, read_rotation_cookie, set_rotation_cookie
from taskboard.config import get_settings
from taskboard.utils.crypto import PasswordHasher, random_id
from taskboard.utils.log import logger
from taskboard.utils.ratelimit import RateLimiter

router = APIRouter(prefix="/auth", tags=["auth"])


@lru_cache(maxsize=1)
def _dummy_password_hash() -> str:
    return PasswordHasher().hash(random_id("", 16))


def _client_ip(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _rate_limit(request: Request, rl: RateLimiter, bucket: str) -> None:
    ip = _client_ip(request)
    limit = int(get_settings().auth_rate_limit_per_minute)
    if not rl.allow(f"auth:{bucket}:ip:{ip}", limit=limit, per_seconds=60):
        raise HTTPException(status_code=429, detail="Rate limit exceeded")


def _session_response(
    *, issuer: TokenIssuer, user: User, status_code: int = 200, with_rotation: bool = True
) -> JSONResponse:
    resp = JSONResponse(
        {"accessToken": issuer.issue_access(user.id), "user": user.to_public()},
        status_code=status_code,
    )
    if with_rotation:
        set_rotation_cookie(resp, issuer.issue_rotation(user.id))
    return resp


@router.post("/register")
async def register(
    request: Request,
    store: AuthStore = Depends(get_store),
    issuer: TokenIssuer = Depends(get_issuer),
    rl: RateLimiter = Depends(get_limiter),
) -> Response:
    _rate_limit(request, rl, "register")
    body = await parse_body(request, RegisterIn)

    if store.get_user_by_email(body.email) is not None:
        audit_event(
            "auth.register_failed", request=request, user_id=None, meta={"reason": "exists"}
        )
        raise HTTPException(status_code=400, detail="User already exists")

    user = User(
        id=random_id("u_", 16),
        email=body.email,
        password_hash=PasswordHasher().hash(body.password),
        created_at=now_ts(),
    )
    try:
        store.create_user(user)
    except EmailTaken:
        # Lost a race against a concurrent registration for the same email.
        raise HTTPException(status_code=409, detail="Email already exists") from None

    audit_event("auth.register_ok", request=request, user_id=user.id, outcome="ok")
    return _session_response(issuer=issuer, user=user, status_code=201)


@router.post("/login")
async def login(
    request: Request,
    store: AuthStore = Depends(get_store),
    issuer: TokenIssuer = Depends(get_issuer),
    rl: RateLimiter = Depends(get_limiter),
) -> Response:
    _rate_limit(request, rl, "login")
    body = await parse_body(request, LoginIn)

    user = store.get_user_by_email(body.email)
    # Unknown emails still run one argon2 verify: login cost is the same either way.
    hashed = user.password_hash if user is not None else _dummy_password_hash()
    password_ok = PasswordHasher().verify(hashed, body.password)
    if user is None or not password_ok:
        audit_event(
            "auth.login_failed",
            request=request,
            user_id=None,
            meta={"email": body.email},
            outcome="denied",
        )
        raise HTTPException(status_code=401, detail="Invalid credentials")

    audit_event("auth.login_ok", request=request, user_id=user.id, outcome="ok")
    return _session_response(issuer=issuer, user=user)


@router.get("/refresh")
async def refresh(
    request: Request,
    store: AuthStore = Depends(get_store),
    issuer: TokenIssuer = Depends(get_issuer),
    rl: RateLimiter = Depends(get_limiter),
) -> Response:
    """
    Exchange the rotation cookie for a fresh access token.

    The rotation token is not reissued: no rotation-on-use and no revocation
    list. The cookie set at login stays valid until it expires or the user
    logs out.
    """
    _rate_limit(request, rl, "refresh")

    rt = read_rotation_cookie(request)
    if not rt:
        audit_event(
            "auth.refresh_failed",
            request=request,
            user_id=None,
            meta={"reason": "missing_rotation_cookie"},
            outcome="denied",
        )
        raise HTTPException(status_code=401, detail="Refresh token required")

    try:
        principal = issuer.verify(rt, TokenKind.rotation)
    except InvalidToken as ex:
        logger.info("rotation_token_rejected", reason=ex.reason)
        audit_event(
            "auth.refresh_failed",
            request=request,
            user_id=None,
            meta={"reason": ex.reason},
            outcome="denied",
        )
        raise HTTPException(status_code=403, detail="Invalid refresh token") from None

    user = store.get_user(principal)
    if user is None:
        audit_event(
            "auth.refresh_failed",
            request=request,
            user_id=principal,
            meta={"reason": "unknown_user"},
            outcome="denied",
        )
        raise HTTPException(status_code=403, detail="User not found")

    audit_event("auth.refresh_ok", request=request, user_id=user.id, outcome="ok")
    return _session_response(issuer=issuer, user=user, with_rotation=False)


@router.post("/logout")
async def logout(request: Request) -> Response:
    # Bearer-only clients can simply drop their token; this clears the cookie.
    audit_event("auth.logout", request=request, user_id=None, outcome="ok")
    resp = JSONResponse({"message": "Logged out successfully"})
    clear_rotation_cookie(resp)
    return resp