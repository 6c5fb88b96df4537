from __future__ import annotations

from dataclasses import dataclass

from fastapi import Request, Response

from taskboard.config import get_settings


@dataclass(frozen=True, slots=True)
class CookiePolicy:
    secure: bool
    samesite: str
    max_age: int


def extract_bearer(request: Request) -> str | None:
    auth = request.headers.get("authorization") or ""
    if auth.lower().startswith("bearer "):
        return auth.split(" ", 1)[1].strip() or None
    return None


def rotation_cookie_policy() -> CookiePolicy:
    """
    Production: Secure + SameSite=None so a separately hosted frontend can
    send the cookie to /auth/refresh. Development: relaxed, configurable.
    """
    s = get_settings()
    max_age = int(s.rotation_token_days) * 86400
    if s.is_production():
        return CookiePolicy(secure=True, samesite="none", max_age=max_age)
    samesite = str(s.cookie_samesite or "strict").strip().lower()
    return CookiePolicy(secure=bool(s.cookie_secure), samesite=samesite, max_age=max_age)


def read_rotation_cookie(request: Request) -> str | None:
    return request.cookies.get(get_settings().rotation_cookie_name) or None


def set_rotation_cookie(resp: Response, token: str) -> None:
    p = rotation_cookie_policy()
    resp.set_cookie(
        get_settings().rotation_cookie_name,
        token,
        httponly=True,
        samesite=p.samesite,
        secure=p.secure,
        max_age=p.max_age,
        path="/",
    )


def clear_rotation_cookie(resp: Response) -> None:
    p = rotation_cookie_policy()
    resp.delete_cookie(
        get_settings().rotation_cookie_name,
        path="/",
        secure=p.secure,
        httponly=True,
        samesite=p.samesite,
    )
