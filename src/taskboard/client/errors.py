from __future__ import annotations

from typing import Any

import httpx


class ClientError(RuntimeError):
    """Base class for every error raised by the taskboard client."""


class TransportFailure(ClientError):
    """Network-level failure (wraps httpx.TransportError)."""


class AuthorizationFailed(ClientError):
    """
    Final authorization failure: the request was rejected with 401/403 and no
    recovery is possible (already retried once, or it was the refresh call).
    Callers should treat the session as ended.
    """

    def __init__(self, message: str, *, response: httpx.Response | None = None) -> None:
        super().__init__(message)
        self.response = response

    @property
    def status_code(self) -> int | None:
        return self.response.status_code if self.response is not None else None


class RefreshFailed(AuthorizationFailed):
    """The refresh endpoint rejected the rotation cookie."""


class ApiError(ClientError):
    """Non-2xx response that is not an authorization failure."""

    def __init__(self, status_code: int, detail: Any = None) -> None:
        super().__init__(f"HTTP {status_code}: {detail}")
        self.status_code = int(status_code)
        self.detail = detail

    @classmethod
    def from_response(cls, resp: httpx.Response) -> ApiError:
        try:
            body = resp.json()
        except ValueError:
            body = None
        detail = body.get("detail") if isinstance(body, dict) else (resp.text or None)
        return cls(resp.status_code, detail)
