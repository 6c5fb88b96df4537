"""
Client-side access token coordination.

The coordinator owns the in-memory access token and the recovery state used
when the API starts rejecting it. Recovery is single-flight: however many
requests discover an expired token at the same time, exactly one call is made
to the refresh endpoint and every blocked request waits for its outcome.

Runs on one asyncio event loop without locks. The flag is cleared and the
queue drained in the same synchronous step.
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

import httpx

from taskboard.client.errors import (
    ApiError,
    AuthorizationFailed,
    ClientError,
    RefreshFailed,
    TransportFailure,
)
from taskboard.utils.log import logger

# Missing (401) and invalid/expired (403) credentials both trigger recovery.
AUTH_FAILURE_STATUSES = frozenset({401, 403})


def is_auth_failure(resp: httpx.Response) -> bool:
    return resp.status_code in AUTH_FAILURE_STATUSES


@dataclass(slots=True)
class RequestAttempt:
    """One logical request. The caller's kwargs are never mutated."""

    method: str
    url: str
    kwargs: dict[str, Any] = field(default_factory=dict)
    retried: bool = False
    sent_token: str | None = None


class TokenCoordinator:
    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        refresh_path: str = "/auth/refresh",
        access_token: str | None = None,
        on_refresh: Callable[[dict[str, Any]], None] | None = None,
    ) -> None:
        self._client = client
        self._refresh_path = refresh_path
        self._access_token = access_token
        self._on_refresh = on_refresh
        self._refreshing = False
        self._waiters: deque[asyncio.Future[str]] = deque()
        self.refresh_calls = 0

    @property
    def client(self) -> httpx.AsyncClient:
        return self._client

    @property
    def access_token(self) -> str | None:
        return self._access_token

    def set_access_token(self, token: str | None) -> None:
        self._access_token = token or None

    @property
    def refreshing(self) -> bool:
        return self._refreshing

    @property
    def pending(self) -> int:
        return len(self._waiters)

    def _is_refresh_call(self, attempt: RequestAttempt) -> bool:
        return httpx.URL(attempt.url).path.rstrip("/") == self._refresh_path.rstrip("/")

    async def _dispatch(self, attempt: RequestAttempt, token: str | None) -> httpx.Response:
        headers = {
            k: v
            for k, v in dict(attempt.kwargs.get("headers") or {}).items()
            if k.lower() != "authorization"
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        attempt.sent_token = token
        try:
            return await self._client.request(
                attempt.method, attempt.url, **{**attempt.kwargs, "headers": headers}
            )
        except httpx.TransportError as ex:
            raise TransportFailure(f"{attempt.method} {attempt.url}: {ex}") from ex

    async def send_anonymous(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """Send without a bearer token and without recovery (login, register, logout)."""
        attempt = RequestAttempt(method=method.upper(), url=str(url), kwargs=kwargs)
        return await self._dispatch(attempt, None)

    async def request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        """
        Send with the current access token, recovering once from 401/403.

        Returns the response unless it is a final authorization failure, which
        raises AuthorizationFailed. A failed refresh raises the refresh error
        (RefreshFailed, TransportFailure or ApiError).
        """
        attempt = RequestAttempt(method=method.upper(), url=str(url), kwargs=kwargs)
        resp = await self._dispatch(attempt, self._access_token)
        if not is_auth_failure(resp):
            return resp

        attempt.retried = True
        if self._is_refresh_call(attempt):
            raise RefreshFailed("refresh rejected", response=resp)

        token = await self._token_after_failure(attempt)
        resp = await self._dispatch(attempt, token)
        if is_auth_failure(resp):
            logger.warning(
                "request_rejected_after_refresh",
                method=attempt.method,
                url=attempt.url,
                status=resp.status_code,
            )
            raise AuthorizationFailed("request rejected after refresh", response=resp)
        return resp

    async def get(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("GET", url, **kwargs)

    async def post(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("POST", url, **kwargs)

    async def patch(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("PATCH", url, **kwargs)

    async def delete(self, url: str, **kwargs: Any) -> httpx.Response:
        return await self.request("DELETE", url, **kwargs)

    async def refresh(self) -> str:
        """
        Obtain a fresh access token through the single-flight registry.

        Joins the refresh already in flight, if any, instead of starting another.
        """
        if self._refreshing:
            return await self._wait_for_refresh()
        return await self._refresh()

    async def _wait_for_refresh(self) -> str:
        fut: asyncio.Future[str] = asyncio.get_running_loop().create_future()
        self._waiters.append(fut)
        return await fut

    async def _token_after_failure(self, attempt: RequestAttempt) -> str:
        if self._refreshing:
            return await self._wait_for_refresh()
        current = self._access_token
        if current and current != attempt.sent_token:
            # A refresh already completed while this request was in flight.
            return current
        return await self._refresh()

    async def _refresh(self) -> str:
        self._refreshing = True
        self.refresh_calls += 1
        logger.info("token_refresh_started")
        try:
            token = await self._call_refresh()
        except BaseException as ex:
            err = ex if isinstance(ex, ClientError) else RefreshFailed("refresh aborted")
            released = self._settle(error=err)
            logger.warning(
                "token_refresh_failed", error=type(err).__name__, released=released
            )
            raise
        self._access_token = token
        released = self._settle(token=token)
        logger.info("token_refresh_ok", released=released)
        return token

    def _settle(self, *, token: str | None = None, error: BaseException | None = None) -> int:
        """Leave Refreshing and release every queued waiter, FIFO, exactly once."""
        self._refreshing = False
        waiters, self._waiters = self._waiters, deque()
        released = 0
        for fut in waiters:
            if fut.done():
                continue
            if error is not None:
                fut.set_exception(error)
            else:
                fut.set_result(str(token))
            released += 1
        return released

    async def _call_refresh(self) -> str:
        try:
            resp = await self._client.get(self._refresh_path)
        except httpx.TransportError as ex:
            raise TransportFailure(f"GET {self._refresh_path}: {ex}") from ex
        if is_auth_failure(resp):
            raise RefreshFailed("refresh rejected", response=resp)
        if resp.status_code >= 400:
            raise ApiError.from_response(resp)
        try:
            data = resp.json()
        except ValueError:
            data = None
        token = data.get("accessToken") if isinstance(data, dict) else None
        if not token:
            raise ApiError(resp.status_code, "refresh response missing accessToken")
        if self._on_refresh is not None:
            self._on_refresh(data)
        return str(token)
