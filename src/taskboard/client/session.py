from __future__ import annotations

from collections.abc import Callable
from typing import Any

import httpx

from taskboard.client.coordinator import TokenCoordinator
from taskboard.client.errors import ApiError, AuthorizationFailed, ClientError
from taskboard.config import get_settings
from taskboard.utils.log import logger


def _json_or_raise(resp: httpx.Response) -> Any:
    if resp.status_code >= 400:
        raise ApiError.from_response(resp)
    return resp.json()


class AuthSession:
    """
    Signed-in view of the API for one user.

    Holds the cached user, delegates token handling to a TokenCoordinator and
    ends the session when the coordinator reports a final authorization
    failure: cached user and token are cleared, `on_session_end` runs, and
    the error is re-raised to the caller.
    """

    def __init__(
        self,
        client: httpx.AsyncClient,
        *,
        on_session_end: Callable[[str], None] | None = None,
        refresh_path: str = "/auth/refresh",
    ) -> None:
        self._client = client
        self._on_session_end = on_session_end
        self.user: dict[str, Any] | None = None
        self.coordinator = TokenCoordinator(
            client, refresh_path=refresh_path, on_refresh=self._remember_user
        )

    @classmethod
    def connect(
        cls,
        base_url: str | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        on_session_end: Callable[[str], None] | None = None,
    ) -> AuthSession:
        s = get_settings()
        client = httpx.AsyncClient(
            base_url=base_url or str(s.api_base_url),
            timeout=float(s.client_timeout_s),
            transport=transport,
        )
        return cls(client, on_session_end=on_session_end)

    async def aclose(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> AuthSession:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.aclose()

    @property
    def is_authenticated(self) -> bool:
        return self.user is not None and self.coordinator.access_token is not None

    def _remember_user(self, data: dict[str, Any]) -> None:
        user = data.get("user")
        if isinstance(user, dict):
            self.user = user

    def _start(self, data: dict[str, Any]) -> dict[str, Any]:
        self.coordinator.set_access_token(str(data["accessToken"]))
        self._remember_user(data)
        return dict(self.user or {})

    def _end_session(self, reason: str) -> None:
        was_active = self.user is not None or self.coordinator.access_token is not None
        self.user = None
        self.coordinator.set_access_token(None)
        if was_active:
            logger.info("session_ended", reason=reason)
            if self._on_session_end is not None:
                self._on_session_end(reason)

    # --- auth ---

    async def bootstrap(self) -> dict[str, Any] | None:
        """
        Resume a session from the rotation cookie, if there is one.

        Shares the coordinator's single-flight refresh, so it is safe to call
        while other requests are already recovering.
        """
        try:
            await self.coordinator.refresh()
        except ClientError as ex:
            logger.info("session_bootstrap_anonymous", error=type(ex).__name__)
            return None
        return dict(self.user) if self.user is not None else None

    async def login(self, email: str, password: str) -> dict[str, Any]:
        resp = await self.coordinator.send_anonymous(
            "POST", "/auth/login", json={"email": email, "password": password}
        )
        return self._start(_json_or_raise(resp))

    async def register(self, email: str, password: str) -> dict[str, Any]:
        resp = await self.coordinator.send_anonymous(
            "POST", "/auth/register", json={"email": email, "password": password}
        )
        return self._start(_json_or_raise(resp))

    async def logout(self) -> None:
        try:
            await self.coordinator.send_anonymous("POST", "/auth/logout")
        except ClientError as ex:
            logger.warning("logout_request_failed", error=str(ex))
        finally:
            self._end_session("logout")

    # --- tasks ---

    async def _call(self, method: str, url: str, **kwargs: Any) -> Any:
        try:
            resp = await self.coordinator.request(method, url, **kwargs)
        except AuthorizationFailed:
            self._end_session("authorization_failed")
            raise
        return _json_or_raise(resp)

    async def list_tasks(
        self,
        *,
        page: int = 1,
        limit: int = 10,
        status: str | None = None,
        search: str | None = None,
    ) -> dict[str, Any]:
        params: dict[str, Any] = {"page": page, "limit": limit}
        if status:
            params["status"] = status
        if search:
            params["search"] = search
        return await self._call("GET", "/tasks", params=params)

    async def create_task(self, title: str, description: str | None = None) -> dict[str, Any]:
        body: dict[str, Any] = {"title": title}
        if description is not None:
            body["description"] = description
        return await self._call("POST", "/tasks", json=body)

    async def get_task(self, task_id: str) -> dict[str, Any]:
        return await self._call("GET", f"/tasks/{task_id}")

    async def update_task(self, task_id: str, **changes: Any) -> dict[str, Any]:
        return await self._call("PATCH", f"/tasks/{task_id}", json=changes)

    async def toggle_task(self, task_id: str) -> dict[str, Any]:
        return await self._call("PATCH", f"/tasks/{task_id}/toggle")

    async def delete_task(self, task_id: str) -> dict[str, Any]:
        return await self._call("DELETE", f"/tasks/{task_id}")
