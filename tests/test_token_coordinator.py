from __future__ import annotations

import asyncio

import httpx
import pytest

from taskboard.client import (
    ApiError,
    AuthSession,
    AuthorizationFailed,
    RefreshFailed,
    TokenCoordinator,
    TransportFailure,
)


class FakeApi:
    """
    Stand-in API: /auth/refresh hands out "fresh-N"; everything else accepts
    only the most recently issued token.
    """

    def __init__(self, *, refresh_status: int = 200, refresh_delay: float = 0.0) -> None:
        self.refresh_status = refresh_status
        self.refresh_delay = refresh_delay
        self.valid: str | None = None
        self.refresh_hits = 0
        self.seen: list[tuple[str, str | None]] = []
        self.gate = asyncio.Event()
        self.gate.set()

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        auth = request.headers.get("authorization")
        self.seen.append((request.url.path, auth))
        if request.url.path == "/auth/refresh":
            self.refresh_hits += 1
            await self.gate.wait()
            if self.refresh_delay:
                await asyncio.sleep(self.refresh_delay)
            if self.refresh_status != 200:
                return httpx.Response(self.refresh_status, json={"detail": "nope"})
            self.valid = f"fresh-{self.refresh_hits}"
            return httpx.Response(
                200, json={"accessToken": self.valid, "user": {"id": "u_1", "email": "a@b.co"}}
            )
        if request.url.path == "/boom":
            return httpx.Response(500, json={"detail": "server exploded"})
        if auth is None:
            return httpx.Response(401, json={"detail": "Access token required"})
        if auth != f"Bearer {self.valid}":
            return httpx.Response(403, json={"detail": "Invalid or expired token"})
        return httpx.Response(200, json={"path": request.url.path})


def _coordinator(api: FakeApi, **kw) -> TokenCoordinator:
    client = httpx.AsyncClient(transport=httpx.MockTransport(api), base_url="http://api.test")
    return TokenCoordinator(client, **kw)


def test_valid_token_passes_through_untouched() -> None:
    async def main() -> None:
        api = FakeApi()
        api.valid = "good"
        co = _coordinator(api, access_token="good")
        r = await co.get("/tasks")
        assert r.status_code == 200
        assert api.refresh_hits == 0
        assert api.seen == [("/tasks", "Bearer good")]

    asyncio.run(main())


def test_expired_token_refreshes_once_and_replays() -> None:
    async def main() -> None:
        api = FakeApi()
        api.valid = "current"
        co = _coordinator(api, access_token="stale")
        r = await co.get("/tasks", headers={"Authorization": "Bearer caller-supplied"})
        assert r.status_code == 200
        assert co.access_token == "fresh-1"
        assert co.refresh_calls == 1
        assert api.seen == [
            ("/tasks", "Bearer stale"),
            ("/auth/refresh", None),
            ("/tasks", "Bearer fresh-1"),
        ]
        assert not co.refreshing

    asyncio.run(main())


def test_missing_token_is_recovered_too() -> None:
    async def main() -> None:
        api = FakeApi()
        co = _coordinator(api)
        r = await co.post("/tasks", json={"title": "x"})
        assert r.status_code == 200
        assert co.refresh_calls == 1

    asyncio.run(main())


def test_concurrent_failures_share_one_refresh() -> None:
    async def main() -> None:
        api = FakeApi(refresh_delay=0.05)
        co = _coordinator(api, access_token="stale")
        results = await asyncio.gather(*(co.get(f"/tasks/{i}") for i in range(5)))
        assert [r.status_code for r in results] == [200] * 5
        assert api.refresh_hits == 1
        assert co.refresh_calls == 1
        replays = [auth for path, auth in api.seen if path.startswith("/tasks/") and auth != "Bearer stale"]
        assert replays == ["Bearer fresh-1"] * 5
        assert co.pending == 0
        assert not co.refreshing

    asyncio.run(main())


def test_waiters_queue_while_refresh_in_flight() -> None:
    async def main() -> None:
        api = FakeApi()
        api.gate.clear()
        co = _coordinator(api, access_token="stale")
        first = asyncio.create_task(co.get("/tasks/a"))
        while not co.refreshing:
            await asyncio.sleep(0)
        others = [asyncio.create_task(co.get(f"/tasks/{n}")) for n in ("b", "c")]
        while co.pending < 2:
            await asyncio.sleep(0)
        assert api.refresh_hits == 1
        api.gate.set()
        done = await asyncio.gather(first, *others)
        assert all(r.status_code == 200 for r in done)
        assert api.refresh_hits == 1
        assert co.pending == 0

    asyncio.run(main())


def test_second_rejection_is_final() -> None:
    async def main() -> None:
        api = FakeApi()

        async def always_403(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/auth/refresh":
                return await api(request)
            return httpx.Response(403, json={"detail": "Invalid or expired token"})

        client = httpx.AsyncClient(
            transport=httpx.MockTransport(always_403), base_url="http://api.test"
        )
        co = TokenCoordinator(client, access_token="stale")
        with pytest.raises(AuthorizationFailed) as ei:
            await co.get("/tasks")
        assert not isinstance(ei.value, RefreshFailed)
        assert ei.value.status_code == 403
        # Exactly one refresh: the retried request does not recover again.
        assert api.refresh_hits == 1

    asyncio.run(main())


@pytest.mark.parametrize("status", [401, 403])
def test_refresh_rejection_fails_every_waiter_with_same_error(status: int) -> None:
    async def main() -> None:
        api = FakeApi(refresh_status=status, refresh_delay=0.05)
        co = _coordinator(api, access_token="stale")
        results = await asyncio.gather(
            *(co.get(f"/tasks/{i}") for i in range(3)), return_exceptions=True
        )
        assert all(isinstance(r, RefreshFailed) for r in results)
        assert len({id(r) for r in results}) == 1
        assert results[0].status_code == status
        assert api.refresh_hits == 1
        assert co.access_token == "stale"
        assert not co.refreshing
        assert co.pending == 0

    asyncio.run(main())


def test_refresh_server_error_is_api_error() -> None:
    async def main() -> None:
        api = FakeApi(refresh_status=500)
        co = _coordinator(api, access_token="stale")
        with pytest.raises(ApiError) as ei:
            await co.get("/tasks")
        assert ei.value.status_code == 500

    asyncio.run(main())


def test_request_to_refresh_endpoint_never_recurses() -> None:
    async def main() -> None:
        api = FakeApi(refresh_status=401)
        co = _coordinator(api)
        with pytest.raises(RefreshFailed):
            await co.get("/auth/refresh")
        assert api.refresh_hits == 1
        assert co.refresh_calls == 0

    asyncio.run(main())


def test_non_auth_errors_are_returned_unchanged() -> None:
    async def main() -> None:
        api = FakeApi()
        co = _coordinator(api, access_token="whatever")
        r = await co.get("/boom")
        assert r.status_code == 500
        assert api.refresh_hits == 0

    asyncio.run(main())


def test_transport_failure_is_wrapped() -> None:
    async def main() -> None:
        def broken(request: httpx.Request) -> httpx.Response:
            raise httpx.ConnectError("connection refused", request=request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(broken), base_url="http://api.test")
        co = TokenCoordinator(client, access_token="t")
        with pytest.raises(TransportFailure):
            await co.get("/tasks")
        assert co.refresh_calls == 0

    asyncio.run(main())


def test_refresh_transport_failure_releases_waiters() -> None:
    async def main() -> None:
        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/auth/refresh":
                await asyncio.sleep(0.05)
                raise httpx.ConnectError("gone", request=request)
            return httpx.Response(403)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test")
        co = TokenCoordinator(client, access_token="stale")
        results = await asyncio.gather(co.get("/a"), co.get("/b"), return_exceptions=True)
        assert all(isinstance(r, TransportFailure) for r in results)
        assert not co.refreshing
        assert co.pending == 0

    asyncio.run(main())


def test_cancelled_refresh_releases_waiters() -> None:
    async def main() -> None:
        api = FakeApi()
        api.gate.clear()
        co = _coordinator(api, access_token="stale")
        owner = asyncio.create_task(co.get("/tasks/a"))
        while not co.refreshing:
            await asyncio.sleep(0)
        waiter = asyncio.create_task(co.get("/tasks/b"))
        while co.pending < 1:
            await asyncio.sleep(0)
        owner.cancel()
        with pytest.raises(asyncio.CancelledError):
            await owner
        with pytest.raises(RefreshFailed):
            await waiter
        assert not co.refreshing

    asyncio.run(main())


def test_on_refresh_callback_receives_payload() -> None:
    async def main() -> None:
        seen: list[dict] = []
        api = FakeApi()
        co = _coordinator(api, access_token="stale", on_refresh=seen.append)
        await co.get("/tasks")
        assert seen and seen[0]["user"]["id"] == "u_1"

    asyncio.run(main())


def test_waiters_are_released_in_arrival_order() -> None:
    async def main() -> None:
        api = FakeApi()
        api.gate.clear()
        co = _coordinator(api, access_token="stale")
        owner = asyncio.create_task(co.get("/tasks/owner"))
        while not co.refreshing:
            await asyncio.sleep(0)

        waiters = []
        for name in ("a", "b", "c", "d"):
            waiters.append(asyncio.create_task(co.get(f"/tasks/{name}")))
            while co.pending < len(waiters):
                await asyncio.sleep(0)

        api.gate.set()
        await asyncio.gather(owner, *waiters)
        replays = [
            path
            for path, auth in api.seen
            if auth == "Bearer fresh-1" and path != "/tasks/owner"
        ]
        assert replays == ["/tasks/a", "/tasks/b", "/tasks/c", "/tasks/d"]
        assert api.refresh_hits == 1

    asyncio.run(main())


def test_rejection_for_superseded_token_replays_without_refresh() -> None:
    async def main() -> None:
        api = FakeApi()
        slow_gate = asyncio.Event()
        slow_parked = asyncio.Event()

        async def handler(request: httpx.Request) -> httpx.Response:
            if request.url.path == "/slow" and request.headers.get("authorization") == "Bearer stale":
                slow_parked.set()
                await slow_gate.wait()
            return await api(request)

        client = httpx.AsyncClient(transport=httpx.MockTransport(handler), base_url="http://api.test")
        co = TokenCoordinator(client, access_token="stale")

        slow = asyncio.create_task(co.get("/slow"))
        await slow_parked.wait()

        fast = await co.get("/fast")
        assert fast.status_code == 200
        assert co.access_token == "fresh-1"
        assert not co.refreshing

        slow_gate.set()
        resp = await slow
        assert resp.status_code == 200
        assert api.refresh_hits == 1
        assert co.refresh_calls == 1
        assert api.seen[-1] == ("/slow", "Bearer fresh-1")

    asyncio.run(main())


def test_explicit_refresh_joins_refresh_in_flight() -> None:
    async def main() -> None:
        api = FakeApi()
        api.gate.clear()
        co = _coordinator(api, access_token="stale")
        recovering = asyncio.create_task(co.get("/tasks/a"))
        while not co.refreshing:
            await asyncio.sleep(0)

        joined = asyncio.create_task(co.refresh())
        while co.pending < 1:
            await asyncio.sleep(0)
        api.gate.set()

        assert await joined == "fresh-1"
        assert (await recovering).status_code == 200
        assert api.refresh_hits == 1
        assert co.refresh_calls == 1

    asyncio.run(main())


def test_session_bootstrap_shares_refresh_in_flight() -> None:
    async def main() -> None:
        api = FakeApi()
        api.gate.clear()
        client = httpx.AsyncClient(transport=httpx.MockTransport(api), base_url="http://api.test")
        session = AuthSession(client)
        session.coordinator.set_access_token("stale")

        recovering = asyncio.create_task(session.coordinator.get("/tasks/a"))
        while not session.coordinator.refreshing:
            await asyncio.sleep(0)
        booting = asyncio.create_task(session.bootstrap())
        while session.coordinator.pending < 1:
            await asyncio.sleep(0)
        api.gate.set()

        user = await booting
        assert user == {"id": "u_1", "email": "a@b.co"}
        assert session.is_authenticated
        assert (await recovering).status_code == 200
        assert api.refresh_hits == 1

    asyncio.run(main())


def test_session_bootstrap_stays_anonymous_when_refresh_rejected() -> None:
    async def main() -> None:
        api = FakeApi(refresh_status=401)
        client = httpx.AsyncClient(transport=httpx.MockTransport(api), base_url="http://api.test")
        session = AuthSession(client)
        assert await session.bootstrap() is None
        assert not session.is_authenticated
        assert not session.coordinator.refreshing

    asyncio.run(main())
