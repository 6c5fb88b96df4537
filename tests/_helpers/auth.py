from __future__ import annotations

from fastapi.testclient import TestClient

ACCESS_SECRET = "test-access-secret-0123456789-abcdefghij"
ROTATION_SECRET = "test-rotation-secret-9876543210-zyxwvuts"


def register_user(
    client: TestClient, *, email: str = "alice@example.com", password: str = "hunter22"
) -> dict[str, str]:
    r = client.post("/auth/register", json={"email": email, "password": password})
    assert r.status_code == 201, r.text
    return {"Authorization": f"Bearer {r.json()['accessToken']}"}


def login_user(
    client: TestClient, *, email: str, password: str, clear_cookies: bool = False
) -> dict[str, str]:
    r = client.post("/auth/login", json={"email": email, "password": password})
    assert r.status_code == 200, r.text
    if clear_cookies:
        # Bearer-only: no rotation cookie left behind for /auth/refresh.
        client.cookies.clear()
    return {"Authorization": f"Bearer {r.json()['accessToken']}"}
