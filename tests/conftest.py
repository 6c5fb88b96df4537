from __future__ import annotations

import os
import tempfile
from collections.abc import Iterator

import pytest

from taskboard.config import get_settings
from tests._helpers.auth import ACCESS_SECRET, ROTATION_SECRET

# Logging is configured once at import time; keep the file handler out of the repo.
os.environ.setdefault("TASKBOARD_LOG_DIR", tempfile.mkdtemp(prefix="taskboard_logs_"))
os.environ.setdefault("JWT_SECRET", ACCESS_SECRET)
os.environ.setdefault("REFRESH_TOKEN_SECRET", ROTATION_SECRET)


@pytest.fixture(autouse=True)
def _test_env(
    tmp_path_factory: pytest.TempPathFactory, monkeypatch: pytest.MonkeyPatch
) -> Iterator[None]:
    root = tmp_path_factory.mktemp("tb_test")
    (root / "logs").mkdir(parents=True, exist_ok=True)
    (root / "_state").mkdir(parents=True, exist_ok=True)

    monkeypatch.setenv("APP_ROOT", str(root))
    monkeypatch.setenv("APP_ENV", "development")
    monkeypatch.setenv("TASKBOARD_LOG_DIR", str(root / "logs"))
    monkeypatch.setenv("TASKBOARD_STATE_DIR", str(root / "_state"))
    monkeypatch.setenv("JWT_SECRET", ACCESS_SECRET)
    monkeypatch.setenv("REFRESH_TOKEN_SECRET", ROTATION_SECRET)
    monkeypatch.setenv("COOKIE_SECURE", "0")
    monkeypatch.setenv("AUTH_RATE_LIMIT_PER_MINUTE", "1000")
    monkeypatch.delenv("STRICT_SECRETS", raising=False)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()
