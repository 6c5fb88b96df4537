from __future__ import annotations

import time
from dataclasses import dataclass
from threading import Lock


@dataclass
class _Bucket:
    tokens: float
    updated_at: float


class RateLimiter:
    """
    In-process token bucket rate limiter.
    Keys should include both scope and identity (e.g. "auth:login:ip:1.2.3.4").
    """

    def __init__(self) -> None:
        self._mem: dict[str, _Bucket] = {}
        self._lock = Lock()

    def allow(self, key: str, *, limit: int, per_seconds: int) -> bool:
        now = time.time()
        rate = float(limit) / float(per_seconds)
        with self._lock:
            b = self._mem.get(key)
            if b is None:
                b = _Bucket(tokens=float(limit), updated_at=now)
                self._mem[key] = b
            # refill
            b.tokens = min(float(limit), b.tokens + (now - b.updated_at) * rate)
            b.updated_at = now
            if b.tokens < 1.0:
                return False
            b.tokens -= 1.0
            return True
