"""In-process request counter used to slow down abusive clients.

Counts live in a plain dict and are updated with a read-then-write, so
concurrent requests from one client may occasionally both be admitted.
This is a deterrent, not an access control: the client key usually comes
from ``X-Forwarded-For``, which any caller can set unless a trusted proxy
overwrites it.
"""

from __future__ import annotations

import time
from typing import Callable, Dict, Mapping, Tuple

UNKNOWN_CLIENT = "unknown"


def client_identity(headers: Mapping[str, str]) -> str:
    """Key used for rate limiting: first forwarded IP, else ``Client-IP``, else 'unknown'."""
    forwarded = headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",", 1)[0].strip()
        if first:
            return first
    client_ip = headers.get("client-ip")
    if client_ip and client_ip.strip():
        return client_ip.strip()
    return UNKNOWN_CLIENT


class RateLimiter:
    """Allow ``limit`` requests per ``window`` seconds per key.

    The window opens with the first request from a key and is not extended
    by later ones. Rejected requests are not counted.
    """

    def __init__(
        self,
        limit: int = 10,
        window: float = 60.0,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.limit = limit
        self.window = window
        self._clock = clock
        self._counts: Dict[str, Tuple[float, int]] = {}

    def _evict(self, now: float) -> None:
        expired = [key for key, (start, _) in self._counts.items() if now - start >= self.window]
        for key in expired:
            del self._counts[key]

    def hit(self, key: str) -> bool:
        """Record a request from ``key``; return False when it is over the limit."""
        now = self._clock()
        self._evict(now)
        start, count = self._counts.get(key, (now, 0))
        if count >= self.limit:
            return False
        self._counts[key] = (start, count + 1)
        return True

    def remaining(self, key: str) -> int:
        self._evict(self._clock())
        _, count = self._counts.get(key, (0.0, 0))
        return max(self.limit - count, 0)

    def reset(self) -> None:
        self._counts.clear()
