"""Request rate limiting, client address parsing and CORS handling."""

from __future__ import annotations

import math
import threading
import time
from collections.abc import Callable, Iterable, Mapping
from dataclasses import dataclass, field

Clock = Callable[[], float]

_PREFLIGHT_METHODS = "OPTIONS, PUT, PATCH, DELETE"
_PREFLIGHT_HEADERS = "Authorization, Content-Type"


class TokenBucket:
    """Allows events at ``rate`` per second, with bursts of up to ``burst``.

    The bucket starts full. Each allowed event takes one token.
    """

    def __init__(self, rate: float, burst: int, clock: Clock | None = None) -> None:
        self._rate = float(rate)
        self._burst = int(burst)
        self._clock = clock or time.monotonic
        self._tokens = float(self._burst)
        self._last = self._clock()
        self._lock = threading.Lock()

    def allow(self) -> bool:
        """Take one token if one is available."""
        if self._rate == math.inf:
            return True
        with self._lock:
            now = self._clock()
            elapsed = max(0.0, now - self._last)
            refill = elapsed * self._rate if self._rate > 0 else 0.0
            tokens = min(float(self._burst), self._tokens + refill) - 1
            if tokens < 0:
                return False
            self._tokens = tokens
            self._last = max(now, self._last)
            return True


@dataclass
class _Client:
    bucket: TokenBucket
    last_seen: float


class RateLimiter:
    """One token bucket per client address."""

    def __init__(self, rps: float = 2.0, burst: int = 4, enabled: bool = True,
                 clock: Clock | None = None) -> None:
        self.rps = rps
        self.burst = burst
        self.enabled = enabled
        self._clock = clock or time.monotonic
        self._clients: dict[str, _Client] = {}
        self._lock = threading.Lock()

    def allow(self, ip: str) -> bool:
        """Whether a request from ``ip`` may go ahead now."""
        if not self.enabled:
            return True
        with self._lock:
            now = self._clock()
            client = self._clients.get(ip)
            if client is None:
                client = _Client(TokenBucket(self.rps, self.burst, self._clock), now)
                self._clients[ip] = client
            client.last_seen = now
            return client.bucket.allow()

    def prune(self, max_age: float = 180.0) -> int:
        """Forget clients not seen for more than ``max_age`` seconds; return how many."""
        with self._lock:
            now = self._clock()
            stale = [ip for ip, client in self._clients.items()
                     if now - client.last_seen > max_age]
            for ip in stale:
                del self._clients[ip]
            return len(stale)


def client_ip(remote_addr: str) -> str:
    """Host part of a ``host:port`` or ``[host]:port`` address."""
    if remote_addr.startswith("["):
        end = remote_addr.find("]")
        if end < 0:
            raise ValueError(f"address {remote_addr}: missing ']' in address")
        host, rest = remote_addr[1:end], remote_addr[end + 1:]
        if not rest.startswith(":"):
            raise ValueError(f"address {remote_addr}: missing port in address")
        if ":" in rest[1:]:
            raise ValueError(f"address {remote_addr}: too many colons in address")
        return host
    colon = remote_addr.rfind(":")
    if colon < 0:
        raise ValueError(f"address {remote_addr}: missing port in address")
    host = remote_addr[:colon]
    if ":" in host:
        raise ValueError(f"address {remote_addr}: too many colons in address")
    return host


@dataclass(frozen=True)
class CorsDecision:
    """Headers to add to the reply, and whether the request was a preflight answered here."""

    headers: dict[str, str] = field(default_factory=dict)
    preflight: bool = False


class CorsPolicy:
    """Allows cross-origin requests from a fixed list of origins."""

    def __init__(self, trusted_origins: Iterable[str]) -> None:
        self.trusted_origins = tuple(trusted_origins)

    def apply(self, method: str, request_headers: Mapping[str, str]) -> CorsDecision:
        lookup = {name.lower(): value for name, value in request_headers.items()}
        headers = {"Vary": "Origin, Access-Control-Request-Method"}
        origin = lookup.get("origin", "")
        if origin and origin in self.trusted_origins:
            headers["Access-Control-Allow-Origin"] = origin
            if method == "OPTIONS" and lookup.get("access-control-request-method"):
                headers["Access-Control-Allow-Methods"] = _PREFLIGHT_METHODS
                headers["Access-Control-Allow-Headers"] = _PREFLIGHT_HEADERS
                return CorsDecision(headers, preflight=True)
        return CorsDecision(headers)