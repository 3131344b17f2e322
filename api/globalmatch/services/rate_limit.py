import threading
import time
from collections import defaultdict, deque
from dataclasses import dataclass
from typing import Any

from fastapi import Depends, HTTPException, Request

from globalmatch.auth.deps import get_current_user


@dataclass
class RateDecision:
    allowed: bool
    retry_after_seconds: int
    remaining: int = 0


@dataclass(frozen=True)
class RateRule:
    route_key: str
    limit: int
    window_seconds: int


class SlidingWindowLimiter:
    """Per-key request timestamps kept for one window; process local."""

    def __init__(self) -> None:
        self._hits: dict[str, deque[float]] = defaultdict(deque)
        self._lock = threading.Lock()

    def check(self, key: str, limit: int, window_seconds: int) -> RateDecision:
        now = time.monotonic()
        with self._lock:
            hits = self._hits[key]
            while hits and now - hits[0] >= window_seconds:
                hits.popleft()
            if len(hits) >= limit:
                wait = hits[0] + window_seconds - now
                return RateDecision(allowed=False, retry_after_seconds=max(1, int(wait)))
            hits.append(now)
            return RateDecision(allowed=True, retry_after_seconds=0, remaining=limit - len(hits))

    def reset(self) -> None:
        with self._lock:
            self._hits.clear()


limiter = SlidingWindowLimiter()


def _client_address(request: Request) -> str:
    forwarded = request.headers.get("x-forwarded-for", "").strip()
    if forwarded:
        return f"ip:{forwarded.split(',')[0].strip()}"
    if request.client and request.client.host:
        return f"ip:{request.client.host}"
    return "ip:unknown"


def _enforce(rule: RateRule, subject: str) -> None:
    decision = limiter.check(f"{rule.route_key}:{subject}", limit=rule.limit, window_seconds=rule.window_seconds)
    if not decision.allowed:
        raise HTTPException(
            status_code=429,
            detail=f"Too many requests. Retry in {decision.retry_after_seconds}s",
            headers={"Retry-After": str(decision.retry_after_seconds), "X-RateLimit-Limit": str(rule.limit)},
        )


def rate_limit_dependency(route_key: str, limit: int, window_seconds: int):
    """Limit by client address, for routes called before a session exists (register, login, refresh)."""
    rule = RateRule(route_key, limit, window_seconds)

    def _dep(request: Request) -> None:
        _enforce(rule, _client_address(request))

    return Depends(_dep)


def user_rate_limit_dependency(route_key: str, limit: int, window_seconds: int):
    """Limit by account id, so clients sharing an address do not share a budget."""
    rule = RateRule(route_key, limit, window_seconds)

    def _dep(current_user: dict[str, Any] = Depends(get_current_user)) -> None:
        _enforce(rule, f"user:{current_user['id']}")

    return Depends(_dep)
