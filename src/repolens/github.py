"""GitHub REST API client.

Wraps httpx with a minimum request spacing, rate-limit header tracking
and retry with backoff on 403/429 and transport failures.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from typing import Any, Callable

import httpx
from tenacity import RetryCallState, Retrying, retry_if_exception_type, stop_after_attempt

from . import __version__
from .config import (
    GITHUB_API_BASE,
    MAX_ATTEMPTS,
    MIN_REQUEST_INTERVAL,
    RATE_LIMIT_LOW_WATER,
    REQUEST_TIMEOUT,
)

logger = logging.getLogger(__name__)

DEFAULT_RETRY_AFTER = 60


class UpstreamError(Exception):
    """GitHub answered with a non-success status."""

    def __init__(self, status: int, message: str):
        super().__init__(message)
        self.status = status
        self.message = message


class RateLimitError(UpstreamError):
    """GitHub rate limit hit, or the process is still inside a throttle window."""

    def __init__(
        self,
        message: str,
        status: int = 429,
        retry_after: int | None = None,
        server_wait: int | None = None,
    ):
        super().__init__(status, message)
        self.retry_after = retry_after
        # Retry-After header value, when GitHub sent one
        self.server_wait = server_wait


@dataclass
class RateLimitState:
    """Spacing and throttle bookkeeping shared by every request of a process."""

    last_request_at: float | None = None
    throttled: bool = False
    reset_at: float | None = None
    remaining: int | None = None
    _lock: threading.Lock = field(default_factory=threading.Lock, repr=False, compare=False)

    def reserve_slot(self, now: float, interval: float) -> float:
        """Claim the next request slot. Returns how long the caller must sleep."""
        with self._lock:
            if self.last_request_at is None:
                wait = 0.0
            else:
                wait = max(0.0, interval - (now - self.last_request_at))
            self.last_request_at = now + wait
            return wait

    def record(self, headers: httpx.Headers, now: float) -> None:
        """Update from X-RateLimit-* response headers."""
        remaining = _int_header(headers, "x-ratelimit-remaining")
        if remaining is None:
            return
        reset = _int_header(headers, "x-ratelimit-reset")
        with self._lock:
            self.remaining = remaining
            if remaining < RATE_LIMIT_LOW_WATER:
                self.throttled = True
                self.reset_at = float(reset) if reset is not None else now + DEFAULT_RETRY_AFTER
                logger.warning(
                    "GitHub rate limit low (%d remaining), throttling until %s",
                    remaining, self.reset_at,
                )

    def is_throttled(self, now: float) -> bool:
        """True while inside a throttle window. Clears the flag once reset passes."""
        with self._lock:
            if not self.throttled:
                return False
            if self.reset_at is not None and now >= self.reset_at:
                self.throttled = False
                self.reset_at = None
                return False
            return True

    def retry_after(self, now: float) -> int:
        if self.reset_at is None:
            return DEFAULT_RETRY_AFTER
        return max(1, int(self.reset_at - now + 0.999))


def _int_header(headers: httpx.Headers, name: str) -> int | None:
    value = headers.get(name)
    try:
        return int(value) if value is not None else None
    except (TypeError, ValueError):
        return None


def _error_message(resp: httpx.Response) -> str:
    try:
        data = resp.json()
    except ValueError:
        data = None
    if isinstance(data, dict) and data.get("message"):
        return str(data["message"])
    return f"GitHub API error: {resp.status_code}"


class GitHubClient:
    """Client for the GitHub REST API."""

    def __init__(
        self,
        token: str | None = None,
        state: RateLimitState | None = None,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        base_url: str = GITHUB_API_BASE,
        transport: httpx.BaseTransport | None = None,
        min_interval: float = MIN_REQUEST_INTERVAL,
        max_attempts: int = MAX_ATTEMPTS,
    ):
        self.state = state if state is not None else RateLimitState()
        self.min_interval = min_interval
        self.max_attempts = max_attempts
        self._clock = clock
        self._sleep = sleep
        headers = {
            "Accept": "application/vnd.github.v3+json",
            "User-Agent": f"repolens/{__version__}",
        }
        if token:
            headers["Authorization"] = f"Bearer {token}"
        self._client = httpx.Client(
            base_url=base_url.rstrip("/"),
            headers=headers,
            timeout=REQUEST_TIMEOUT,
            transport=transport,
        )

    @property
    def authenticated(self) -> bool:
        return "Authorization" in self._client.headers

    def request(self, path: str, params: dict[str, Any] | None = None) -> Any:
        """GET a JSON resource, retrying rate limits and transport failures."""
        retrying = Retrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=self._backoff,
            retry=retry_if_exception_type((RateLimitError, httpx.TransportError)),
            sleep=self._sleep,
            before_sleep=self._log_retry,
            reraise=True,
        )
        for attempt in retrying:
            with attempt:
                return self._send(path, params)

    def exists(self, path: str) -> bool:
        """Probe a resource. Any failure counts as absent."""
        try:
            self.request(path)
            return True
        except (UpstreamError, httpx.HTTPError):
            return False

    def close(self) -> None:
        self._client.close()

    def __enter__(self) -> "GitHubClient":
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    def _send(self, path: str, params: dict[str, Any] | None) -> Any:
        wait = self.state.reserve_slot(self._clock(), self.min_interval)
        if wait > 0:
            self._sleep(wait)

        resp = self._client.get(path, params=params)
        self.state.record(resp.headers, self._clock())

        if resp.status_code in (403, 429):
            server_wait = _int_header(resp.headers, "retry-after")
            if server_wait is not None:
                retry_after = server_wait
            elif self.state.reset_at is not None:
                retry_after = self.state.retry_after(self._clock())
            else:
                retry_after = None
            raise RateLimitError(
                _error_message(resp),
                status=resp.status_code,
                retry_after=retry_after,
                server_wait=server_wait,
            )
        if not resp.is_success:
            raise UpstreamError(resp.status_code, _error_message(resp))
        return resp.json()

    @staticmethod
    def _backoff(retry_state: RetryCallState) -> float:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        if isinstance(exc, RateLimitError) and exc.server_wait is not None:
            return float(exc.server_wait)
        return float(2 ** retry_state.attempt_number)

    @staticmethod
    def _log_retry(retry_state: RetryCallState) -> None:
        exc = retry_state.outcome.exception() if retry_state.outcome else None
        logger.info(
            "GitHub request failed (attempt %d): %s, retrying",
            retry_state.attempt_number, exc,
        )
