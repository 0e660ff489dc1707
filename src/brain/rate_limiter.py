"""
Rate limiting, retry and key routing for the fast backend.

Token bucket accounting per API-key name, a KeyRouter that hands out a primary
and a secondary key per purpose, and call_with_retry() which retries throttled
or failing requests with exponential (or server-directed) backoff and switches
to the secondary key once the retry budget is spent on a 429.

Usage:
    from brain.rate_limiter import KeyRouter, call_with_retry

    router = KeyRouter({"textChat": (primary_key, fallback_key)})
    response = await call_with_retry(
        lambda: post(router.get_key("textChat")),
        max_retries=3,
        api_key_name="gemini-text-chat",
        on_rate_limit=lambda: post(router.get_fallback("textChat")),
    )
"""
import asyncio
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional, Tuple

import httpx
import structlog

from shared.errors import RateLimitExceeded

logger = structlog.get_logger("brain.rate_limiter")

RETRYABLE_STATUS = {429, 500, 502, 503, 504}


@dataclass
class RateLimitConfig:
    """Configuration for a rate limiter."""
    requests_per_minute: int = 60
    burst_multiplier: float = 2.0


class TokenBucketRateLimiter:
    """
    Token bucket rate limiter for a single API key.

    Allows bursts up to capacity, then limits to refill_rate tokens per second.
    Thread-safe using asyncio locks.
    """

    def __init__(
        self,
        name: str,
        requests_per_minute: int = 60,
        burst_multiplier: float = 2.0,
        clock: Callable[[], float] = time.monotonic
    ):
        self.name = name
        self.requests_per_minute = requests_per_minute
        self.burst_multiplier = burst_multiplier
        self._clock = clock

        self.refill_rate = requests_per_minute / 60.0  # tokens per second
        self.capacity = requests_per_minute * burst_multiplier

        self.tokens = self.capacity
        self.last_refill = clock()
        self.total_acquired = 0
        self.total_rejected = 0
        self._lock = asyncio.Lock()

    def _refill(self) -> None:
        now = self._clock()
        self.tokens = min(self.capacity, self.tokens + (now - self.last_refill) * self.refill_rate)
        self.last_refill = now

    async def acquire(self, tokens: float = 1.0) -> bool:
        """
        Attempt to acquire tokens.

        Returns:
            True if tokens acquired, False if rate limited
        """
        async with self._lock:
            self._refill()

            if self.tokens >= tokens:
                self.tokens -= tokens
                self.total_acquired += 1
                return True

            self.total_rejected += 1
            logger.warning(
                "rate_limit_exceeded",
                key_name=self.name,
                tokens_available=round(self.tokens, 2),
                tokens_requested=tokens
            )
            return False

    async def wait_and_acquire(self, tokens: float = 1.0, timeout: float = 5.0) -> bool:
        """Wait up to `timeout` seconds for tokens to become available."""
        start_time = self._clock()

        while True:
            if await self.acquire(tokens):
                return True

            elapsed = self._clock() - start_time
            if elapsed >= timeout:
                return False

            async with self._lock:
                needed = tokens - self.tokens
                wait_time = min(needed / self.refill_rate, timeout - elapsed)

            await asyncio.sleep(min(wait_time, 0.1))  # Poll at most every 100ms

    def get_status(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "requests_per_minute": self.requests_per_minute,
            "capacity": self.capacity,
            "tokens_available": round(self.tokens, 2),
            "total_acquired": self.total_acquired,
            "total_rejected": self.total_rejected
        }


class RateLimiterRegistry:
    """One TokenBucketRateLimiter per API-key name."""

    def __init__(self, configs: Optional[Dict[str, RateLimitConfig]] = None):
        self._configs = {"default": RateLimitConfig()}
        if configs:
            self._configs.update(configs)
        self._limiters: Dict[str, TokenBucketRateLimiter] = {}

    def get_limiter(self, name: str) -> TokenBucketRateLimiter:
        if name not in self._limiters:
            config = self._configs.get(name, self._configs["default"])
            self._limiters[name] = TokenBucketRateLimiter(
                name=name,
                requests_per_minute=config.requests_per_minute,
                burst_multiplier=config.burst_multiplier
            )
        return self._limiters[name]


class KeyRouter:
    """
    Maps a purpose ("textChat", "classifier", ...) to a primary and a secondary key.

    Purposes without their own entry use the "default" pair.
    """

    def __init__(self, keys: Optional[Dict[str, Tuple[str, Optional[str]]]] = None):
        self._keys: Dict[str, Tuple[str, Optional[str]]] = dict(keys or {})

    @classmethod
    def from_config(cls, primary: str, fallback: Optional[str] = None) -> "KeyRouter":
        return cls({"default": (primary, fallback or None)})

    def _pair(self, purpose: str) -> Tuple[str, Optional[str]]:
        return self._keys.get(purpose) or self._keys.get("default") or ("", None)

    def get_key(self, purpose: str) -> str:
        return self._pair(purpose)[0]

    def get_fallback(self, purpose: str) -> Optional[str]:
        primary, fallback = self._pair(purpose)
        if fallback and fallback != primary:
            return fallback
        return None


def _retry_after_seconds(response: Optional[httpx.Response]) -> Optional[float]:
    if response is None:
        return None
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        return None


async def call_with_retry(
    make_request: Callable[[], Awaitable[httpx.Response]],
    max_retries: int = 3,
    api_key_name: str = "default",
    on_rate_limit: Optional[Callable[[], Awaitable[httpx.Response]]] = None,
    base_delay: float = 1.0,
    max_delay: float = 30.0,
    limiter: Optional[TokenBucketRateLimiter] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep
) -> httpx.Response:
    """
    Execute an HTTP request with bounded retries.

    Retries 429/5xx responses and transport errors up to `max_retries` times,
    sleeping `Retry-After` seconds when the server says so, else
    base_delay * 2**attempt (capped at max_delay). Timeouts are not retried.
    If the final failure was a 429, `on_rate_limit` (the secondary-key path)
    is invoked once.

    Returns:
        The successful httpx.Response (raise_for_status() already passed)

    Raises:
        RateLimitExceeded: still throttled and no secondary path available
        httpx.HTTPStatusError / httpx.TransportError: non-retryable or exhausted
    """
    if limiter is not None:
        await limiter.wait_and_acquire()

    last_error: Optional[Exception] = None
    throttled = False

    for attempt in range(max_retries + 1):
        response: Optional[httpx.Response] = None
        try:
            response = await make_request()
            response.raise_for_status()
            return response
        except httpx.TimeoutException:
            raise
        except httpx.HTTPStatusError as e:
            response = e.response
            if response.status_code not in RETRYABLE_STATUS:
                raise
            throttled = response.status_code == 429
            last_error = e
        except httpx.TransportError as e:
            throttled = False
            last_error = e

        if attempt >= max_retries:
            break

        delay = _retry_after_seconds(response)
        if delay is None:
            delay = base_delay * (2 ** attempt)
        delay = min(delay, max_delay)
        logger.warning(
            "fast_backend_retry",
            key_name=api_key_name,
            attempt=attempt + 1,
            max_retries=max_retries,
            delay=delay,
            throttled=throttled,
            error=str(last_error)
        )
        await sleep(delay)

    if throttled:
        if on_rate_limit is not None:
            logger.info("switching_to_fallback_key", key_name=api_key_name)
            response = await on_rate_limit()
            response.raise_for_status()
            return response
        raise RateLimitExceeded("fast", f"All keys rate limited for {api_key_name}")

    assert last_error is not None
    raise last_error


# Global registry instance
_registry: Optional[RateLimiterRegistry] = None


def get_rate_limiter_registry() -> RateLimiterRegistry:
    """Get the global rate limiter registry."""
    global _registry
    if _registry is None:
        _registry = RateLimiterRegistry()
    return _registry
