"""
Shared fixtures for the dual-brain test suite.

HTTP contracts are exercised through httpx.MockTransport; skills are small fakes
whose methods are AsyncMock/MagicMock instance attributes so calls can be
asserted and contract checks still see real attributes.
"""
import json
from typing import Any, Callable, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from shared.config import BrainConfig
from brain.rate_limiter import RateLimiterRegistry, RateLimitConfig


FAST_BASE_URL = "https://fast.test/v1beta/models"
POWERFUL_URL = "https://powerful.test/v1/chat/completions"
TOKEN_URL = "https://auth.test/oauth/token"


# =============================================================================
# HTTP helpers
# =============================================================================

def gemini_body(text: Optional[str]) -> Dict[str, Any]:
    """generateContent response carrying `text` (no candidates when None)."""
    if text is None:
        return {"candidates": []}
    return {"candidates": [{"content": {"parts": [{"text": text}]}}]}


def chat_body(text: Optional[str]) -> Dict[str, Any]:
    """Chat-completions response carrying `text`."""
    return {"choices": [{"message": {"content": text}}]}


def request_json(request: httpx.Request) -> Dict[str, Any]:
    return json.loads(request.content)


class Recorder:
    """
    MockTransport handler that replays queued responses and records requests.

    Each queued item is an httpx.Response, an exception to raise, or a
    callable(request) -> httpx.Response.
    """

    def __init__(self, *responses: Any):
        self.responses: List[Any] = list(responses)
        self.requests: List[httpx.Request] = []

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if not self.responses:
            raise AssertionError(f"Unexpected request to {request.url}")
        item = self.responses.pop(0)
        if isinstance(item, Exception):
            raise item
        if callable(item) and not isinstance(item, httpx.Response):
            return item(request)
        return item

    @property
    def bodies(self) -> List[Dict[str, Any]]:
        return [request_json(r) for r in self.requests]


def mock_client(handler: Callable[[httpx.Request], httpx.Response]) -> httpx.AsyncClient:
    return httpx.AsyncClient(transport=httpx.MockTransport(handler))


class FakeClock:
    """Epoch-milliseconds clock that only moves when told to."""

    def __init__(self, now_ms: float = 1_700_000_000_000.0):
        self.now_ms = now_ms

    def __call__(self) -> float:
        return self.now_ms

    def advance(self, seconds: float) -> None:
        self.now_ms += seconds * 1000


# =============================================================================
# Fake skills
# =============================================================================

class FakeWorkspace:
    def __init__(
        self,
        ready: bool = True,
        emails: Any = "From: dana@example.com - Q3 numbers",
        events: Any = "10:00 Standup",
        files: Any = "Budget.xlsx",
        search_results: Any = "Invoice-2024.pdf"
    ):
        self.is_ready = MagicMock(return_value=ready)
        self.get_recent_emails = AsyncMock(return_value=emails)
        self.get_today_events = AsyncMock(return_value=events)
        self.list_recent_files = AsyncMock(return_value=files)
        self.search_files = AsyncMock(return_value=search_results)
        self.send_email = AsyncMock(return_value="Message id 123")


class FakeWeather:
    def __init__(self):
        self.get = AsyncMock(return_value="Sunny, 72F")
        self.get_forecast = AsyncMock(return_value="Rain all week")


class FakeImage:
    def __init__(self):
        self.generate = AsyncMock(return_value={"success": True, "imageBase64": "aW1n"})
        self.ultra_generate = AsyncMock(return_value={"success": True, "imageBase64": "dWx0cmE="})
        self.upscale = AsyncMock(return_value={"success": True, "imageBase64": "YmlnZ2Vy"})


class FakeVideo:
    def __init__(self):
        self.generate_video = AsyncMock(return_value={"success": True, "message": "Video ready"})


class FakeSearch:
    def __init__(self, results: Any = "1. Result about pricing"):
        self.search = AsyncMock(return_value=results)


class FakeScheduler:
    def __init__(self, bot: Any = "telegram-bot"):
        self.bot = bot
        self.add_reminder = AsyncMock(return_value="Reminder set for 30m")


class FakeAgentLoop:
    def __init__(self, reply: Any = "agent did it"):
        self.run = AsyncMock(return_value=reply)


class FakePlanner:
    def __init__(self, reply: Any = "plan executed"):
        self.plan_and_execute = AsyncMock(return_value=reply)


class FakeMultiStep:
    def __init__(self, reply: Any = "multi-step done"):
        self.route = AsyncMock(return_value=reply)


class FakeToolBridge:
    def __init__(self, descriptions: Optional[str] = "- drive_upload: upload a file"):
        self.get_tool_descriptions = MagicMock(return_value=descriptions)


# =============================================================================
# Fixtures
# =============================================================================

@pytest.fixture
def config():
    """Deterministic configuration independent of the process environment."""
    return BrainConfig(
        gemini_api_key="fast-key",
        gemini_fallback_key="",
        gemini_model="flash-test",
        gemini_base_url=FAST_BASE_URL,
        fast_max_retries=2,
        openai_access_token="",
        openai_refresh_token="refresh-0",
        openai_model="powerful-test",
        openai_client_id="client-123",
        openai_chat_url=POWERFUL_URL,
        openai_token_url=TOKEN_URL,
        powerful_timeout_ms=60000,
        max_prompt_chars=100000,
        classifier_timeout=5.0,
        parse_timeout=15.0,
        analyze_timeout=15.0,
        fast_timeout=30.0,
        fallback_timeout=30.0,
        token_refresh_timeout=15.0,
        bot_name="Mary Jane",
        owner_name="Omar",
        timezone="UTC",
        default_weather_location="New York",
    )


@pytest.fixture
def limiters():
    """Generous limiter registry so tests never wait on the bucket."""
    return RateLimiterRegistry({"default": RateLimitConfig(requests_per_minute=6000)})


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def workspace():
    return FakeWorkspace()
