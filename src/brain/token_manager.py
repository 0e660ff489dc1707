"""
OAuth token lifecycle for the powerful backend.

States: NoToken -> Valid -> Expired -> Refreshing -> Valid

- get_valid_token() refreshes first when there is no access token or the
  stored expiry has passed.
- force_refresh() is the reactive path used after a 401.
- Having neither an access token nor a refresh token is a configuration
  error and is raised immediately, never retried.

Concurrent messages may each trigger a refresh. That is tolerated: a refresh
only replaces the stored pair, and the last successful one wins.
"""

import time
from typing import Callable, Optional

import httpx
import structlog

from shared.config import BrainConfig, get_config
from shared.errors import ConfigurationError, TokenRefreshError
from shared.http_pool import get_http_pool

from .state import TokenState

logger = structlog.get_logger("brain.token_manager")

# Expire tokens this long before the server says so
EXPIRY_SAFETY_MARGIN_MS = 60_000
DEFAULT_EXPIRES_IN_S = 3600


def _epoch_ms() -> float:
    return time.time() * 1000


class TokenManager:
    """
    Owned OAuth state with accessor methods.

    Args:
        config: Supplies the initial token pair, client id and token URL
        client: HTTP client for the token endpoint (pooled "auth" client if None)
        clock: Returns current epoch time in milliseconds
        on_rotate: Called with the new refresh token when the server rotates it
    """

    def __init__(
        self,
        config: Optional[BrainConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        clock: Callable[[], float] = _epoch_ms,
        on_rotate: Optional[Callable[[str], None]] = None,
        initial_expires_at_ms: float = 0.0
    ):
        self.config = config or get_config()
        self._client = client
        self._clock = clock
        self._on_rotate = on_rotate
        self._state = TokenState(
            access_token=self.config.openai_access_token or None,
            refresh_token=self.config.openai_refresh_token or None,
            expires_at_ms=initial_expires_at_ms,  # 0 forces a refresh on first use
        )
        self.refresh_count = 0

    @property
    def state(self) -> TokenState:
        return self._state

    @property
    def is_configured(self) -> bool:
        return bool(self._state.access_token or self._state.refresh_token)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = await get_http_pool().get_client("auth")
        return self._client

    async def get_valid_token(self) -> str:
        """
        Return an access token whose expiry is in the future, refreshing first if needed.

        Raises:
            ConfigurationError: no credentials at all, or refresh needed without a refresh token
            TokenRefreshError: the token endpoint failed
        """
        if not self.is_configured:
            raise ConfigurationError(
                "No OpenAI credentials configured. Set OPENAI_CODEX_TOKEN and OPENAI_CODEX_REFRESH in .env"
            )
        if not self._state.is_valid(self._clock()):
            await self.force_refresh()
        return self._state.access_token

    async def force_refresh(self) -> str:
        """
        Exchange the refresh token for a new access token.

        Stores the new access token, rotates the refresh token when the
        response carries one, and sets expiry to now + expires_in - 60s.
        """
        refresh_token = self._state.refresh_token
        if not refresh_token:
            raise ConfigurationError("No OpenAI refresh token configured")

        logger.info("token_refresh_started")
        client = await self._get_client()
        try:
            response = await client.post(
                self.config.openai_token_url,
                json={
                    "grant_type": "refresh_token",
                    "refresh_token": refresh_token,
                    "client_id": self.config.openai_client_id,
                },
                headers={"Content-Type": "application/json"},
                timeout=self.config.token_refresh_timeout,
            )
            response.raise_for_status()
            data = response.json()
        except httpx.HTTPStatusError as e:
            detail = _error_message(e.response)
            logger.error("token_refresh_failed", status=e.response.status_code, error=detail)
            raise TokenRefreshError(detail, status_code=e.response.status_code) from e
        except (httpx.HTTPError, ValueError) as e:
            logger.error("token_refresh_failed", error=str(e))
            raise TokenRefreshError(str(e) or type(e).__name__) from e

        access_token = data.get("access_token") if isinstance(data, dict) else None
        if not access_token:
            raise TokenRefreshError("response did not include an access_token")

        expires_in = data.get("expires_in") or DEFAULT_EXPIRES_IN_S
        self._state.access_token = access_token
        self._state.expires_at_ms = self._clock() + float(expires_in) * 1000 - EXPIRY_SAFETY_MARGIN_MS

        new_refresh = data.get("refresh_token")
        if new_refresh and new_refresh != refresh_token:
            self._state.refresh_token = new_refresh
            logger.info("refresh_token_rotated")
            if self._on_rotate is not None:
                self._on_rotate(new_refresh)

        self.refresh_count += 1
        logger.info("token_refreshed", expires_in=expires_in)
        return access_token


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text[:200] or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str):
            return body.get("error_description") or error
    return f"HTTP {response.status_code}"
