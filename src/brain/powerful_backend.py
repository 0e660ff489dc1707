"""
Powerful backend client (OpenAI-compatible chat completions, OAuth bearer).

Request:  {model, messages[system, user], max_tokens, temperature}
Response: {choices[0].message.content}

Every call holds a token from TokenManager.get_valid_token(). A 401 triggers
exactly one force_refresh() and one retry; a second failure propagates so the
fallback chain can take over.
"""

from typing import Any, Dict, Optional

import httpx
import structlog

from shared.config import BrainConfig, get_config
from shared.errors import AuthExpiredError, BackendError, BackendTimeoutError
from shared.http_pool import get_http_pool

from .token_manager import TokenManager

logger = structlog.get_logger("brain.powerful_backend")

TRUNCATION_MARKER = "\n\n[Prompt truncated for length]"
MAX_TOKENS = 4096
TEMPERATURE = 0.4


def truncate_prompt(prompt: str, max_chars: int) -> str:
    """Cut prompt to max_chars and append a visible marker when it was longer."""
    if len(prompt) <= max_chars:
        return prompt
    return prompt[:max_chars] + TRUNCATION_MARKER


def extract_choice_text(data: Any) -> Optional[str]:
    """choices[0].message.content, or None when any step is missing."""
    try:
        text = data["choices"][0]["message"]["content"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) else None


class PowerfulBackend:
    """
    Usage:
        backend = PowerfulBackend(tokens=TokenManager())
        text = await backend.complete(prompt, system_prompt=persona)
    """

    name = "powerful"

    def __init__(
        self,
        tokens: Optional[TokenManager] = None,
        config: Optional[BrainConfig] = None,
        client: Optional[httpx.AsyncClient] = None
    ):
        self.config = config or get_config()
        self.tokens = tokens or TokenManager(self.config)
        self._client = client

    @property
    def timeout(self) -> float:
        return self.config.powerful_timeout

    def is_configured(self) -> bool:
        return self.tokens.is_configured

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = await get_http_pool().get_client("powerful")
        return self._client

    async def _post(self, token: str, body: Dict[str, Any]) -> httpx.Response:
        client = await self._get_client()
        try:
            return await client.post(
                self.config.openai_chat_url,
                json=body,
                headers={"Authorization": f"Bearer {token}", "Content-Type": "application/json"},
                timeout=self.timeout,
            )
        except httpx.TimeoutException as e:
            logger.error("powerful_backend_timeout", timeout=self.timeout)
            raise BackendTimeoutError(self.name, self.timeout) from e
        except httpx.TransportError as e:
            raise BackendError(self.name, f"powerful backend request failed: {e}") from e

    async def complete(self, prompt: str, system_prompt: Optional[str] = None) -> Optional[str]:
        """
        Run one completion.

        Returns:
            Response text, or None when the backend answered with no content

        Raises:
            ConfigurationError: no credentials (not retried)
            TokenRefreshError: refresh failed
            BackendTimeoutError: the call exceeded the configured timeout
            AuthExpiredError: 401 again after the reactive refresh
            BackendError: any other HTTP failure
        """
        safe_prompt = truncate_prompt(prompt, self.config.max_prompt_chars)
        messages = []
        if system_prompt:
            messages.append({"role": "system", "content": system_prompt})
        messages.append({"role": "user", "content": safe_prompt})
        body = {
            "model": self.config.openai_model,
            "messages": messages,
            "max_tokens": MAX_TOKENS,
            "temperature": TEMPERATURE,
        }

        token = await self.tokens.get_valid_token()
        logger.info("powerful_backend_call", model=self.config.openai_model, prompt_chars=len(safe_prompt))
        response = await self._post(token, body)

        if response.status_code == 401:
            logger.warning("powerful_backend_unauthorized", action="refresh_and_retry")
            token = await self.tokens.force_refresh()
            response = await self._post(token, body)
            if response.status_code == 401:
                raise AuthExpiredError(self.name, detail=response.text[:200])

        if response.is_error:
            logger.error("powerful_backend_http_error", status=response.status_code, body=response.text[:200])
            raise BackendError(self.name, status_code=response.status_code, detail=response.text[:200])

        try:
            text = extract_choice_text(response.json())
        except ValueError as e:
            raise BackendError(self.name, "powerful backend returned invalid JSON") from e

        if text:
            logger.info("powerful_backend_response", chars=len(text))
            return text
        logger.warning("powerful_backend_empty_response")
        return None
