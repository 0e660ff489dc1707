"""
Fast backend client (Gemini generateContent).

Low-latency, low-cost model used for classification, structured parsing,
casual chat and summarizing pre-fetched data.

Request:  {contents, systemInstruction?, generationConfig}
Response: {candidates[0].content.parts[0].text}
"""

from typing import Any, Dict, List, Optional

import httpx
import structlog

from shared.config import BrainConfig, get_config
from shared.errors import BackendError, BackendTimeoutError
from shared.http_pool import get_http_pool

from .rate_limiter import KeyRouter, RateLimiterRegistry, call_with_retry, get_rate_limiter_registry
from .state import ConversationContext, recent_turns

logger = structlog.get_logger("brain.fast_backend")

CHAT_HISTORY_TURNS = 10
CHAT_KEY_PURPOSE = "textChat"
CHAT_KEY_NAME = "gemini-text-chat"


def extract_candidate_text(data: Any) -> Optional[str]:
    """candidates[0].content.parts[0].text, or None when any step is missing."""
    try:
        text = data["candidates"][0]["content"]["parts"][0]["text"]
    except (KeyError, IndexError, TypeError):
        return None
    return text if isinstance(text, str) else None


def user_turn(text: str) -> Dict[str, Any]:
    return {"role": "user", "parts": [{"text": text}]}


class FastBackend:
    """
    Thin async client for the fast backend.

    Usage:
        fast = FastBackend()
        text = await fast.prompt("Summarize: ...", temperature=0.3, timeout=15.0)
    """

    name = "fast"

    def __init__(
        self,
        config: Optional[BrainConfig] = None,
        client: Optional[httpx.AsyncClient] = None,
        key_router: Optional[KeyRouter] = None,
        limiters: Optional[RateLimiterRegistry] = None,
        retry_base_delay: float = 1.0
    ):
        self.config = config or get_config()
        self._client = client
        self.key_router = key_router or KeyRouter.from_config(
            self.config.gemini_api_key, self.config.gemini_fallback_key
        )
        self._limiters = limiters
        self.retry_base_delay = retry_base_delay

    @property
    def api_key(self) -> str:
        return self.config.gemini_api_key

    def is_ready(self) -> bool:
        return bool(self.api_key)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = await get_http_pool().get_client("fast")
        return self._client

    def _body(
        self,
        contents: List[Dict[str, Any]],
        system_instruction: Optional[str],
        temperature: float,
        max_output_tokens: int
    ) -> Dict[str, Any]:
        body: Dict[str, Any] = {
            "contents": contents,
            "generationConfig": {"temperature": temperature, "maxOutputTokens": max_output_tokens},
        }
        if system_instruction:
            body["systemInstruction"] = {"parts": [{"text": system_instruction}]}
        return body

    async def _post(self, api_key: str, body: Dict[str, Any], timeout: float) -> httpx.Response:
        client = await self._get_client()
        return await client.post(
            self.config.gemini_url(api_key),
            json=body,
            headers={"Content-Type": "application/json"},
            timeout=timeout,
        )

    async def generate(
        self,
        contents: List[Dict[str, Any]],
        system_instruction: Optional[str] = None,
        temperature: float = 0.4,
        max_output_tokens: int = 4096,
        timeout: Optional[float] = None,
        api_key: Optional[str] = None
    ) -> Optional[str]:
        """
        Single generateContent call, no retries.

        Returns:
            Candidate text, or None when the response carries no text

        Raises:
            BackendTimeoutError: the call exceeded `timeout`
            BackendError: HTTP or transport failure
        """
        timeout = timeout if timeout is not None else self.config.fast_timeout
        body = self._body(contents, system_instruction, temperature, max_output_tokens)
        try:
            response = await self._post(api_key or self.api_key, body, timeout)
            response.raise_for_status()
            return extract_candidate_text(response.json())
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(self.name, timeout) from e
        except httpx.HTTPStatusError as e:
            raise BackendError(self.name, status_code=e.response.status_code) from e
        except (httpx.TransportError, ValueError) as e:
            raise BackendError(self.name, f"fast backend request failed: {e}") from e

    async def prompt(
        self,
        text: str,
        system_instruction: Optional[str] = None,
        temperature: float = 0.4,
        max_output_tokens: int = 4096,
        timeout: Optional[float] = None
    ) -> Optional[str]:
        """One user turn in, candidate text out."""
        return await self.generate(
            [user_turn(text)],
            system_instruction=system_instruction,
            temperature=temperature,
            max_output_tokens=max_output_tokens,
            timeout=timeout,
        )

    async def chat(
        self,
        message: str,
        context: Optional[ConversationContext],
        system_instruction: str,
        temperature: float = 0.8,
        max_output_tokens: int = 2048
    ) -> Optional[str]:
        """
        Multi-turn chat over the last 10 turns, with rate limiting and key fallback.

        Raises:
            BackendTimeoutError, BackendError, RateLimitExceeded
        """
        contents = [
            {"role": "user" if turn.role == "user" else "model", "parts": [{"text": turn.content}]}
            for turn in recent_turns(context, CHAT_HISTORY_TURNS)
        ]
        contents.append(user_turn(message))
        body = self._body(contents, system_instruction, temperature, max_output_tokens)
        timeout = self.config.fast_timeout

        primary = self.key_router.get_key(CHAT_KEY_PURPOSE) or self.api_key
        fallback = self.key_router.get_fallback(CHAT_KEY_PURPOSE)
        limiters = self._limiters or get_rate_limiter_registry()

        async def on_rate_limit() -> httpx.Response:
            return await self._post(fallback, body, timeout)

        try:
            response = await call_with_retry(
                lambda: self._post(primary, body, timeout),
                max_retries=self.config.fast_max_retries,
                api_key_name=CHAT_KEY_NAME,
                on_rate_limit=on_rate_limit if fallback else None,
                base_delay=self.retry_base_delay,
                limiter=limiters.get_limiter(CHAT_KEY_NAME),
            )
            return extract_candidate_text(response.json())
        except httpx.TimeoutException as e:
            raise BackendTimeoutError(self.name, timeout) from e
        except httpx.HTTPStatusError as e:
            raise BackendError(self.name, status_code=e.response.status_code) from e
        except (httpx.TransportError, ValueError) as e:
            raise BackendError(self.name, f"fast backend request failed: {e}") from e
