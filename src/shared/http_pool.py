"""
Shared HTTP Client Pool

One httpx.AsyncClient per backend type so connections to the fast backend,
the powerful backend and the OAuth endpoint are reused across messages.

Usage:
    from shared.http_pool import get_http_pool, close_http_pool

    pool = get_http_pool()
    client = await pool.get_client("fast")
    response = await client.post(url, json=body, timeout=5.0)

    # Cleanup on shutdown
    await close_http_pool()

Per-request timeouts passed to client.post() override the pool default, which
is how the classifier gets its short bound while sharing the "fast" client.
"""
from typing import Any, Dict, Optional

import httpx
import structlog

logger = structlog.get_logger("shared.http_pool")


class ServiceConfig:
    """Configuration for a backend type's HTTP client."""

    def __init__(
        self,
        timeout: float = 30.0,
        max_connections: int = 20,
        max_keepalive_connections: int = 10,
        keepalive_expiry: float = 30.0
    ):
        self.timeout = timeout
        self.limits = httpx.Limits(
            max_connections=max_connections,
            max_keepalive_connections=max_keepalive_connections,
            keepalive_expiry=keepalive_expiry
        )


DEFAULT_CONFIGS: Dict[str, ServiceConfig] = {
    # Fast backend - classification, parsing, chat
    "fast": ServiceConfig(
        timeout=30.0,
        max_connections=20,
        max_keepalive_connections=10
    ),

    # Powerful backend - long generations, limited concurrency
    "powerful": ServiceConfig(
        timeout=120.0,
        max_connections=10,
        max_keepalive_connections=5
    ),

    # OAuth token endpoint
    "auth": ServiceConfig(
        timeout=15.0,
        max_connections=5,
        max_keepalive_connections=2
    ),

    "default": ServiceConfig()
}


class HTTPClientPool:
    """Lazily created httpx.AsyncClient instances keyed by backend type."""

    def __init__(self, configs: Optional[Dict[str, ServiceConfig]] = None):
        self._configs = {**DEFAULT_CONFIGS}
        if configs:
            self._configs.update(configs)

        self._clients: Dict[str, httpx.AsyncClient] = {}

    async def get_client(self, service_type: str = "default") -> httpx.AsyncClient:
        """
        Get or create an HTTP client for the given backend type.

        Args:
            service_type: fast, powerful, auth or default

        Returns:
            httpx.AsyncClient configured for the backend type
        """
        if service_type not in self._clients:
            config = self._configs.get(service_type, self._configs["default"])

            self._clients[service_type] = httpx.AsyncClient(
                timeout=httpx.Timeout(config.timeout),
                limits=config.limits,
                follow_redirects=True
            )

            logger.info(
                "http_client_created",
                service_type=service_type,
                timeout=config.timeout,
                max_connections=config.limits.max_connections
            )

        return self._clients[service_type]

    async def close(self) -> None:
        """Close all HTTP clients and release connections."""
        for service_type, client in self._clients.items():
            try:
                await client.aclose()
            except Exception as e:
                logger.warning(
                    "http_client_close_failed",
                    service_type=service_type,
                    error=str(e)
                )

        self._clients.clear()
        logger.info("http_pool_closed")

    def get_stats(self) -> Dict[str, Any]:
        """Configured timeout and limits per open client."""
        stats = {}
        for service_type in self._clients:
            config = self._configs.get(service_type, self._configs["default"])
            stats[service_type] = {
                "timeout": config.timeout,
                "max_connections": config.limits.max_connections,
                "max_keepalive": config.limits.max_keepalive_connections
            }
        return stats


# Global pool instance
_pool: Optional[HTTPClientPool] = None


def get_http_pool() -> HTTPClientPool:
    """Get the global HTTP client pool."""
    global _pool
    if _pool is None:
        _pool = HTTPClientPool()
    return _pool


async def close_http_pool() -> None:
    """Close the global pool (call on shutdown)."""
    global _pool
    if _pool is not None:
        await _pool.close()
        _pool = None
