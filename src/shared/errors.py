"""
Error taxonomy for the dual-brain router.

Usage:
    from shared.errors import (
        ConfigurationError,
        BackendError,
        BackendTimeoutError,
        RateLimitExceeded,
    )

    if not refresh_token:
        raise ConfigurationError("No OpenAI refresh token configured")

    except httpx.TimeoutException as e:
        raise BackendTimeoutError("powerful", timeout=60.0) from e

Only configuration and backend failures are exceptions. Parse failures come back
as None from shared.structured_parse, and a missing or not-ready skill makes an
intent matcher skip; neither raises.
"""
from enum import Enum
from typing import Optional


class ErrorCode(str, Enum):
    """Error codes used across the router."""

    CONFIG_ERROR = "CONFIG_ERROR"
    BACKEND_ERROR = "BACKEND_ERROR"
    TIMEOUT = "TIMEOUT"
    AUTH_EXPIRED = "AUTH_EXPIRED"
    TOKEN_REFRESH_FAILED = "TOKEN_REFRESH_FAILED"
    RATE_LIMITED = "RATE_LIMITED"


class BrainError(Exception):
    """
    Base exception class for the router.

    All custom exceptions should inherit from this class.
    """

    def __init__(
        self,
        code: ErrorCode,
        message: str,
        detail: Optional[str] = None
    ):
        self.code = code
        self.message = message
        self.detail = detail
        super().__init__(message)


class ConfigurationError(BrainError):
    """Missing or invalid credentials. Fatal for the request, never retried."""
    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(ErrorCode.CONFIG_ERROR, message, detail)


class BackendError(BrainError):
    """A backend call failed (5xx, transport error, malformed body)."""
    def __init__(
        self,
        backend: str,
        message: Optional[str] = None,
        status_code: Optional[int] = None,
        detail: Optional[str] = None,
        code: ErrorCode = ErrorCode.BACKEND_ERROR
    ):
        if message is None:
            message = f"{backend} backend request failed"
            if status_code:
                message += f" (HTTP {status_code})"
        super().__init__(code, message, detail)
        self.backend = backend
        self.status_code = status_code


class BackendTimeoutError(BackendError):
    """The backend did not answer within its timeout."""
    def __init__(self, backend: str, timeout: Optional[float] = None):
        message = f"{backend} backend timed out"
        if timeout is not None:
            message += f" after {timeout:g}s"
        super().__init__(backend, message, code=ErrorCode.TIMEOUT)
        self.timeout = timeout


class AuthExpiredError(BackendError):
    """401 from the powerful backend after the reactive refresh-and-retry."""
    def __init__(self, backend: str, detail: Optional[str] = None):
        super().__init__(
            backend,
            f"{backend} backend rejected the access token",
            status_code=401,
            detail=detail,
            code=ErrorCode.AUTH_EXPIRED
        )


class TokenRefreshError(BackendError):
    """The OAuth token endpoint rejected the refresh or could not be reached."""
    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(
            "oauth",
            f"Token refresh failed: {message}",
            status_code=status_code,
            code=ErrorCode.TOKEN_REFRESH_FAILED
        )


class RateLimitExceeded(BackendError):
    """Throttled after the retry budget and the secondary key were exhausted."""
    def __init__(self, backend: str, message: Optional[str] = None):
        super().__init__(
            backend,
            message or f"Rate limit exceeded for {backend}",
            status_code=429,
            code=ErrorCode.RATE_LIMITED
        )
