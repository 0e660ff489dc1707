"""
Centralized configuration for the dual-brain router.

Every field reads its environment variable at construction time, so a fresh
BrainConfig() picks up changes made by tests or by load_env().

Configuration Precedence (highest to lowest):
1. Explicit keyword arguments (tests, embedding hosts)
2. Environment Variables
3. Config Files (.env, loaded by load_env())
4. Code Defaults (only for non-sensitive, optional values)
"""
import os
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

import structlog
from dotenv import load_dotenv

logger = structlog.get_logger("shared.config")


def load_env(path: Optional[Union[str, Path]] = None) -> bool:
    """Load a .env file into the process environment (existing vars win)."""
    loaded = load_dotenv(dotenv_path=path, override=False)
    if loaded:
        logger.info("env_file_loaded", path=str(path) if path else ".env")
    return loaded


def _env_int(name: str, default: str) -> int:
    return int(os.environ.get(name, default))


def _env_float(name: str, default: str) -> float:
    return float(os.environ.get(name, default))


@dataclass
class BrainConfig:
    """
    Configuration container with validation.

    The fast backend key is the only hard requirement; the powerful backend is
    optional because the fallback chain covers its absence.
    """

    # =========================================================================
    # Fast backend (Gemini generateContent)
    # =========================================================================

    gemini_api_key: str = field(default_factory=lambda: os.environ.get("GEMINI_API_KEY", ""))
    gemini_fallback_key: str = field(default_factory=lambda: os.environ.get("GEMINI_FALLBACK_KEY", ""))
    gemini_model: str = field(default_factory=lambda: os.environ.get("GEMINI_MODEL", "gemini-3.0-flash-preview"))
    gemini_base_url: str = field(default_factory=lambda: os.environ.get(
        "GEMINI_BASE_URL", "https://generativelanguage.googleapis.com/v1beta/models"
    ))
    fast_max_retries: int = field(default_factory=lambda: _env_int("FAST_MAX_RETRIES", "3"))

    # =========================================================================
    # Powerful backend (OpenAI-compatible chat completions, OAuth bearer)
    # =========================================================================

    openai_access_token: str = field(default_factory=lambda: os.environ.get("OPENAI_CODEX_TOKEN", ""))
    openai_refresh_token: str = field(default_factory=lambda: os.environ.get("OPENAI_CODEX_REFRESH", ""))
    openai_model: str = field(default_factory=lambda: os.environ.get("OPENAI_CODEX_MODEL", "gpt-5.3-codex"))
    openai_client_id: str = field(default_factory=lambda: os.environ.get(
        "OPENAI_CODEX_CLIENT_ID", "app_EMoamEEZ73f0CkXaXp7hrann"
    ))
    openai_chat_url: str = field(default_factory=lambda: os.environ.get(
        "OPENAI_CHAT_URL", "https://api.openai.com/v1/chat/completions"
    ))
    openai_token_url: str = field(default_factory=lambda: os.environ.get(
        "OPENAI_TOKEN_URL", "https://auth.openai.com/oauth/token"
    ))

    # CLAUDE_TIMEOUT is in milliseconds for compatibility with existing .env files
    powerful_timeout_ms: int = field(default_factory=lambda: _env_int("CLAUDE_TIMEOUT", "60000"))
    max_prompt_chars: int = field(default_factory=lambda: _env_int("MAX_PROMPT_CHARS", "100000"))

    # =========================================================================
    # Per-call timeouts (seconds)
    # =========================================================================

    classifier_timeout: float = field(default_factory=lambda: _env_float("CLASSIFIER_TIMEOUT", "5"))
    parse_timeout: float = field(default_factory=lambda: _env_float("PARSE_TIMEOUT", "15"))
    analyze_timeout: float = field(default_factory=lambda: _env_float("ANALYZE_TIMEOUT", "15"))
    fast_timeout: float = field(default_factory=lambda: _env_float("FAST_TIMEOUT", "30"))
    fallback_timeout: float = field(default_factory=lambda: _env_float("FALLBACK_TIMEOUT", "30"))
    token_refresh_timeout: float = field(default_factory=lambda: _env_float("TOKEN_REFRESH_TIMEOUT", "15"))

    # =========================================================================
    # Persona and defaults
    # =========================================================================

    bot_name: str = field(default_factory=lambda: os.environ.get("BOT_NAME", "Mary Jane"))
    owner_name: str = field(default_factory=lambda: os.environ.get("OWNER_NAME", "Omar"))
    timezone: str = field(default_factory=lambda: os.environ.get("BRAIN_TIMEZONE", "America/New_York"))
    default_weather_location: str = field(default_factory=lambda: os.environ.get(
        "DEFAULT_WEATHER_LOCATION", "New York"
    ))

    # =========================================================================
    # Computed Properties
    # =========================================================================

    @property
    def powerful_timeout(self) -> float:
        """Powerful backend timeout in seconds."""
        return self.powerful_timeout_ms / 1000.0

    @property
    def has_powerful_credentials(self) -> bool:
        return bool(self.openai_access_token or self.openai_refresh_token)

    def gemini_url(self, api_key: str) -> str:
        """generateContent URL for the configured model and key."""
        return f"{self.gemini_base_url}/{self.gemini_model}:generateContent?key={api_key}"

    # =========================================================================
    # Validation
    # =========================================================================

    def validate(self) -> List[str]:
        """
        Validate configuration and return list of errors.
        Call at startup to fail fast with clear errors.
        """
        errors = []

        if not self.gemini_api_key:
            errors.append(
                "GEMINI_API_KEY is required but not set.\n"
                "  Set via environment variable: export GEMINI_API_KEY='your-key'\n"
                "  Or in .env file: GEMINI_API_KEY=your-key"
            )

        if self.max_prompt_chars <= 0:
            errors.append(f"MAX_PROMPT_CHARS must be positive, got {self.max_prompt_chars}")

        if not self.has_powerful_credentials:
            # Not an error - every powerful route falls back to the fast backend
            logger.warning(
                "powerful_backend_unconfigured",
                hint="Set OPENAI_CODEX_TOKEN and OPENAI_CODEX_REFRESH to enable it",
            )

        return errors

    def validate_or_exit(self, service_name: str = "dual-brain"):
        """Validate configuration and exit with clear error if invalid."""
        errors = self.validate()
        if errors:
            print(f"\n{'='*60}", file=sys.stderr)
            print(f"CONFIGURATION ERROR - {service_name} cannot start", file=sys.stderr)
            print(f"{'='*60}\n", file=sys.stderr)
            for i, error in enumerate(errors, 1):
                print(f"{i}. {error}\n", file=sys.stderr)
            print(f"{'='*60}", file=sys.stderr)
            print("Fix the above issues and restart the service.", file=sys.stderr)
            print(f"{'='*60}\n", file=sys.stderr)
            sys.exit(1)


# Singleton instance
_config: Optional[BrainConfig] = None


def get_config() -> BrainConfig:
    """Get the singleton config instance."""
    global _config
    if _config is None:
        _config = BrainConfig()
    return _config


def reset_config() -> None:
    """Drop the singleton so the next get_config() re-reads the environment (useful for testing)."""
    global _config
    _config = None
