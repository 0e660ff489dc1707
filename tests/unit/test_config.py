"""
Unit tests for environment-driven configuration.
"""
import pytest

from shared.config import BrainConfig, get_config, load_env, reset_config


ENV_VARS = [
    "GEMINI_API_KEY", "GEMINI_FALLBACK_KEY", "GEMINI_MODEL", "GEMINI_BASE_URL",
    "OPENAI_CODEX_TOKEN", "OPENAI_CODEX_REFRESH", "OPENAI_CODEX_MODEL",
    "CLAUDE_TIMEOUT", "MAX_PROMPT_CHARS", "DEFAULT_WEATHER_LOCATION",
    "BOT_NAME", "OWNER_NAME", "BRAIN_TIMEZONE", "FAST_MAX_RETRIES",
]


@pytest.fixture
def clean_env(monkeypatch):
    for name in ENV_VARS:
        monkeypatch.delenv(name, raising=False)
    reset_config()
    yield monkeypatch
    reset_config()


# =============================================================================
# Defaults and Overrides
# =============================================================================

class TestBrainConfig:
    """Tests for BrainConfig field resolution."""

    def test_defaults(self, clean_env):
        config = BrainConfig()

        assert config.gemini_api_key == ""
        assert config.gemini_model == "gemini-3.0-flash-preview"
        assert config.openai_model == "gpt-5.3-codex"
        assert config.powerful_timeout_ms == 60000
        assert config.powerful_timeout == 60.0
        assert config.max_prompt_chars == 100000
        assert config.classifier_timeout == 5.0
        assert config.parse_timeout == 15.0
        assert config.fallback_timeout == 30.0
        assert config.default_weather_location == "New York"
        assert config.fast_max_retries == 3

    def test_environment_overrides(self, clean_env):
        clean_env.setenv("GEMINI_API_KEY", "k1")
        clean_env.setenv("CLAUDE_TIMEOUT", "90000")
        clean_env.setenv("BOT_NAME", "Robin")

        config = BrainConfig()

        assert config.gemini_api_key == "k1"
        assert config.powerful_timeout == 90.0
        assert config.bot_name == "Robin"

    def test_gemini_url(self, clean_env):
        config = BrainConfig(gemini_base_url="https://fast.test/models", gemini_model="flash")
        assert config.gemini_url("abc") == "https://fast.test/models/flash:generateContent?key=abc"

    def test_has_powerful_credentials(self, clean_env):
        assert BrainConfig().has_powerful_credentials is False
        assert BrainConfig(openai_refresh_token="r").has_powerful_credentials is True
        assert BrainConfig(openai_access_token="a").has_powerful_credentials is True


# =============================================================================
# Validation
# =============================================================================

class TestValidation:
    """Tests for startup validation."""

    def test_missing_fast_key_is_an_error(self, clean_env):
        errors = BrainConfig().validate()
        assert len(errors) == 1
        assert "GEMINI_API_KEY" in errors[0]

    def test_missing_powerful_credentials_is_not_an_error(self, clean_env):
        assert BrainConfig(gemini_api_key="k").validate() == []

    def test_validate_or_exit_exits(self, clean_env):
        with pytest.raises(SystemExit):
            BrainConfig().validate_or_exit("test")


# =============================================================================
# Singleton and .env loading
# =============================================================================

class TestLoading:
    """Tests for get_config() and load_env()."""

    def test_singleton(self, clean_env):
        assert get_config() is get_config()

    def test_reset_rereads_environment(self, clean_env):
        first = get_config()
        clean_env.setenv("OWNER_NAME", "Sam")
        reset_config()
        second = get_config()
        assert second is not first
        assert second.owner_name == "Sam"

    def test_load_env_does_not_override_existing(self, clean_env, tmp_path):
        env_file = tmp_path / ".env"
        env_file.write_text("GEMINI_API_KEY=from-file\nOWNER_NAME=FileOwner\n")
        # Recorded so teardown removes what load_env() adds
        clean_env.setenv("GEMINI_API_KEY", "placeholder")
        clean_env.delenv("GEMINI_API_KEY")
        clean_env.setenv("OWNER_NAME", "ShellOwner")

        assert load_env(env_file) is True

        config = BrainConfig()
        assert config.gemini_api_key == "from-file"
        assert config.owner_name == "ShellOwner"
