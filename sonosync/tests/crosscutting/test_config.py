import json
import os

import pytest

from sonosync.crosscutting.config import (
    DEFAULT_TOKENS_FILE, ConfigError, Settings, get_config_summary, load_tokens_file,
    resolve_credentials_from_env,
)
from sonosync.domain.entities import Platform


class TestSettings:
    """Tests for environment-driven settings."""

    def test_defaults(self):
        """Test default settings."""
        settings = Settings.from_env({})

        assert settings.window_size == 5
        assert settings.chunk_size is None
        assert settings.require_artist_overlap is False
        assert settings.log_level == "INFO"
        assert settings.report_dir == "reports"

    def test_tokens_file_defaults_to_config_dir(self):
        """Test that tokens.json is looked up in ~/.sonosync when not configured."""
        settings = Settings.from_env({})

        assert settings.tokens_file == DEFAULT_TOKENS_FILE
        assert DEFAULT_TOKENS_FILE.endswith(os.path.join(".sonosync", "tokens.json"))
        assert Settings().tokens_file == DEFAULT_TOKENS_FILE

    def test_from_env(self):
        """Test settings read from the environment."""
        settings = Settings.from_env({
            "SONOSYNC_WINDOW_SIZE": "8",
            "SONOSYNC_CHUNK_SIZE": "25",
            "SONOSYNC_REQUIRE_ARTIST_OVERLAP": "true",
            "SONOSYNC_LOG_LEVEL": "debug",
            "SONOSYNC_REPORT_DIR": "/tmp/reports",
            "SPOTIFY_MARKET": "DE",
            "SONOSYNC_HTTP_TIMEOUT": "30",
            "SONOSYNC_TOKENS_FILE": "tokens.json",
        })

        assert settings.window_size == 8
        assert settings.chunk_size == 25
        assert settings.require_artist_overlap is True
        assert settings.log_level == "DEBUG"
        assert settings.spotify_market == "DE"
        assert settings.http_timeout == 30
        assert settings.tokens_file == "tokens.json"

    @pytest.mark.parametrize("value", ["abc", "0", "-3"])
    def test_invalid_window_size(self, value):
        """Test that an invalid window size is rejected."""
        with pytest.raises(ConfigError, match="SONOSYNC_WINDOW_SIZE"):
            Settings.from_env({"SONOSYNC_WINDOW_SIZE": value})

    def test_invalid_log_level(self):
        """Test that an invalid log level is rejected."""
        with pytest.raises(ConfigError, match="SONOSYNC_LOG_LEVEL"):
            Settings.from_env({"SONOSYNC_LOG_LEVEL": "chatty"})


class TestCredentials:
    """Tests for credential resolution."""

    def test_env_tokens(self):
        """Test tokens read from the environment."""
        creds = resolve_credentials_from_env({"SPOTIFY_ACCESS_TOKEN": "sp", "DEEZER_ARL": "arl"})

        assert creds.token_for(Platform.SPOTIFY) == "sp"
        assert creds.token_for(Platform.DEEZER) == "arl"
        assert not creds.has(Platform.YOUTUBE)

    def test_tokens_file_fallback_and_env_precedence(self, tmp_path):
        """Test the tokens file fallback and env precedence."""
        tokens_file = tmp_path / "tokens.json"
        tokens_file.write_text(json.dumps({
            "spotify": {"access_token": "file_sp"},
            "deezer": {"arl": "file_arl"},
            "google": "file_yt",
        }))

        creds = resolve_credentials_from_env({"SPOTIFY_ACCESS_TOKEN": "env_sp"}, tokens_file=str(tokens_file))

        assert creds.token_for(Platform.SPOTIFY) == "env_sp"
        assert creds.token_for(Platform.DEEZER) == "file_arl"
        assert creds.token_for(Platform.YOUTUBE) == "file_yt"

    def test_missing_tokens_file_is_empty(self, tmp_path):
        """Test that a missing tokens file is empty."""
        assert load_tokens_file(str(tmp_path / "absent.json")) == {}
        assert load_tokens_file(None) == {}

    def test_malformed_tokens_file(self, tmp_path):
        """Test that a malformed tokens file raises ConfigError."""
        tokens_file = tmp_path / "tokens.json"
        tokens_file.write_text("{not json")

        with pytest.raises(ConfigError):
            load_tokens_file(str(tokens_file))

    def test_tokens_file_must_be_object(self, tmp_path):
        """Test that the tokens file must hold an object."""
        tokens_file = tmp_path / "tokens.json"
        tokens_file.write_text("[]")

        with pytest.raises(ConfigError, match="JSON object"):
            load_tokens_file(str(tokens_file))


def test_config_summary_has_no_tokens():
    """Test that the config summary contains no tokens."""
    creds = resolve_credentials_from_env({"SPOTIFY_ACCESS_TOKEN": "very_secret_token"})

    summary = get_config_summary(Settings(), creds)

    assert summary["platforms_with_credentials"] == ["spotify"]
    assert "very_secret_token" not in json.dumps(summary)
