from unittest.mock import patch

import pytest

from sonosync.crosscutting.config import Settings
from sonosync.domain.entities import Platform, ResolvedCredentials
from sonosync.domain.errors import AuthenticationMissing, UnsupportedPlatform
from sonosync.infrastructure.providers.deezer import DeezerProvider
from sonosync.infrastructure.providers.registry import build_provider
from sonosync.infrastructure.providers.youtube import YouTubeMusicProvider


class TestBuildProvider:
    """Registry errors surface before any network call."""

    def setup_method(self):
        """Set up test fixtures."""
        self.credentials = ResolvedCredentials.from_mapping({
            "spotify": "sp_token", "deezer": "arl", "youtube": "yt_token",
        })

    def test_unknown_platform(self):
        """Test that an unknown platform is unsupported."""
        with pytest.raises(UnsupportedPlatform):
            build_provider("tidal", self.credentials)

    def test_apple_is_unsupported_even_without_credentials(self):
        """Test Apple is unsupported even without credentials."""
        with pytest.raises(UnsupportedPlatform, match="Apple Music"):
            build_provider("apple", ResolvedCredentials())

    def test_missing_credentials(self):
        """Test that missing credentials are reported."""
        with pytest.raises(AuthenticationMissing, match="Deezer"):
            build_provider("deezer", ResolvedCredentials.from_mapping({"spotify": "x"}))

    @patch('sonosync.infrastructure.providers.session.requests.Session.request')
    def test_builds_without_network(self, mock_request):
        """Test that building providers makes no network calls."""
        assert isinstance(build_provider("deezer", self.credentials), DeezerProvider)
        assert isinstance(build_provider("google", self.credentials), YouTubeMusicProvider)
        mock_request.assert_not_called()

    @patch('sonosync.infrastructure.providers.registry.SpotifyProvider')
    def test_spotify_gets_settings(self, mock_spotify):
        """Test Spotify gets settings."""
        settings = Settings(spotify_market="DE", http_timeout=9)

        build_provider(Platform.SPOTIFY, self.credentials, settings)

        mock_spotify.assert_called_once_with("sp_token", market="DE", requests_timeout=9)
