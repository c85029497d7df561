import inspect

import pytest

from sonosync.domain.entities import Platform, Playlist, Track
from sonosync.domain.ports import CatalogProvider
from sonosync.infrastructure.providers.apple import AppleMusicProvider
from sonosync.infrastructure.providers.deezer import DeezerProvider
from sonosync.infrastructure.providers.spotify import SpotifyProvider
from sonosync.infrastructure.providers.youtube import YouTubeMusicProvider
from sonosync.tests.fakes import FakeCatalogProvider, make_track


PORT_METHODS = [
    "list_playlists", "get_playlist_tracks", "search_track",
    "create_playlist", "add_tracks_to_playlist",
]

PROVIDER_CLASSES = [SpotifyProvider, DeezerProvider, YouTubeMusicProvider, AppleMusicProvider]


@pytest.mark.parametrize("provider_cls", PROVIDER_CLASSES)
def test_provider_classes_implement_port(provider_cls):
    """Test that provider classes implement the port."""
    assert isinstance(provider_cls.platform, Platform)
    assert provider_cls.max_batch_size > 0
    assert isinstance(provider_cls.supports_field_search, bool)
    for name in PORT_METHODS:
        port_params = list(inspect.signature(getattr(CatalogProvider, name)).parameters)
        impl_params = list(inspect.signature(getattr(provider_cls, name)).parameters)
        assert impl_params == port_params, f"{provider_cls.__name__}.{name}"


def test_batch_limits():
    """Test per-provider batch limits."""
    assert SpotifyProvider.max_batch_size == 100
    assert DeezerProvider.max_batch_size == 50
    assert YouTubeMusicProvider.max_batch_size == 50


def test_only_spotify_search_understands_field_filters():
    """Test that field-filter queries are limited to Spotify."""
    assert SpotifyProvider.supports_field_search is True
    assert DeezerProvider.supports_field_search is False
    assert YouTubeMusicProvider.supports_field_search is False


def test_contract_semantics_on_fake():
    """Test contract semantics against the in-memory provider."""
    track = make_track("t1", title="Song A", artist="A")
    provider = FakeCatalogProvider(playlist_tracks={"p1": [track]},
                                   query_answers={"A Song A": track})

    playlists = provider.list_playlists()
    assert playlists and all(isinstance(p, Playlist) for p in playlists)

    tracks = provider.get_playlist_tracks("p1")
    assert isinstance(tracks, list)
    assert all(isinstance(t, Track) for t in tracks)

    assert provider.search_track("A Song A") == track
    # No match is None, not an exception
    assert provider.search_track("nothing here") is None

    playlist_id = provider.create_playlist("New", "desc")
    assert isinstance(playlist_id, str) and playlist_id
    provider.add_tracks_to_playlist(playlist_id, ["t1", "t2"])
    assert provider.playlists[playlist_id] == ["t1", "t2"]
