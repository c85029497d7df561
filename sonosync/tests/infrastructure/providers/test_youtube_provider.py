from unittest.mock import Mock

import pytest
import requests

from sonosync.application.writer import PlaylistWriter
from sonosync.domain.errors import PlaylistWriteIncomplete, ProviderError, Stage
from sonosync.infrastructure.providers.youtube import (
    API_URL, YouTubeMusicProvider, channel_to_artist, parse_iso8601_duration,
)


def _response(payload, status=200):
    response = Mock()
    response.status_code = status
    response.content = b'{}' if payload is not None else b''
    response.json.return_value = payload
    if status >= 400:
        response.raise_for_status.side_effect = requests.HTTPError(f"{status} Error", response=response)
    else:
        response.raise_for_status.return_value = None
    return response


def _videos(durations):
    return _response({'items': [{'id': vid, 'contentDetails': {'duration': d}} for vid, d in durations.items()]})


def test_parse_iso8601_duration():
    """Test ISO 8601 duration parsing."""
    assert parse_iso8601_duration("PT3M25S") == 205
    assert parse_iso8601_duration("PT1H2M3S") == 3723
    assert parse_iso8601_duration("PT45S") == 45
    assert parse_iso8601_duration("P1DT1S") == 86401
    assert parse_iso8601_duration("") == 0
    assert parse_iso8601_duration("garbage") == 0


def test_channel_to_artist_strips_topic_suffix():
    """Test that the " - Topic" suffix is stripped from channel names."""
    assert channel_to_artist("Daft Punk - Topic") == "Daft Punk"
    assert channel_to_artist("DaftPunkVEVO") == "DaftPunkVEVO"


class TestYouTubeMusicProvider:
    """Tests for the YouTube Data API provider."""

    def setup_method(self):
        """Set up test fixtures."""
        self.session = Mock()
        self.session.headers = {}
        self.provider = YouTubeMusicProvider("yt_token", session=self.session)

    def _paths(self):
        return [c[0][1] for c in self.session.request.call_args_list]

    def test_sets_bearer_header(self):
        """Test that the bearer header is set."""
        assert self.session.headers["Authorization"] == "Bearer yt_token"

    def test_isrc_only_search_returns_none(self):
        """Test ISRC only search returns none."""
        assert self.provider.search_track("", isrc="GBDUW0000059") is None
        self.session.request.assert_not_called()

    def test_search_restricted_to_music_videos(self):
        """Test that search is restricted to music videos."""
        self.session.request.side_effect = [
            _response({'items': [{'id': {'videoId': 'v1'},
                                  'snippet': {'title': 'Get Lucky', 'channelTitle': 'Daft Punk - Topic'}}]}),
            _videos({'v1': 'PT4M8S'}),
        ]

        track = self.provider.search_track("Daft Punk Get Lucky")

        assert track.id == "v1"
        assert track.artist == "Daft Punk"
        assert track.duration == 248
        assert track.isrc is None
        params = self.session.request.call_args_list[0][1]['params']
        assert params['type'] == 'video'
        assert params['videoCategoryId'] == '10'
        assert self.session.request.call_args_list[0][0] == ("GET", f"{API_URL}/search")

    def test_search_no_results(self):
        """Test a search with no results."""
        self.session.request.return_value = _response({'items': []})

        assert self.provider.search_track("nothing") is None

    def test_search_http_error(self):
        """Test that a search HTTP error raises ProviderError."""
        self.session.request.return_value = _response({}, status=403)

        with pytest.raises(ProviderError) as exc_info:
            self.provider.search_track("q")

        assert exc_info.value.stage is Stage.SEARCH
        assert exc_info.value.status == 403

    def test_get_playlist_tracks_pages_and_fetches_durations(self):
        """Test that playlist items are paged and durations fetched."""
        self.session.request.side_effect = [
            _response({'items': [{'contentDetails': {'videoId': 'v1'},
                                  'snippet': {'title': 'One', 'videoOwnerChannelTitle': 'A - Topic'}}],
                       'nextPageToken': 'tok2'}),
            _response({'items': [{'contentDetails': {'videoId': 'v2'},
                                  'snippet': {'title': 'Two', 'videoOwnerChannelTitle': 'B'}},
                                 {'contentDetails': {}, 'snippet': {'title': 'Deleted video'}}]}),
            _videos({'v1': 'PT3M', 'v2': 'PT2M30S'}),
        ]

        tracks = self.provider.get_playlist_tracks("PL1")

        assert [(t.id, t.artist, t.duration) for t in tracks] == [("v1", "A", 180), ("v2", "B", 150)]
        assert self.session.request.call_args_list[1][1]['params']['pageToken'] == 'tok2'
        assert self._paths()[-1] == f"{API_URL}/videos"

    def test_create_playlist_is_private(self):
        """Test that created playlists are private."""
        self.session.request.return_value = _response({'id': 'PLnew'})

        playlist_id = self.provider.create_playlist("Mix (Transfer)", "desc")

        assert playlist_id == "PLnew"
        body = self.session.request.call_args[1]['json']
        assert body['status']['privacyStatus'] == 'private'
        assert body['snippet']['title'] == "Mix (Transfer)"

    def test_create_playlist_without_id(self):
        """Test that a create response without an ID raises."""
        self.session.request.return_value = _response({})

        with pytest.raises(ProviderError, match="YouTube Music: failed to create playlist"):
            self.provider.create_playlist("Mix")

    def test_add_tracks_inserts_one_per_request(self):
        """Test that each video is inserted with its own request."""
        self.session.request.return_value = _response({'id': 'item'})

        self.provider.add_tracks_to_playlist("PL1", ["v1", "v2", "v3"])

        assert self.session.request.call_count == 3
        video_ids = [c[1]['json']['snippet']['resourceId']['videoId']
                     for c in self.session.request.call_args_list]
        assert video_ids == ["v1", "v2", "v3"]

    def test_add_tracks_error_stops_chunk(self):
        """Test that a failed insert stops the rest of the chunk."""
        self.session.request.side_effect = [_response({'id': 'item'}), _response({}, status=409)]

        with pytest.raises(ProviderError) as exc_info:
            self.provider.add_tracks_to_playlist("PL1", ["v1", "v2", "v3"])

        assert exc_info.value.stage is Stage.APPEND
        assert self.session.request.call_count == 2
        assert exc_info.value.committed == 1

    def test_writer_counts_items_inserted_before_failure(self):
        """Test that items inserted before a failed request count as committed."""
        ok = _response({'id': 'item'})
        self.session.request.side_effect = [
            _response({'id': 'PL'}), ok, ok, ok, _response({}, status=500),
        ]

        with pytest.raises(PlaylistWriteIncomplete) as exc_info:
            PlaylistWriter().create_and_populate(self.provider, "Mix", None, ["v1", "v2", "v3", "v4", "v5"])

        assert exc_info.value.committed == 3
        assert exc_info.value.total == 5
        assert exc_info.value.playlist_id == "PL"

    def test_list_playlists(self):
        """Test listing playlists."""
        self.session.request.return_value = _response({'items': [{
            'id': 'PL1',
            'snippet': {'title': 'Liked', 'channelTitle': 'Alex', 'thumbnails': {}},
            'contentDetails': {'itemCount': 9},
        }]})

        playlists = self.provider.list_playlists()

        assert playlists[0].track_count == 9
        assert playlists[0].external_url == "https://music.youtube.com/playlist?list=PL1"
