import logging
from typing import Any, Dict, List, Optional, Sequence

import requests
import spotipy
from spotipy.exceptions import SpotifyException

from sonosync.domain.entities import Platform, Playlist, Track, join_artists
from sonosync.domain.errors import ProviderError, Stage

logger = logging.getLogger(__name__)

_TRANSPORT_ERRORS = (SpotifyException, requests.RequestException)


class SpotifyProvider:
    """Spotify catalog provider backed by spotipy."""

    platform = Platform.SPOTIFY
    # Spotify accepts up to 100 items per add request
    max_batch_size = 100
    supports_field_search = True

    def __init__(self,
                 access_token: str,
                 market: Optional[str] = None,
                 requests_timeout: int = 15,
                 client: Optional[spotipy.Spotify] = None):
        """Initialize Spotify provider.

        Args:
            access_token: Spotify OAuth access token, already resolved by the caller
            market: Optional market code passed to search
            requests_timeout: HTTP timeout in seconds
            client: Pre-built spotipy client, mainly for tests
        """
        self._market = market
        # spotipy retries 429/5xx responses itself, honouring Retry-After
        self._client = client or spotipy.Spotify(
            auth=access_token,
            requests_timeout=requests_timeout,
            retries=3,
            status_retries=3,
            backoff_factor=0.5,
        )
        self._user_id: Optional[str] = None

    def _error(self, stage: Stage, error: Exception) -> ProviderError:
        status = getattr(error, 'http_status', None)
        message = getattr(error, 'msg', None) or str(error)
        return ProviderError(self.platform, stage, message, status=status)

    def _current_user_id(self) -> str:
        if self._user_id is None:
            self._user_id = self._client.current_user()['id']
        return self._user_id

    def _spotify_track_to_domain(self, t: Dict[str, Any]) -> Track:
        album = t.get('album') or {}
        images = album.get('images') or []
        external_ids = t.get('external_ids') or {}
        return Track(
            id=t['id'],
            title=t.get('name', ''),
            artist=join_artists(a.get('name', '') for a in t.get('artists') or []),
            album=album.get('name', ''),
            image=images[0].get('url') if images else None,
            isrc=external_ids.get('isrc') or None,
            duration=int(round((t.get('duration_ms') or 0) / 1000)),
            uri=t.get('uri') or f"spotify:track:{t['id']}",
        )

    def _paged(self, page: Optional[Dict[str, Any]]):
        while page:
            for item in page.get('items') or []:
                yield item
            page = self._client.next(page) if page.get('next') else None

    def list_playlists(self) -> List[Playlist]:
        try:
            playlists = []
            for p in self._paged(self._client.current_user_playlists(limit=50)):
                images = p.get('images') or []
                playlists.append(Playlist(
                    id=p['id'],
                    name=p.get('name', ''),
                    description=p.get('description') or '',
                    owner=(p.get('owner') or {}).get('display_name') or 'Unknown',
                    track_count=(p.get('tracks') or {}).get('total', 0),
                    image=images[0].get('url') if images else None,
                    platform=self.platform,
                    external_url=(p.get('external_urls') or {}).get('spotify'),
                ))
            return playlists
        except _TRANSPORT_ERRORS as e:
            raise self._error(Stage.LIST, e) from e

    def get_playlist_tracks(self, playlist_id: str) -> List[Track]:
        try:
            tracks = []
            first = self._client.playlist_items(playlist_id, limit=100,
                                                additional_types=('track',))
            for item in self._paged(first):
                t = item.get('track')
                # Local files and removed tracks come back without an id
                if not t or not t.get('id') or t.get('type', 'track') != 'track':
                    continue
                tracks.append(self._spotify_track_to_domain(t))
            return tracks
        except _TRANSPORT_ERRORS as e:
            raise self._error(Stage.FETCH, e) from e

    def search_track(self, query: str, isrc: Optional[str] = None) -> Optional[Track]:
        try:
            if isrc:
                hit = self._first_hit(f"isrc:{isrc}")
                if hit is not None or not query.strip():
                    return hit
            if not query.strip():
                return None
            return self._first_hit(query)
        except _TRANSPORT_ERRORS as e:
            raise self._error(Stage.SEARCH, e) from e

    def _first_hit(self, q: str) -> Optional[Track]:
        logger.debug(f"Searching Spotify: {q} (market={self._market})")
        results = self._client.search(q, limit=1, type='track', market=self._market)
        items = [i for i in ((results or {}).get('tracks') or {}).get('items') or [] if i]
        if not items:
            return None
        return self._spotify_track_to_domain(items[0])

    def create_playlist(self, name: str, description: Optional[str] = None) -> str:
        try:
            result = self._client.user_playlist_create(
                self._current_user_id(),
                name,
                public=False,
                description=description or 'Created by SonoSync',
            )
            return result['id']
        except _TRANSPORT_ERRORS as e:
            raise self._error(Stage.CREATE, e) from e

    def add_tracks_to_playlist(self, playlist_id: str, track_ids: Sequence[str]) -> None:
        if not track_ids:
            return
        if len(track_ids) > self.max_batch_size:
            raise ValueError(f"Spotify accepts at most {self.max_batch_size} tracks per call")
        uris = [tid if tid.startswith('spotify:') else f"spotify:track:{tid}" for tid in track_ids]
        try:
            self._client.playlist_add_items(playlist_id, uris)
        except _TRANSPORT_ERRORS as e:
            raise self._error(Stage.APPEND, e) from e
