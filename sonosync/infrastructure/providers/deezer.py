import logging
import threading
from typing import Any, Dict, List, Optional, Sequence

import requests

from sonosync.domain.entities import Platform, Playlist, Track, join_artists
from sonosync.domain.errors import ProviderError, Stage
from sonosync.infrastructure.providers.session import build_session

logger = logging.getLogger(__name__)

GATEWAY_URL = "https://www.deezer.com/ajax/gw-light.php"
PUBLIC_API_URL = "https://api.deezer.com/2.0"
COVER_URL = "https://e-cdns-images.dzcdn.net/images/{kind}/{md5}/500x500-000000-80-0-0.jpg"

_HEADERS = {
    "Content-Type": "application/json",
    "User-Agent": "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
                  "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36",
    "Origin": "https://www.deezer.com",
    "Referer": "https://www.deezer.com/",
}


class _TokenRejected(ProviderError):
    """The gateway no longer accepts the cached checkForm token."""


class DeezerProvider:
    """Deezer catalog provider using the web gateway with an `arl` cookie.

    The gateway requires a CSRF token (`checkForm`) obtained from
    `deezer.getUserData`; it is fetched once and reused. The `sid` session
    cookie set by Deezer is kept by the requests session.
    """

    platform = Platform.DEEZER
    max_batch_size = 50
    supports_field_search = False

    def __init__(self, arl: str, session: Optional[requests.Session] = None, timeout: int = 15):
        self._arl = arl
        self._timeout = timeout
        self._session = session or build_session()
        self._session.cookies.set("arl", arl, domain=".deezer.com")
        self._user: Optional[Dict[str, str]] = None
        # Guards the lazily fetched CSRF token across matching threads
        self._user_lock = threading.Lock()

    def _gateway(self, method: str, stage: Stage, body: Optional[Dict[str, Any]] = None,
                 api_token: str = "null") -> Any:
        params = {
            "method": method,
            "api_version": "1.0",
            "api_token": api_token,
            "input": "3",
        }
        try:
            response = self._session.post(GATEWAY_URL, params=params, json=body or {},
                                          headers=_HEADERS, timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            status = getattr(getattr(e, 'response', None), 'status_code', None)
            raise ProviderError(self.platform, stage, str(e), status=status) from e
        except ValueError as e:
            raise ProviderError(self.platform, stage, f"invalid JSON from {method}: {e}") from e

        error = data.get("error")
        if isinstance(error, dict) and "VALID_TOKEN_REQUIRED" in error:
            raise _TokenRejected(self.platform, stage, f"{method} returned error {error}")
        if error:
            raise ProviderError(self.platform, stage, f"{method} returned error {error}")
        return data.get("results")

    def _user_data(self, stage: Stage, stale_token: Optional[str] = None) -> Dict[str, str]:
        with self._user_lock:
            # Another thread may already have replaced the rejected token
            if stale_token is not None and self._user is not None and self._user["token"] == stale_token:
                self._user = None
            if self._user is None:
                results = self._gateway("deezer.getUserData", stage) or {}
                user = results.get("USER") or {}
                token = results.get("checkForm")
                if not token or not user.get("USER_ID"):
                    raise ProviderError(self.platform, stage, "invalid ARL or failed to fetch user data")
                self._user = {
                    "user_id": str(user["USER_ID"]),
                    "user_name": user.get("BLOG_NAME") or "",
                    "token": token,
                }
            return self._user

    def _call(self, method: str, stage: Stage, body: Dict[str, Any]) -> Any:
        user = self._user_data(stage)
        try:
            return self._gateway(method, stage, body, api_token=user["token"])
        except _TokenRejected:
            logger.info(f"Deezer rejected the session token on {method}, fetching a new one")
            user = self._user_data(stage, stale_token=user["token"])
            return self._gateway(method, stage, body, api_token=user["token"])

    def _gateway_track_to_domain(self, t: Dict[str, Any]) -> Track:
        artists = t.get("ARTISTS") or []
        artist = join_artists(a.get("ART_NAME", "") for a in artists) if artists else t.get("ART_NAME", "")
        picture = t.get("ALB_PICTURE")
        return Track(
            id=str(t["SNG_ID"]),
            title=t.get("SNG_TITLE", ""),
            artist=artist,
            album=t.get("ALB_TITLE", ""),
            image=COVER_URL.format(kind="cover", md5=picture) if picture else None,
            isrc=t.get("ISRC") or None,
            duration=int(t.get("DURATION") or 0),
            uri=f"deezer:track:{t['SNG_ID']}",
        )

    def _public_track_to_domain(self, t: Dict[str, Any]) -> Track:
        contributors = t.get("contributors") or []
        if contributors:
            artist = join_artists(c.get("name", "") for c in contributors)
        else:
            artist = (t.get("artist") or {}).get("name", "")
        album = t.get("album") or {}
        return Track(
            id=str(t["id"]),
            title=t.get("title", ""),
            artist=artist,
            album=album.get("title", ""),
            image=album.get("cover_xl") or album.get("cover_big"),
            isrc=t.get("isrc") or None,
            duration=int(t.get("duration") or 0),
            uri=f"deezer:track:{t['id']}",
        )

    def list_playlists(self) -> List[Playlist]:
        user = self._user_data(Stage.LIST)
        results = self._call("deezer.pageProfile", Stage.LIST,
                             {"tab": "playlists", "user_id": user["user_id"], "nb": 2000}) or {}
        data = ((results.get("TAB") or {}).get("playlists") or {}).get("data") or []
        playlists = []
        for p in data:
            picture = p.get("PLAYLIST_PICTURE")
            playlists.append(Playlist(
                id=str(p["PLAYLIST_ID"]),
                name=p.get("TITLE", ""),
                description=p.get("DESCRIPTION") or "",
                owner=p.get("PARENT_USERNAME") or user["user_name"],
                track_count=int(p.get("NB_SONG") or 0),
                image=COVER_URL.format(kind=p.get("PICTURE_TYPE") or "playlist", md5=picture) if picture else None,
                platform=self.platform,
                external_url=f"https://www.deezer.com/playlist/{p['PLAYLIST_ID']}",
            ))
        return playlists

    def get_playlist_tracks(self, playlist_id: str) -> List[Track]:
        tracks: List[Track] = []
        start = 0
        page_size = 1000
        while True:
            results = self._call("deezer.pagePlaylist", Stage.FETCH, {
                "playlist_id": playlist_id,
                "lang": "en",
                "header": True,
                "tab": 0,
                "start": start,
                "nb": page_size,
            }) or {}
            songs = results.get("SONGS") or {}
            data = songs.get("data") or []
            tracks.extend(self._gateway_track_to_domain(t) for t in data if t.get("SNG_ID"))
            start += len(data)
            total = int(songs.get("total") or 0)
            if not data or start >= total:
                return tracks

    def search_track(self, query: str, isrc: Optional[str] = None) -> Optional[Track]:
        if isrc:
            hit = self._search_isrc(isrc)
            if hit is not None or not query.strip():
                return hit
        if not query.strip():
            return None

        logger.debug(f"Searching Deezer: {query}")
        results = self._call("deezer.pageSearch", Stage.SEARCH, {
            "query": query,
            "start": 0,
            "nb": 1,
            "suggest": False,
            "artist_suggest": False,
            "top_tracks": False,
        }) or {}
        data = (results.get("TRACK") or {}).get("data") or []
        if not data:
            return None
        return self._gateway_track_to_domain(data[0])

    def _search_isrc(self, isrc: str) -> Optional[Track]:
        try:
            response = self._session.get(f"{PUBLIC_API_URL}/track/isrc:{isrc}", timeout=self._timeout)
            response.raise_for_status()
            data = response.json()
        except requests.RequestException as e:
            status = getattr(getattr(e, 'response', None), 'status_code', None)
            raise ProviderError(self.platform, Stage.SEARCH, str(e), status=status) from e
        except ValueError as e:
            raise ProviderError(self.platform, Stage.SEARCH, f"invalid JSON from ISRC lookup: {e}") from e

        # The public API answers unknown ISRCs with 200 and an error object
        if "error" in data or not data.get("id"):
            return None
        return self._public_track_to_domain(data)

    def create_playlist(self, name: str, description: Optional[str] = None) -> str:
        results = self._call("playlist.create", Stage.CREATE, {
            "title": name,
            "description": description or "",
            "status": 0,
            "songs": [],
        })
        # The gateway returns the bare id, occasionally wrapped in an object
        if isinstance(results, (int, str)) and str(results):
            return str(results)
        if isinstance(results, dict) and results.get("PLAYLIST_ID"):
            return str(results["PLAYLIST_ID"])
        raise ProviderError(self.platform, Stage.CREATE, f"unexpected response {results!r}")

    def add_tracks_to_playlist(self, playlist_id: str, track_ids: Sequence[str]) -> None:
        if not track_ids:
            return
        if len(track_ids) > self.max_batch_size:
            raise ValueError(f"Deezer accepts at most {self.max_batch_size} tracks per call")
        songs = [[str(tid).rsplit(":", 1)[-1], 0] for tid in track_ids]
        self._call("playlist.addSongs", Stage.APPEND, {
            "playlist_id": playlist_id,
            "songs": songs,
            "offset": -1,
        })
