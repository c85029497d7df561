import logging
import re
from typing import Any, Dict, Iterator, List, Optional, Sequence

import requests

from sonosync.domain.entities import Platform, Playlist, Track
from sonosync.domain.errors import ProviderError, Stage
from sonosync.infrastructure.providers.session import build_session

logger = logging.getLogger(__name__)

API_URL = "https://www.googleapis.com/youtube/v3"
MUSIC_CATEGORY_ID = "10"
TOPIC_SUFFIX = " - Topic"

_DURATION_RE = re.compile(r"^P(?:(\d+)D)?T?(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?$")


def parse_iso8601_duration(value: Optional[str]) -> int:
    """Convert an ISO 8601 duration such as 'PT3M25S' to seconds."""
    if not value:
        return 0
    match = _DURATION_RE.match(value)
    if not match:
        return 0
    days, hours, minutes, seconds = (int(g or 0) for g in match.groups())
    return ((days * 24 + hours) * 60 + minutes) * 60 + seconds


def channel_to_artist(channel_title: str) -> str:
    # Auto-generated artist channels are called "<Artist> - Topic"
    if channel_title.endswith(TOPIC_SUFFIX):
        return channel_title[:-len(TOPIC_SUFFIX)]
    return channel_title


class YouTubeMusicProvider:
    """YouTube Music catalog provider over the YouTube Data API v3.

    The API has no ISRC lookup, so ISRC-only searches return None and
    matching falls through to metadata queries.
    """

    platform = Platform.YOUTUBE
    max_batch_size = 50
    supports_field_search = False

    def __init__(self, access_token: str, session: Optional[requests.Session] = None, timeout: int = 15):
        self._timeout = timeout
        self._session = session or build_session()
        self._session.headers.update({
            "Authorization": f"Bearer {access_token}",
            "Accept": "application/json",
        })

    def _request(self, method: str, path: str, stage: Stage,
                 params: Optional[Dict[str, Any]] = None,
                 body: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
        try:
            response = self._session.request(method, f"{API_URL}/{path}", params=params,
                                             json=body, timeout=self._timeout)
            response.raise_for_status()
            return response.json() if response.content else {}
        except requests.RequestException as e:
            status = getattr(getattr(e, 'response', None), 'status_code', None)
            raise ProviderError(self.platform, stage, str(e), status=status) from e
        except ValueError as e:
            raise ProviderError(self.platform, stage, f"invalid JSON from {path}: {e}") from e

    def _paged(self, path: str, stage: Stage, params: Dict[str, Any]) -> Iterator[Dict[str, Any]]:
        params = dict(params)
        while True:
            data = self._request("GET", path, stage, params=params)
            for item in data.get("items") or []:
                yield item
            token = data.get("nextPageToken")
            if not token:
                return
            params["pageToken"] = token

    def _durations(self, video_ids: List[str], stage: Stage) -> Dict[str, int]:
        durations: Dict[str, int] = {}
        for start in range(0, len(video_ids), 50):
            batch = video_ids[start:start + 50]
            data = self._request("GET", "videos", stage, params={
                "part": "contentDetails",
                "id": ",".join(batch),
                "maxResults": 50,
            })
            for item in data.get("items") or []:
                durations[item["id"]] = parse_iso8601_duration(
                    (item.get("contentDetails") or {}).get("duration"))
        return durations

    def _snippet_to_domain(self, video_id: str, snippet: Dict[str, Any], duration: int = 0) -> Track:
        thumbnails = snippet.get("thumbnails") or {}
        image = (thumbnails.get("high") or thumbnails.get("default") or {}).get("url")
        channel = snippet.get("videoOwnerChannelTitle") or snippet.get("channelTitle") or ""
        return Track(
            id=video_id,
            title=snippet.get("title", ""),
            artist=channel_to_artist(channel),
            album="",
            image=image,
            isrc=None,
            duration=duration,
            uri=f"https://music.youtube.com/watch?v={video_id}",
        )

    def list_playlists(self) -> List[Playlist]:
        playlists = []
        for p in self._paged("playlists", Stage.LIST, {"part": "snippet,contentDetails",
                                                       "mine": "true", "maxResults": 50}):
            snippet = p.get("snippet") or {}
            thumbnails = snippet.get("thumbnails") or {}
            playlists.append(Playlist(
                id=p["id"],
                name=snippet.get("title", ""),
                description=snippet.get("description") or "",
                owner=snippet.get("channelTitle") or "Unknown",
                track_count=(p.get("contentDetails") or {}).get("itemCount", 0),
                image=(thumbnails.get("high") or thumbnails.get("default") or {}).get("url"),
                platform=self.platform,
                external_url=f"https://music.youtube.com/playlist?list={p['id']}",
            ))
        return playlists

    def get_playlist_tracks(self, playlist_id: str) -> List[Track]:
        items = []
        for item in self._paged("playlistItems", Stage.FETCH, {"part": "snippet,contentDetails",
                                                                "playlistId": playlist_id,
                                                                "maxResults": 50}):
            video_id = (item.get("contentDetails") or {}).get("videoId")
            # Deleted and private videos keep their slot without an owner channel
            if video_id:
                items.append((video_id, item.get("snippet") or {}))

        durations = self._durations([vid for vid, _ in items], Stage.FETCH)
        return [self._snippet_to_domain(vid, snippet, durations.get(vid, 0)) for vid, snippet in items]

    def search_track(self, query: str, isrc: Optional[str] = None) -> Optional[Track]:
        if not query.strip():
            return None
        logger.debug(f"Searching YouTube: {query}")
        data = self._request("GET", "search", Stage.SEARCH, params={
            "part": "snippet",
            "q": query,
            "type": "video",
            "videoCategoryId": MUSIC_CATEGORY_ID,
            "maxResults": 1,
        })
        items = data.get("items") or []
        if not items:
            return None
        video_id = (items[0].get("id") or {}).get("videoId")
        if not video_id:
            return None
        durations = self._durations([video_id], Stage.SEARCH)
        return self._snippet_to_domain(video_id, items[0].get("snippet") or {}, durations.get(video_id, 0))

    def create_playlist(self, name: str, description: Optional[str] = None) -> str:
        data = self._request("POST", "playlists", Stage.CREATE, params={"part": "snippet,status"}, body={
            "snippet": {"title": name, "description": description or ""},
            "status": {"privacyStatus": "private"},
        })
        playlist_id = data.get("id")
        if not playlist_id:
            raise ProviderError(self.platform, Stage.CREATE, "response carried no playlist id")
        return playlist_id

    def add_tracks_to_playlist(self, playlist_id: str, track_ids: Sequence[str]) -> None:
        if len(track_ids) > self.max_batch_size:
            raise ValueError(f"YouTube accepts at most {self.max_batch_size} tracks per call")
        # The API inserts one item per request, so a failure leaves earlier items in place
        for inserted, video_id in enumerate(track_ids):
            try:
                self._request("POST", "playlistItems", Stage.APPEND, params={"part": "snippet"}, body={
                    "snippet": {
                        "playlistId": playlist_id,
                        "resourceId": {"kind": "youtube#video", "videoId": video_id},
                    },
                })
            except ProviderError as e:
                e.committed = inserted
                raise
