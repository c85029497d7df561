from typing import List, Optional, Sequence

from sonosync.domain.entities import Platform, Playlist, Track
from sonosync.domain.errors import UnsupportedPlatform


class AppleMusicProvider:
    """Placeholder for Apple Music; no catalog calls are implemented yet."""

    platform = Platform.APPLE
    max_batch_size = 100
    supports_field_search = False

    def __init__(self, developer_token: Optional[str] = None):
        raise UnsupportedPlatform(self.platform)

    def list_playlists(self) -> List[Playlist]:
        raise UnsupportedPlatform(self.platform)

    def get_playlist_tracks(self, playlist_id: str) -> List[Track]:
        raise UnsupportedPlatform(self.platform)

    def search_track(self, query: str, isrc: Optional[str] = None) -> Optional[Track]:
        raise UnsupportedPlatform(self.platform)

    def create_playlist(self, name: str, description: Optional[str] = None) -> str:
        raise UnsupportedPlatform(self.platform)

    def add_tracks_to_playlist(self, playlist_id: str, track_ids: Sequence[str]) -> None:
        raise UnsupportedPlatform(self.platform)
