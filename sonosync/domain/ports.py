from __future__ import annotations

from typing import List, Optional, Protocol, Sequence

from .entities import Platform, Playlist, Track


class CatalogProvider(Protocol):
    """Port defining the contract the transfer core relies on.

    Implementations map provider-specific payloads into domain entities and
    translate transport failures into ProviderError. Retry and rate limiting
    toward the platform are the implementation's concern.
    """

    platform: Platform
    max_batch_size: int
    # Whether search_track understands `track:"..." artist:"..."` filters
    supports_field_search: bool

    def list_playlists(self) -> List[Playlist]:
        """Return the playlists visible to the signed-in user."""

    def get_playlist_tracks(self, playlist_id: str) -> List[Track]:
        """Return the tracks of a playlist, in playlist order."""

    def search_track(self, query: str, isrc: Optional[str] = None) -> Optional[Track]:
        """Return the best catalog hit for the query or ISRC, or None for no match."""

    def create_playlist(self, name: str, description: Optional[str] = None) -> str:
        """Create an empty playlist and return its identifier."""

    def add_tracks_to_playlist(self, playlist_id: str, track_ids: Sequence[str]) -> None:
        """Append up to max_batch_size tracks to the playlist, in order."""
