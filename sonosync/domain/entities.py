from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Mapping, Optional

from .errors import AuthenticationMissing, UnsupportedPlatform


ARTIST_SEPARATOR = ", "


class Platform(str, Enum):
    """Streaming platforms known to SonoSync."""

    SPOTIFY = "spotify"
    DEEZER = "deezer"
    YOUTUBE = "youtube"
    APPLE = "apple"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]

    @classmethod
    def parse(cls, value: "str | Platform") -> "Platform":
        """Parse a platform tag, raising UnsupportedPlatform for unknown tags."""
        if isinstance(value, Platform):
            return value
        tag = (value or "").strip().lower()
        if tag == "google":
            # Google sign-in is how YouTube credentials are issued
            tag = "youtube"
        try:
            return cls(tag)
        except ValueError:
            raise UnsupportedPlatform(value)


_DISPLAY_NAMES = {
    Platform.SPOTIFY: "Spotify",
    Platform.DEEZER: "Deezer",
    Platform.YOUTUBE: "YouTube Music",
    Platform.APPLE: "Apple Music",
}


@dataclass(frozen=True)
class Track:
    """Domain entity representing a track as fetched from one catalog."""

    id: str
    title: str
    artist: str
    album: str = ""
    image: Optional[str] = None
    isrc: Optional[str] = None
    duration: int = 0
    uri: str = ""

    @property
    def artists(self) -> list:
        """Individual artist names, in their original order."""
        if not self.artist:
            return []
        return [a for a in self.artist.split(ARTIST_SEPARATOR) if a]

    @property
    def primary_artist(self) -> str:
        artists = self.artists
        return artists[0] if artists else ""


def join_artists(names) -> str:
    """Join artist names with the fixed separator, keeping order and duplicates."""
    return ARTIST_SEPARATOR.join(n for n in names if n)


@dataclass(frozen=True)
class Playlist:
    """Domain entity representing a playlist snapshot."""

    id: str
    name: str
    owner: str
    platform: Platform
    track_count: int = 0
    description: Optional[str] = None
    image: Optional[str] = None
    external_url: Optional[str] = None


class MatchType(str, Enum):
    """How a destination track was found."""

    ISRC = "isrc"
    STRICT = "strict"
    FUZZY = "fuzzy"
    NONE = "none"


@dataclass(frozen=True)
class MatchResult:
    """Pairs a source track with its destination equivalent, if any."""

    source: Track
    destination: Optional[Track] = None
    match_type: MatchType = MatchType.NONE
    error: Optional[str] = None

    @property
    def matched(self) -> bool:
        return self.destination is not None

    def to_json(self) -> Dict[str, Any]:
        return {
            "sourceId": self.source.id,
            "title": self.source.title,
            "artist": self.source.artist,
            "isrc": self.source.isrc,
            "destinationId": self.destination.id if self.destination else None,
            "destinationTitle": self.destination.title if self.destination else None,
            "matchType": self.match_type.value,
            "error": self.error,
        }


@dataclass(frozen=True)
class TransferReport:
    """Outcome of one playlist transfer."""

    success: bool
    new_playlist_id: str
    match_count: int
    total: int
    added_count: int = 0
    dry_run: bool = False

    def __post_init__(self):
        if self.match_count > self.total:
            raise ValueError("match_count cannot exceed total")

    @property
    def skipped_count(self) -> int:
        return self.total - self.match_count

    def to_json(self) -> Dict[str, Any]:
        return {
            "success": self.success,
            "newPlaylistId": self.new_playlist_id,
            "matchCount": self.match_count,
            "total": self.total,
            "addedCount": self.added_count,
            "dryRun": self.dry_run,
        }


@dataclass(frozen=True)
class ResolvedCredentials:
    """Opaque per-platform tokens, resolved by the caller before a transfer."""

    tokens: Mapping[Platform, str] = field(default_factory=dict)

    @classmethod
    def from_mapping(cls, data: Mapping[str, Optional[str]]) -> "ResolvedCredentials":
        """Build credentials from a {platform tag: token} mapping.

        Blank tokens are dropped. Unknown platform tags raise UnsupportedPlatform.
        """
        tokens: Dict[Platform, str] = {}
        for key, value in (data or {}).items():
            platform = Platform.parse(key)
            if value is not None and str(value).strip():
                tokens[platform] = str(value).strip()
        return cls(tokens=tokens)

    def has(self, platform: Platform) -> bool:
        return bool(self.tokens.get(platform))

    def token_for(self, platform: Platform) -> str:
        token = self.tokens.get(platform)
        if not token:
            raise AuthenticationMissing(platform)
        return token

    def platforms(self) -> list:
        return sorted(self.tokens, key=lambda p: p.value)
