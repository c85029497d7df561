from __future__ import annotations

from enum import Enum
from typing import Optional


class Stage(str, Enum):
    """Transfer stage at which a provider call was made."""

    FETCH = "fetch"
    SEARCH = "search"
    CREATE = "create"
    APPEND = "append"
    LIST = "list"


_STAGE_PHRASES = {
    Stage.FETCH: "failed to fetch playlist tracks",
    Stage.SEARCH: "track search failed",
    Stage.CREATE: "failed to create playlist",
    Stage.APPEND: "failed to add tracks to playlist",
    Stage.LIST: "failed to list playlists",
}


def _platform_label(platform) -> str:
    label = getattr(platform, "display_name", None)
    if label:
        return label
    return str(getattr(platform, "value", platform))


class SonoSyncError(Exception):
    """Base class for all SonoSync failures."""


class AuthenticationMissing(SonoSyncError):
    """No usable credential was supplied for a required platform."""

    def __init__(self, platform) -> None:
        self.platform = platform
        super().__init__(f"{_platform_label(platform)}: no credentials supplied, sign in first")


class UnsupportedPlatform(SonoSyncError):
    """The platform has no implemented catalog provider."""

    def __init__(self, platform) -> None:
        self.platform = platform
        super().__init__(f"{_platform_label(platform)}: platform is not supported yet")


class ProviderError(SonoSyncError):
    """A catalog provider call failed at the transport or API level.

    `committed` counts items a non-atomic append wrote before failing.
    """

    def __init__(self, platform, stage: Stage, message: str,
                 status: Optional[int] = None, committed: int = 0) -> None:
        self.platform = platform
        self.stage = Stage(stage)
        self.detail = message
        self.status = status
        self.committed = committed
        super().__init__(
            f"{_platform_label(platform)}: {_STAGE_PHRASES[self.stage]}: {message}"
        )


class TransferCancelled(SonoSyncError):
    """The transfer was cancelled by the caller."""

    def __init__(self, message: str = "Transfer cancelled") -> None:
        super().__init__(message)


class PlaylistWriteIncomplete(SonoSyncError):
    """Appending to a created playlist stopped before all chunks were sent.

    Chunks committed before the failure stay in the destination playlist.
    """

    def __init__(self, playlist_id: str, committed: int, total: int,
                 cause: Exception) -> None:
        self.playlist_id = playlist_id
        self.committed = committed
        self.total = total
        self.cause = cause
        super().__init__(
            f"Playlist {playlist_id} populated with {committed} of {total} tracks: {cause}"
        )


class PartialTransfer(SonoSyncError):
    """A destination playlist was created but only partially populated."""

    def __init__(self, report, platform, cause: Exception) -> None:
        self.report = report
        self.platform = platform
        self.cause = cause
        super().__init__(
            f"Playlist created on {_platform_label(platform)} with "
            f"{report.added_count} of {report.match_count} matched tracks "
            f"({report.total} in source): {cause}"
        )
