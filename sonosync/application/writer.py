import logging
import threading
import time
from typing import Iterator, List, Optional, Sequence

from sonosync.crosscutting.metrics import MetricsCollector
from sonosync.domain.errors import (
    PlaylistWriteIncomplete, ProviderError, Stage, TransferCancelled,
)
from sonosync.domain.ports import CatalogProvider


logger = logging.getLogger(__name__)

DEFAULT_CHUNK_SIZE = 50


def iter_chunks(track_ids: Sequence[str], size: int) -> Iterator[List[str]]:
    """Split track ids into consecutive chunks of at most `size` ids."""
    if size < 1:
        raise ValueError("chunk size must be at least 1")
    for start in range(0, len(track_ids), size):
        yield list(track_ids[start:start + size])


class PlaylistWriter:
    """Creates the destination playlist and fills it chunk by chunk."""

    def __init__(self, chunk_size: Optional[int] = None,
                 metrics: Optional[MetricsCollector] = None):
        """Initialize the writer.

        Args:
            chunk_size: Fixed chunk size; when None the destination provider's
                max_batch_size is used
            metrics: Optional collector for per-chunk metrics
        """
        if chunk_size is not None and chunk_size < 1:
            raise ValueError("chunk size must be at least 1")
        self.chunk_size = chunk_size
        self.metrics = metrics

    def chunk_size_for(self, destination: CatalogProvider) -> int:
        if self.chunk_size is not None:
            return self.chunk_size
        size = getattr(destination, "max_batch_size", None)
        return size if isinstance(size, int) and size > 0 else DEFAULT_CHUNK_SIZE

    def create_and_populate(self,
                            destination: CatalogProvider,
                            name: str,
                            description: Optional[str],
                            matched_track_ids: Sequence[str],
                            cancel_event: Optional[threading.Event] = None) -> str:
        """Create a playlist and append the matched ids in order.

        Returns:
            The new playlist id

        Raises:
            ProviderError: If the playlist could not be created
            PlaylistWriteIncomplete: If an append failed or the transfer was
                cancelled after the playlist was created
        """
        try:
            playlist_id = destination.create_playlist(name, description)
        except ProviderError:
            raise
        except Exception as e:
            raise ProviderError(destination.platform, Stage.CREATE, str(e)) from e
        logger.info(f"Created playlist '{name}' ({playlist_id})")

        if not matched_track_ids:
            return playlist_id

        size = self.chunk_size_for(destination)
        total = len(matched_track_ids)
        committed = 0

        for chunk_index, chunk in enumerate(iter_chunks(matched_track_ids, size)):
            if cancel_event is not None and cancel_event.is_set():
                logger.warning(f"Write cancelled after {committed}/{total} tracks")
                raise PlaylistWriteIncomplete(playlist_id, committed, total, TransferCancelled())

            started = time.monotonic()
            try:
                destination.add_tracks_to_playlist(playlist_id, chunk)
            except Exception as e:
                error = e if isinstance(e, ProviderError) else ProviderError(
                    destination.platform, Stage.APPEND, str(e))
                # Providers without atomic appends report what they already wrote
                written = min(max(error.committed, 0), len(chunk))
                self._record_chunk(chunk_index, len(chunk), False, started, written)
                committed += written
                logger.error(f"Append chunk {chunk_index} failed after {committed}/{total} tracks: {error}")
                raise PlaylistWriteIncomplete(playlist_id, committed, total, error) from e

            self._record_chunk(chunk_index, len(chunk), True, started)
            committed += len(chunk)
            logger.debug(f"Appended chunk {chunk_index} ({len(chunk)} tracks), {committed}/{total}")

        return playlist_id

    def _record_chunk(self, chunk_index: int, count: int, committed: bool, started: float,
                      written: int = 0) -> None:
        if self.metrics is not None:
            self.metrics.record_chunk(chunk_index, count, committed,
                                      int((time.monotonic() - started) * 1000), written)
