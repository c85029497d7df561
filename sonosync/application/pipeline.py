import logging
import threading
from datetime import datetime
from typing import List, Optional

from sonosync.application.matching import TrackMatcher, summarize_matches
from sonosync.application.scheduler import WINDOW_SIZE, BatchScheduler
from sonosync.application.writer import PlaylistWriter
from sonosync.crosscutting.logging import (
    CorrelationContext, log_transfer_complete, log_transfer_start,
)
from sonosync.crosscutting.metrics import MetricsCollector
from sonosync.domain.entities import MatchResult, Platform, Track, TransferReport
from sonosync.domain.errors import (
    PartialTransfer, PlaylistWriteIncomplete, ProviderError, SonoSyncError, Stage,
)
from sonosync.domain.ports import CatalogProvider


logger = logging.getLogger(__name__)

TRANSFER_SUFFIX = " (Transfer)"


def transfer_playlist_name(name: str) -> str:
    return f"{name}{TRANSFER_SUFFIX}"


def transfer_description(source_platform) -> str:
    label = source_platform.display_name if isinstance(source_platform, Platform) else str(source_platform)
    return f"Transferred from {label} via SonoSync."


def create_transfer_id() -> str:
    return f"sonosync_{datetime.now().strftime('%Y%m%d_%H%M%S_%f')}"


class TransferOrchestrator:
    """Top-level sequence for moving one playlist between catalogs.

    fetch source tracks -> match in windows -> create and fill the destination
    playlist -> report. Nothing is retried here; retry policy belongs to the
    providers.
    """

    def __init__(self,
                 matcher: Optional[TrackMatcher] = None,
                 window_size: int = WINDOW_SIZE,
                 chunk_size: Optional[int] = None,
                 transfer_id: Optional[str] = None):
        """Initialize the orchestrator.

        Args:
            matcher: Track matcher, a default TrackMatcher when omitted
            window_size: Number of tracks matched concurrently per window
            chunk_size: Fixed append chunk size, provider default when None
            transfer_id: Correlation id, generated when omitted
        """
        self.matcher = matcher or TrackMatcher()
        self.window_size = window_size
        self.chunk_size = chunk_size
        self.transfer_id = transfer_id or create_transfer_id()
        self.results: List[MatchResult] = []
        self.metrics: Optional[MetricsCollector] = None

    def transfer(self,
                 source_playlist_id: str,
                 source: CatalogProvider,
                 destination: CatalogProvider,
                 new_playlist_name: str,
                 cancel_event: Optional[threading.Event] = None,
                 dry_run: bool = False) -> TransferReport:
        """Transfer a playlist from source to destination.

        Returns:
            TransferReport for a completed (or dry-run) transfer

        Raises:
            ProviderError: If fetching source tracks or creating the playlist failed
            PartialTransfer: If the playlist was created but not fully populated
            TransferCancelled: If cancel_event was set during matching
        """
        self.results = []
        self.metrics = MetricsCollector(self.transfer_id,
                                        _platform_value(source), _platform_value(destination))

        log_transfer_start(logger, self.transfer_id, _platform_value(source),
                           _platform_value(destination), source_playlist_id, dry_run=dry_run)

        with CorrelationContext(transfer_id=self.transfer_id, playlist_id=source_playlist_id):
            try:
                return self._run(source_playlist_id, source, destination,
                                 new_playlist_name, cancel_event, dry_run)
            finally:
                self.metrics.end_transfer()

    def _run(self, source_playlist_id: str, source: CatalogProvider,
             destination: CatalogProvider, new_playlist_name: str,
             cancel_event: Optional[threading.Event], dry_run: bool) -> TransferReport:
        with CorrelationContext(stage=Stage.FETCH.value):
            tracks = self._fetch_tracks(source, source_playlist_id)
            logger.info(f"Fetched {len(tracks)} tracks from {_platform_value(source)}")
        self.metrics.start_transfer(len(tracks))

        with CorrelationContext(stage='match'):
            scheduler = BatchScheduler(self.matcher, window_size=self.window_size, metrics=self.metrics)
            self.results = scheduler.match_all(tracks, destination, cancel_event=cancel_event)
            logger.info(f"Match summary: {summarize_matches(self.results)}")

        matched_ids = [r.destination.id for r in self.results if r.destination is not None]

        if dry_run:
            logger.info(f"DRY-RUN: would create playlist with {len(matched_ids)}/{len(tracks)} tracks")
            return TransferReport(success=True, new_playlist_id="", match_count=len(matched_ids),
                                  total=len(tracks), added_count=0, dry_run=True)

        writer = PlaylistWriter(chunk_size=self.chunk_size, metrics=self.metrics)
        with CorrelationContext(stage='write'):
            try:
                new_playlist_id = writer.create_and_populate(
                    destination,
                    transfer_playlist_name(new_playlist_name),
                    transfer_description(getattr(source, 'platform', 'source')),
                    matched_ids,
                    cancel_event=cancel_event,
                )
            except PlaylistWriteIncomplete as e:
                report = TransferReport(success=False, new_playlist_id=e.playlist_id,
                                        match_count=len(matched_ids), total=len(tracks),
                                        added_count=e.committed)
                raise PartialTransfer(report, getattr(destination, 'platform', 'destination'), e.cause) from e

        report = TransferReport(success=True, new_playlist_id=new_playlist_id,
                                match_count=len(matched_ids), total=len(tracks),
                                added_count=len(matched_ids))
        log_transfer_complete(logger, self.transfer_id, report.match_count, report.total,
                              new_playlist_id=new_playlist_id)
        return report

    def _fetch_tracks(self, source: CatalogProvider, playlist_id: str) -> List[Track]:
        try:
            return list(source.get_playlist_tracks(playlist_id))
        except SonoSyncError:
            raise
        except Exception as e:
            raise ProviderError(getattr(source, 'platform', 'source'), Stage.FETCH, str(e)) from e


def _platform_value(provider) -> str:
    platform = getattr(provider, 'platform', None)
    return getattr(platform, 'value', str(platform))
