import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor, wait
from typing import Iterator, List, Optional, Sequence, TypeVar

from sonosync.application.matching import TrackMatcher
from sonosync.crosscutting.metrics import MetricsCollector
from sonosync.domain.entities import MatchResult, MatchType, Track
from sonosync.domain.errors import TransferCancelled
from sonosync.domain.ports import CatalogProvider


logger = logging.getLogger(__name__)

WINDOW_SIZE = 5

T = TypeVar("T")


def iter_windows(items: Sequence[T], size: int) -> Iterator[List[T]]:
    """Yield consecutive windows of at most `size` items, in order."""
    if size < 1:
        raise ValueError("window size must be at least 1")
    for start in range(0, len(items), size):
        yield list(items[start:start + size])


class ProgressTracker:
    """Tracks matching progress and logs periodic updates."""

    def __init__(self, total_tracks: int, progress_interval_sec: int = 30):
        self.total_tracks = total_tracks
        self.processed_tracks = 0
        self.matched_tracks = 0
        self.not_found_tracks = 0
        self.progress_interval_sec = progress_interval_sec
        self.start_time = time.time()
        self.last_progress_time = self.start_time

    def update(self, results: Sequence[MatchResult]) -> None:
        """Account for a settled window and log progress when due."""
        for result in results:
            self.processed_tracks += 1
            if result.matched:
                self.matched_tracks += 1
            else:
                self.not_found_tracks += 1

        now = time.time()
        if (self.processed_tracks % 50 < len(results)
                or self.processed_tracks == self.total_tracks
                or now - self.last_progress_time >= self.progress_interval_sec):
            elapsed_sec = now - self.start_time
            pct = (self.processed_tracks / self.total_tracks) * 100 if self.total_tracks else 100.0
            logger.info(f"Progress: {self.processed_tracks}/{self.total_tracks} tracks ({pct:.1f}%) "
                        f"in {elapsed_sec:.1f}s. Matched: {self.matched_tracks}, "
                        f"Not found: {self.not_found_tracks}")
            self.last_progress_time = now


class BatchScheduler:
    """Runs the track matcher over a whole track list in bounded windows.

    Each window of `window_size` tracks is matched concurrently; the next
    window starts only once every match in the current one has settled.
    Results come back in input order, one per input track.
    """

    def __init__(self,
                 matcher: TrackMatcher,
                 window_size: int = WINDOW_SIZE,
                 metrics: Optional[MetricsCollector] = None):
        if window_size < 1:
            raise ValueError("window size must be at least 1")
        self.matcher = matcher
        self.window_size = window_size
        self.metrics = metrics

    def match_all(self,
                  source_tracks: Sequence[Track],
                  destination: CatalogProvider,
                  cancel_event: Optional[threading.Event] = None) -> List[MatchResult]:
        """Match every source track against the destination catalog.

        Raises:
            TransferCancelled: If cancel_event is set before a window starts
        """
        results: List[MatchResult] = []
        progress = ProgressTracker(len(source_tracks))

        if not source_tracks:
            return results

        with ThreadPoolExecutor(max_workers=self.window_size,
                                thread_name_prefix="sonosync-match") as executor:
            for window_index, window in enumerate(iter_windows(source_tracks, self.window_size)):
                if cancel_event is not None and cancel_event.is_set():
                    logger.warning(f"Matching cancelled before window {window_index} "
                                   f"({len(results)}/{len(source_tracks)} tracks matched)")
                    raise TransferCancelled()

                window_results = self._run_window(executor, window_index, window, destination)
                results.extend(window_results)
                progress.update(window_results)

        return results

    def _run_window(self, executor: ThreadPoolExecutor, window_index: int,
                    window: List[Track], destination: CatalogProvider) -> List[MatchResult]:
        if self.metrics is not None:
            self.metrics.start_window(window_index, len(window))
        try:
            futures = [executor.submit(self.matcher.match, track, destination) for track in window]
            wait(futures)

            window_results = []
            for track, future in zip(window, futures):
                try:
                    result = future.result()
                except Exception as e:
                    logger.error(f"Unexpected error matching '{track.title}' by '{track.artist}': {e}")
                    result = MatchResult(source=track, destination=None,
                                         match_type=MatchType.NONE, error=str(e))
                window_results.append(result)
                if self.metrics is not None:
                    self.metrics.record_match(result.match_type.value, had_error=bool(result.error))
            return window_results
        finally:
            if self.metrics is not None:
                self.metrics.end_window()
