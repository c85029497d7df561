import threading
from dataclasses import asdict, dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional


@dataclass
class WindowMetrics:
    """Metrics for a single matching window."""
    window_index: int
    track_count: int
    isrc_count: int = 0
    strict_count: int = 0
    fuzzy_count: int = 0
    not_found_count: int = 0
    error_count: int = 0
    duration_ms: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None

    @property
    def matched_count(self) -> int:
        return self.isrc_count + self.strict_count + self.fuzzy_count

    @property
    def match_rate(self) -> float:
        """Calculate match rate for this window."""
        if self.track_count == 0:
            return 0.0
        return self.matched_count / self.track_count


@dataclass
class ChunkMetrics:
    """Metrics for a single playlist append call."""
    chunk_index: int
    track_count: int
    committed: bool
    duration_ms: int
    written: int = 0


@dataclass
class TransferMetrics:
    """Aggregated metrics for one transfer."""
    transfer_id: str
    source_platform: str
    destination_platform: str
    total_tracks: int = 0
    total_windows: int = 0
    total_matched: int = 0
    total_not_found: int = 0
    total_search_errors: int = 0
    total_chunks: int = 0
    committed_tracks: int = 0
    duration_ms: int = 0
    start_time: Optional[datetime] = None
    end_time: Optional[datetime] = None
    windows: List[WindowMetrics] = field(default_factory=list)
    chunks: List[ChunkMetrics] = field(default_factory=list)

    @property
    def match_rate(self) -> float:
        if self.total_tracks == 0:
            return 0.0
        return self.total_matched / self.total_tracks

    @property
    def average_window_duration_ms(self) -> float:
        if self.total_windows == 0:
            return 0.0
        return sum(w.duration_ms for w in self.windows) / self.total_windows


class MetricsCollector:
    """Collects metrics for the transfer pipeline.

    Match outcomes may be recorded from worker threads, so every mutation
    happens under a lock.
    """

    def __init__(self, transfer_id: str, source_platform: str, destination_platform: str):
        self.metrics = TransferMetrics(
            transfer_id=transfer_id,
            source_platform=source_platform,
            destination_platform=destination_platform,
        )
        self._lock = threading.Lock()
        self._current_window: Optional[WindowMetrics] = None

    def start_transfer(self, total_tracks: int) -> None:
        with self._lock:
            self.metrics.start_time = datetime.now()
            self.metrics.total_tracks = total_tracks

    def end_transfer(self) -> None:
        with self._lock:
            self.metrics.end_time = datetime.now()
            if self.metrics.start_time:
                self.metrics.duration_ms = _elapsed_ms(self.metrics.start_time, self.metrics.end_time)

    def start_window(self, window_index: int, track_count: int) -> None:
        with self._lock:
            self._current_window = WindowMetrics(
                window_index=window_index,
                track_count=track_count,
                start_time=datetime.now(),
            )

    def end_window(self) -> None:
        with self._lock:
            window = self._current_window
            if window is None:
                return
            window.end_time = datetime.now()
            window.duration_ms = _elapsed_ms(window.start_time, window.end_time)
            self.metrics.windows.append(window)
            self.metrics.total_windows += 1
            self.metrics.total_matched += window.matched_count
            self.metrics.total_not_found += window.not_found_count
            self.metrics.total_search_errors += window.error_count
            self._current_window = None

    def record_match(self, match_type: str, had_error: bool = False) -> None:
        """Record one match outcome in the current window."""
        with self._lock:
            window = self._current_window
            if window is None:
                return
            if match_type == "isrc":
                window.isrc_count += 1
            elif match_type == "strict":
                window.strict_count += 1
            elif match_type == "fuzzy":
                window.fuzzy_count += 1
            else:
                window.not_found_count += 1
            if had_error:
                window.error_count += 1

    def record_chunk(self, chunk_index: int, track_count: int, committed: bool,
                     duration_ms: int, written: int = 0) -> None:
        """Record one append call; `written` counts items a failed call still added."""
        with self._lock:
            self.metrics.chunks.append(ChunkMetrics(
                chunk_index=chunk_index,
                track_count=track_count,
                committed=committed,
                duration_ms=duration_ms,
                written=track_count if committed else written,
            ))
            self.metrics.total_chunks += 1
            self.metrics.committed_tracks += track_count if committed else written

    def get_metrics(self) -> TransferMetrics:
        with self._lock:
            return self.metrics

    def to_dict(self) -> Dict[str, Any]:
        """Convert metrics to a JSON-serializable dictionary."""
        with self._lock:
            data = asdict(self.metrics)
        data["match_rate"] = self.metrics.match_rate
        for key in ("start_time", "end_time"):
            if data[key]:
                data[key] = data[key].isoformat()
        for window in data["windows"]:
            for key in ("start_time", "end_time"):
                if window[key]:
                    window[key] = window[key].isoformat()
        return data


def _elapsed_ms(start: Optional[datetime], end: datetime) -> int:
    if start is None:
        return 0
    return int((end - start).total_seconds() * 1000)
