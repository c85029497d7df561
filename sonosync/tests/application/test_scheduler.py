import threading
import time
from unittest.mock import Mock

import pytest

from sonosync.application.matching import TrackMatcher
from sonosync.application.scheduler import BatchScheduler, iter_windows
from sonosync.crosscutting.metrics import MetricsCollector
from sonosync.domain.entities import MatchResult, MatchType
from sonosync.domain.errors import TransferCancelled
from sonosync.tests.fakes import FakeCatalogProvider, make_track


def test_iter_windows():
    """Test splitting tracks into windows."""
    assert list(iter_windows([1, 2, 3, 4, 5, 6, 7], 3)) == [[1, 2, 3], [4, 5, 6], [7]]
    assert list(iter_windows([], 5)) == []
    with pytest.raises(ValueError):
        list(iter_windows([1], 0))


class TestBatchScheduler:
    """Tests for windowed concurrent matching."""

    def setup_method(self):
        """Set up test fixtures."""
        self.tracks = [make_track(f"s{i}", title=f"Song {i}", artist="Band") for i in range(12)]
        answers = {f'track:"Song {i}" artist:"Band"': make_track(f"d{i}", title=f"Song {i}", artist="Band")
                   for i in range(12) if i % 3 != 0}
        self.destination = FakeCatalogProvider(query_answers=answers)

    def test_results_in_input_order_one_per_track(self):
        """Test that there is one result per track in input order."""
        scheduler = BatchScheduler(TrackMatcher(), window_size=5)

        results = scheduler.match_all(self.tracks, self.destination)

        assert [r.source.id for r in results] == [t.id for t in self.tracks]
        matched = [r.source.id for r in results if r.matched]
        assert matched == [f"s{i}" for i in range(12) if i % 3 != 0]

    def test_order_preserved_when_completion_order_differs(self):
        """Test that order is preserved when completion order differs."""
        matcher = Mock()

        def slow_first(track, destination):
            # Earlier tracks in a window finish last
            time.sleep(0.01 * (5 - int(track.id[1:]) % 5))
            return MatchResult(source=track)

        matcher.match.side_effect = slow_first
        scheduler = BatchScheduler(matcher, window_size=5)

        results = scheduler.match_all(self.tracks, self.destination)

        assert [r.source.id for r in results] == [t.id for t in self.tracks]

    def test_never_more_than_window_size_in_flight(self):
        """Test that no more than window_size searches run at once."""
        lock = threading.Lock()
        state = {"active": 0, "peak": 0}
        matcher = Mock()

        def tracked(track, destination):
            with lock:
                state["active"] += 1
                state["peak"] = max(state["peak"], state["active"])
            time.sleep(0.005)
            with lock:
                state["active"] -= 1
            return MatchResult(source=track)

        matcher.match.side_effect = tracked
        BatchScheduler(matcher, window_size=3).match_all(self.tracks, self.destination)

        assert state["peak"] <= 3

    def test_unexpected_exception_becomes_none_result(self):
        """Test that an unexpected exception becomes an unmatched result."""
        matcher = Mock()

        def explode_on_s1(track, destination):
            if track.id == "s1":
                raise RuntimeError("boom")
            return MatchResult(source=track)

        matcher.match.side_effect = explode_on_s1
        results = BatchScheduler(matcher, window_size=5).match_all(self.tracks, self.destination)

        assert len(results) == 12
        assert results[1].match_type is MatchType.NONE
        assert results[1].error == "boom"

    def test_empty_track_list(self):
        """Test matching an empty track list."""
        assert BatchScheduler(TrackMatcher()).match_all([], self.destination) == []

    def test_cancel_before_first_window(self):
        """Test cancellation before the first window."""
        cancel = threading.Event()
        cancel.set()

        with pytest.raises(TransferCancelled):
            BatchScheduler(TrackMatcher()).match_all(self.tracks, self.destination, cancel_event=cancel)
        assert self.destination.search_calls == []

    def test_cancel_between_windows(self):
        """Test cancellation between matching windows."""
        cancel = threading.Event()
        matcher = Mock()

        def cancel_after_first_window(track, destination):
            if track.id == "s4":
                cancel.set()
            return MatchResult(source=track)

        matcher.match.side_effect = cancel_after_first_window

        with pytest.raises(TransferCancelled):
            BatchScheduler(matcher, window_size=5).match_all(self.tracks, self.destination,
                                                              cancel_event=cancel)
        assert matcher.match.call_count == 5

    def test_records_window_metrics(self):
        """Test that window metrics are recorded."""
        metrics = MetricsCollector("t1", "spotify", "deezer")
        metrics.start_transfer(len(self.tracks))

        BatchScheduler(TrackMatcher(), window_size=5, metrics=metrics).match_all(self.tracks, self.destination)

        m = metrics.get_metrics()
        assert m.total_windows == 3
        assert m.total_matched == 8
        assert m.total_not_found == 4

    def test_invalid_window_size(self):
        """Test that an invalid window size is rejected."""
        with pytest.raises(ValueError):
            BatchScheduler(TrackMatcher(), window_size=0)
