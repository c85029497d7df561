from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional

from sonosync.domain.entities import MatchResult, MatchType, Track
from sonosync.domain.errors import ProviderError, Stage
from sonosync.domain.normalization import artists_overlap, titles_equal_ignoring_case
from sonosync.domain.ports import CatalogProvider


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SearchOutcome:
    """Result of a single search attempt: a hit, an empty result, or an error."""

    track: Optional[Track] = None
    error: Optional[ProviderError] = None

    @property
    def found(self) -> bool:
        return self.error is None and self.track is not None


def attempt_search(provider: CatalogProvider, query: str,
                   isrc: Optional[str] = None) -> SearchOutcome:
    """Run one provider search, capturing any failure as a ProviderError value."""
    try:
        return SearchOutcome(track=provider.search_track(query, isrc=isrc))
    except ProviderError as e:
        return SearchOutcome(error=e)
    except Exception as e:
        logger.exception(f"Unexpected {type(e).__name__} from search_track")
        return SearchOutcome(error=ProviderError(provider.platform, Stage.SEARCH, str(e)))


def build_metadata_queries(track: Track, field_syntax: bool = True) -> List[str]:
    """Free-text query formulations, most specific first.

    The `track:"..." artist:"..."` form is only used for catalogs whose
    search understands field filters.
    """
    queries: List[str] = []
    if field_syntax and track.title and track.primary_artist:
        queries.append(f'track:"{track.title}" artist:"{track.primary_artist}"')
    plain = f"{track.artist} {track.title}".strip()
    if plain and plain not in queries:
        queries.append(plain)
    return queries


class TrackMatcher:
    """Resolves one source track to at most one destination track.

    Tiers, first hit wins:
    1. ISRC lookup, when the source track carries an ISRC
    2. Metadata search over each query formulation in turn; the first hit is
       tagged strict when its title equals the source title ignoring case,
       fuzzy otherwise
    3. No match

    A search that raises any error counts as an empty result for that
    attempt; match() itself never raises ProviderError.
    """

    def __init__(self, require_artist_overlap: bool = False):
        """Initialize the matcher.

        Args:
            require_artist_overlap: Reject fuzzy hits whose artists share no
                normalized token with the source artists
        """
        self.require_artist_overlap = require_artist_overlap

    def match(self, source_track: Track, destination: CatalogProvider) -> MatchResult:
        last_error: Optional[ProviderError] = None

        if source_track.isrc:
            outcome = attempt_search(destination, "", isrc=source_track.isrc)
            if outcome.found:
                return MatchResult(source=source_track, destination=outcome.track,
                                   match_type=MatchType.ISRC)
            if outcome.error is not None:
                last_error = outcome.error
                self._log_absorbed(source_track, "isrc", outcome.error)

        field_syntax = getattr(destination, "supports_field_search", False)
        for query in build_metadata_queries(source_track, field_syntax=field_syntax):
            outcome = attempt_search(destination, query)
            if outcome.error is not None:
                last_error = outcome.error
                self._log_absorbed(source_track, query, outcome.error)
                continue
            if outcome.track is None:
                continue

            candidate = outcome.track
            if titles_equal_ignoring_case(candidate.title, source_track.title):
                return MatchResult(source=source_track, destination=candidate,
                                   match_type=MatchType.STRICT)
            if self.require_artist_overlap and not artists_overlap(
                    source_track.artists, candidate.artists):
                logger.debug(f"Rejected fuzzy candidate '{candidate.title}' by "
                             f"'{candidate.artist}' for '{source_track.title}'")
                continue
            return MatchResult(source=source_track, destination=candidate,
                               match_type=MatchType.FUZZY)

        return MatchResult(
            source=source_track,
            destination=None,
            match_type=MatchType.NONE,
            error=str(last_error) if last_error else None,
        )

    def _log_absorbed(self, track: Track, attempt: str, error: ProviderError) -> None:
        logger.warning(f"Search failed for '{track.title}' ({attempt}), "
                       f"treating as no result: {error}")


def summarize_matches(results: Iterable[MatchResult]) -> Dict[str, object]:
    """Get counts by match type and the overall match rate."""
    by_type = {t.value: 0 for t in MatchType}
    total = 0
    errors = 0
    for result in results:
        total += 1
        by_type[result.match_type.value] += 1
        if result.error and not result.matched:
            errors += 1

    matched = total - by_type[MatchType.NONE.value]
    return {
        "total": total,
        "matched": matched,
        "not_found": by_type[MatchType.NONE.value],
        "search_errors": errors,
        "match_rate": matched / total if total else 0.0,
        "by_type": by_type,
    }
