import json
import os
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from sonosync.application.matching import summarize_matches
from sonosync.domain.entities import MatchResult, TransferReport


@dataclass
class ReportHeader:
    """Header information for a transfer report."""

    transfer_id: str
    started_at: datetime
    finished_at: Optional[datetime] = None
    source: str = ""
    destination: str = ""
    source_playlist_id: str = ""
    dry_run: bool = False

    def to_json(self) -> Dict[str, Any]:
        return {
            "transferId": self.transfer_id,
            "startedAt": self.started_at.isoformat(),
            "finishedAt": self.finished_at.isoformat() if self.finished_at else None,
            "source": self.source,
            "destination": self.destination,
            "sourcePlaylistId": self.source_playlist_id,
            "dryRun": self.dry_run,
        }

    @classmethod
    def from_json(cls, data: Dict[str, Any]) -> "ReportHeader":
        return cls(
            transfer_id=data["transferId"],
            started_at=datetime.fromisoformat(data["startedAt"]),
            finished_at=datetime.fromisoformat(data["finishedAt"]) if data.get("finishedAt") else None,
            source=data.get("source", ""),
            destination=data.get("destination", ""),
            source_playlist_id=data.get("sourcePlaylistId", ""),
            dry_run=data.get("dryRun", False),
        )


@dataclass
class Report:
    """Complete transfer report document."""

    header: ReportHeader
    outcome: Optional[TransferReport] = None
    tracks: List[MatchResult] = field(default_factory=list)
    metrics: Dict[str, Any] = field(default_factory=dict)
    error: Optional[str] = None

    def to_json(self) -> Dict[str, Any]:
        return {
            "header": self.header.to_json(),
            "outcome": self.outcome.to_json() if self.outcome else None,
            "summary": summarize_matches(self.tracks),
            "tracks": [t.to_json() for t in self.tracks],
            "metrics": self.metrics,
            "error": self.error,
        }


def create_report_header(transfer_id: str, source: str, destination: str,
                         source_playlist_id: str, dry_run: bool = False) -> ReportHeader:
    return ReportHeader(
        transfer_id=transfer_id,
        started_at=datetime.now(timezone.utc),
        source=source,
        destination=destination,
        source_playlist_id=source_playlist_id,
        dry_run=dry_run,
    )


def create_report(header: ReportHeader,
                  outcome: Optional[TransferReport],
                  tracks: List[MatchResult],
                  metrics: Optional[Dict[str, Any]] = None,
                  error: Optional[str] = None) -> Report:
    """Create a finished report."""
    if header.finished_at is None:
        header.finished_at = datetime.now(timezone.utc)
    return Report(
        header=header,
        outcome=outcome,
        tracks=list(tracks),
        metrics=dict(metrics or {}),
        error=error,
    )


def save_report(report: Report, report_dir: str) -> str:
    """Write the report as JSON and return the file path."""
    os.makedirs(report_dir, exist_ok=True)
    report_file = os.path.join(report_dir, f"transfer_report_{report.header.transfer_id}.json")
    with open(report_file, 'w') as f:
        json.dump(report.to_json(), f, indent=2, ensure_ascii=False)
    return report_file
