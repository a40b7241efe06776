"""Import run report."""

from __future__ import annotations

from datetime import datetime, timezone
from typing import TYPE_CHECKING, Any

from transit_sync.services.gtfs_static.loader import TableCounts

if TYPE_CHECKING:
    from collections.abc import Sequence

MAX_REPORT_WARNINGS = 100


class ImportReport:
    """Collects import metrics and warnings across steps, replayed ones included."""

    def __init__(self, run_id: str, source: str) -> None:
        self.run_id = run_id
        self.source = source
        self.feed_hash: str | None = None
        self.feed_version_id: int | None = None
        self.version_label: str | None = None
        self.skipped_unchanged = False
        self.started_at = datetime.now(timezone.utc)
        self.ended_at: datetime | None = None
        self.duration_ms: int | None = None
        self.counts: dict[str, TableCounts] = {}
        self.parent_links = {"resolved": 0, "unresolved": 0}
        self.activation: dict[str, Any] = {}
        self.warnings: list[str] = []

    def add_table(
        self, table: str, counts: dict[str, int], warnings: Sequence[str] = ()
    ) -> None:
        self.counts.setdefault(table, TableCounts()).add(counts)
        for warning in warnings:
            if len(self.warnings) >= MAX_REPORT_WARNINGS:
                break
            self.warnings.append(warning)

    def finish(self) -> None:
        self.ended_at = datetime.now(timezone.utc)
        self.duration_ms = int((self.ended_at - self.started_at).total_seconds() * 1000)

    def totals(self) -> TableCounts:
        total = TableCounts()
        for counts in self.counts.values():
            total.add(counts)
        return total

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": self.run_id,
            "source": self.source,
            "feed_hash": self.feed_hash,
            "feed_version_id": self.feed_version_id,
            "version_label": self.version_label,
            "skipped_unchanged": self.skipped_unchanged,
            "started_at": self.started_at.isoformat(),
            "ended_at": self.ended_at.isoformat() if self.ended_at else None,
            "duration_ms": self.duration_ms,
            "counts": {table: counts.as_dict() for table, counts in self.counts.items()},
            "parent_links": dict(self.parent_links),
            "activation": self.activation,
            "warnings": self.warnings[:MAX_REPORT_WARNINGS],
        }
