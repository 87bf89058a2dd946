"""Append-only JSON-lines store for scan quality telemetry."""

from __future__ import annotations

import json
import logging
import os
import tempfile
import threading
from collections.abc import Iterable
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from pathlib import Path

from .candidates import names_match
from .constants import QUALITY_LOG_PATH, QUALITY_RETENTION_DAYS
from .models import Outcome, ScanQualityEntry
from .quality import generate_csv_report, generate_report

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OutcomeUpdate:
    """Outcome to record for a candidate of a given scan, matched by service name.

    Fields left as None keep the value already stored on the entry.
    """

    service_name: str
    outcome: Outcome
    resulting_status: str | None = None
    was_reactivation: bool | None = None


class QualityLog:
    """JSON-lines repository of ScanQualityEntry records.

    Appends from concurrent scans in the same process are serialized with a
    lock. Unreadable lines are skipped on read.
    """

    def __init__(self, path: Path | None = None) -> None:
        self.path = Path(path or QUALITY_LOG_PATH)
        self._lock = threading.Lock()

    # --- write ---

    def append(self, entry: ScanQualityEntry) -> None:
        self.append_batch([entry])

    def append_batch(self, entries: Iterable[ScanQualityEntry]) -> None:
        lines = "".join(json.dumps(e.to_dict()) + "\n" for e in entries)
        if not lines:
            return
        with self._lock:
            self.path.parent.mkdir(parents=True, exist_ok=True)
            with open(self.path, "a", encoding="utf-8") as f:
                f.write(lines)

    # --- read ---

    def all_entries(self) -> list[ScanQualityEntry]:
        if not self.path.exists():
            return []

        entries: list[ScanQualityEntry] = []
        with open(self.path, encoding="utf-8") as f:
            for lineno, line in enumerate(f, start=1):
                line = line.strip()
                if not line:
                    continue
                try:
                    entries.append(ScanQualityEntry.from_dict(json.loads(line)))
                except (json.JSONDecodeError, KeyError, TypeError, ValueError) as exc:
                    logger.warning("Skipping unreadable quality log line %d: %s", lineno, exc)
        return entries

    def read_range(self, start: datetime, end: datetime) -> list[ScanQualityEntry]:
        """Entries with start <= timestamp < end."""
        return [e for e in self.all_entries() if start <= e.timestamp < end]

    # --- update ---

    def patch_outcome(self, scan_id: str, outcomes: list[OutcomeUpdate]) -> int:
        """Record outcomes for entries of *scan_id*. Returns the number patched."""
        if not outcomes:
            return 0

        with self._lock:
            entries = self.all_entries()
            patched = 0
            for entry in entries:
                if entry.scan_id != scan_id:
                    continue
                match = next(
                    (u for u in outcomes if names_match(u.service_name, entry.service_name)),
                    None,
                )
                if match is None:
                    continue
                entry.outcome = match.outcome
                if match.resulting_status is not None:
                    entry.resulting_status = match.resulting_status
                if match.was_reactivation is not None:
                    entry.was_reactivation = match.was_reactivation
                patched += 1

            if patched:
                self._rewrite(entries)
        return patched

    def purge_older_than(self, cutoff: datetime | None = None) -> int:
        """Drop entries older than *cutoff* (default: the retention window). Returns the number removed."""
        if cutoff is None:
            cutoff = datetime.now(timezone.utc) - timedelta(days=QUALITY_RETENTION_DAYS)
        with self._lock:
            entries = self.all_entries()
            kept = [e for e in entries if e.timestamp >= cutoff]
            if len(kept) != len(entries):
                self._rewrite(kept)
        return len(entries) - len(kept)

    # --- export ---

    def export_json(self, start: datetime, end: datetime) -> str:
        report = generate_report(self.read_range(start, end), start, end)
        return json.dumps(report, indent=2, sort_keys=True)

    def export_csv(self, start: datetime, end: datetime) -> str:
        return generate_csv_report(self.read_range(start, end), start, end)

    # --- helpers ---

    def _rewrite(self, entries: list[ScanQualityEntry]) -> None:
        """Atomically replace the log file with *entries*."""
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=self.path.parent, suffix=".tmp")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                for entry in entries:
                    f.write(json.dumps(entry.to_dict()) + "\n")
            os.replace(tmp_name, self.path)
        except BaseException:
            os.unlink(tmp_name)
            raise
