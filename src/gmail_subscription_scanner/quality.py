"""Weekly quality metrics, alerts and PII-free reports over scan telemetry."""

from __future__ import annotations

import csv
import io
from collections.abc import Iterable
from datetime import datetime, timedelta

from .constants import (
    CANCEL_PRECISION_THRESHOLD,
    FALSE_POSITIVE_THRESHOLD,
    UNKNOWN_RATE_THRESHOLD,
)
from .models import (
    AlertType,
    ChargeType,
    Outcome,
    QualityAlert,
    ScanQualityEntry,
    SubscriptionStatus,
    WeeklyQualityMetrics,
)

WEEK = timedelta(days=7)

_ACCEPTED = (Outcome.SELECTED, Outcome.AUTO_APPLIED)
_REJECTED = (Outcome.IGNORED, Outcome.AUTO_SKIPPED)

CSV_FIELDS = [
    "scan_id",
    "timestamp",
    "service_name",
    "predicted_charge_type",
    "predicted_status",
    "ai_confidence",
    "lifecycle_confidence",
    "has_cancel_subject",
    "has_cancel_snippet",
    "has_cancel_body",
    "has_billing_signal",
    "was_existing",
    "outcome",
    "resulting_status",
    "was_reactivation",
]


def start_of_day(moment: datetime) -> datetime:
    """Midnight of *moment*'s calendar day, in *moment*'s own timezone."""
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def _in_window(entries: Iterable[ScanQualityEntry], start: datetime, end: datetime) -> list[ScanQualityEntry]:
    return [e for e in entries if start <= e.timestamp < end]


def _is_unknown_type(entry: ScanQualityEntry) -> bool:
    return entry.predicted_charge_type is ChargeType.UNKNOWN


def _is_unknown_status(entry: ScanQualityEntry) -> bool:
    # Recurring with no lifecycle confidence; disjoint from _is_unknown_type.
    return (
        entry.predicted_charge_type is ChargeType.RECURRING_SUBSCRIPTION
        and entry.lifecycle_confidence is None
    )


def _is_body_only_cancel(entry: ScanQualityEntry) -> bool:
    return (
        entry.has_cancel_signal_body
        and not entry.has_cancel_signal_subject
        and not entry.has_cancel_signal_snippet
    )


def _aggregate(entries: list[ScanQualityEntry], start: datetime, end: datetime) -> WeeklyQualityMetrics:
    cancel_predictions = [e for e in entries if e.predicted_status is SubscriptionStatus.CANCELED]
    return WeeklyQualityMetrics(
        period_start=start,
        period_end=end,
        total_candidates=len(entries),
        cancel_predictions=len(cancel_predictions),
        cancel_selected=sum(1 for e in cancel_predictions if e.outcome in _ACCEPTED),
        cancel_ignored=sum(1 for e in cancel_predictions if e.outcome in _REJECTED),
        reactivations=sum(1 for e in entries if e.was_reactivation is True),
        unknown_status_count=sum(1 for e in entries if _is_unknown_status(e)),
        unknown_type_count=sum(1 for e in entries if _is_unknown_type(e)),
        body_only_cancel_count=sum(1 for e in entries if _is_body_only_cancel(e)),
    )


def compute_weekly_metrics(
    entries: Iterable[ScanQualityEntry],
    week_of: datetime,
) -> WeeklyQualityMetrics:
    """Aggregate the entries logged in the seven days starting at *week_of*'s midnight."""
    week_start = start_of_day(week_of)
    week_end = week_start + WEEK
    return _aggregate(_in_window(entries, week_start, week_end), week_start, week_end)


def check_alerts(metrics: WeeklyQualityMetrics) -> list[QualityAlert]:
    """Return the threshold alerts raised by one week of metrics."""
    alerts: list[QualityAlert] = []

    if metrics.cancel_outcomes > 0 and metrics.cancel_precision_proxy < CANCEL_PRECISION_THRESHOLD:
        alerts.append(
            QualityAlert(
                type=AlertType.PRECISION_DROP,
                message=(
                    f"Cancel precision proxy {metrics.cancel_precision_proxy:.2f} "
                    f"< threshold {CANCEL_PRECISION_THRESHOLD:.2f}"
                ),
                metric=metrics.cancel_precision_proxy,
                threshold=CANCEL_PRECISION_THRESHOLD,
            )
        )

    if metrics.total_candidates > 0 and metrics.false_positive_proxy > FALSE_POSITIVE_THRESHOLD:
        alerts.append(
            QualityAlert(
                type=AlertType.FALSE_POSITIVE_SPIKE,
                message=(
                    f"False positive proxy {metrics.false_positive_proxy:.2f} "
                    f"> threshold {FALSE_POSITIVE_THRESHOLD:.2f}"
                ),
                metric=metrics.false_positive_proxy,
                threshold=FALSE_POSITIVE_THRESHOLD,
            )
        )

    if metrics.total_candidates > 0 and metrics.unknown_rate > UNKNOWN_RATE_THRESHOLD:
        alerts.append(
            QualityAlert(
                type=AlertType.UNKNOWN_SPIKE,
                message=(
                    f"Unknown rate {metrics.unknown_rate:.2f} "
                    f"> threshold {UNKNOWN_RATE_THRESHOLD:.2f}"
                ),
                metric=metrics.unknown_rate,
                threshold=UNKNOWN_RATE_THRESHOLD,
            )
        )

    return alerts


def weekly_metrics_between(
    entries: Iterable[ScanQualityEntry],
    start: datetime,
    end: datetime,
) -> list[WeeklyQualityMetrics]:
    """Metrics for each non-empty week from *start*'s midnight up to *end*."""
    filtered = _in_window(entries, start, end)
    weeks: list[WeeklyQualityMetrics] = []
    week_start = start_of_day(start)
    while week_start < end:
        metrics = compute_weekly_metrics(filtered, week_start)
        if metrics.total_candidates > 0:
            weeks.append(metrics)
        week_start += WEEK
    return weeks


def generate_report(
    entries: Iterable[ScanQualityEntry],
    start: datetime,
    end: datetime,
) -> dict:
    """Build the exportable aggregate report for [start, end).

    Only counts, ratios, alerts and per-scan candidate counts are included;
    service names and any email content stay out of the report.
    """
    filtered = _in_window(entries, start, end)
    totals = _aggregate(filtered, start, end)

    scan_starts: dict[str, datetime] = {}
    scan_counts: dict[str, int] = {}
    for entry in filtered:
        earliest = scan_starts.get(entry.scan_id)
        if earliest is None or entry.timestamp < earliest:
            scan_starts[entry.scan_id] = entry.timestamp
        scan_counts[entry.scan_id] = scan_counts.get(entry.scan_id, 0) + 1

    scans = sorted(
        (
            {
                "scan_id": scan_id,
                "timestamp": scan_starts[scan_id].date().isoformat(),
                "candidate_count": count,
            }
            for scan_id, count in scan_counts.items()
        ),
        key=lambda s: s["timestamp"],
    )

    alerts = [
        {
            "type": alert.type.value,
            "message": alert.message,
            "metric": alert.metric,
            "threshold": alert.threshold,
        }
        for week in weekly_metrics_between(filtered, start, end)
        for alert in check_alerts(week)
    ]

    return {
        "period": {
            "start": start.date().isoformat(),
            "end": end.date().isoformat(),
        },
        "total_candidates": totals.total_candidates,
        "metrics": {
            "cancel_predictions": totals.cancel_predictions,
            "cancel_selected": totals.cancel_selected,
            "cancel_ignored": totals.cancel_ignored,
            "cancel_precision_proxy": round(totals.cancel_precision_proxy, 2),
            "false_positive_proxy": round(totals.false_positive_proxy, 2),
            "reactivations": totals.reactivations,
            "unknown_status_count": totals.unknown_status_count,
            "unknown_type_count": totals.unknown_type_count,
            "unknown_rate": round(totals.unknown_rate, 2),
            "body_only_cancel_count": totals.body_only_cancel_count,
        },
        "alerts": alerts,
        "scan_count": len(scan_counts),
        "scans": scans,
    }


def _flag(value: bool | None) -> str:
    if value is None:
        return ""
    return "true" if value else "false"


def generate_csv_report(
    entries: Iterable[ScanQualityEntry],
    start: datetime,
    end: datetime,
) -> str:
    """One CSV row per entry in [start, end), oldest first."""
    buffer = io.StringIO()
    writer = csv.DictWriter(buffer, fieldnames=CSV_FIELDS, lineterminator="\n")
    writer.writeheader()

    for entry in sorted(_in_window(entries, start, end), key=lambda e: e.timestamp):
        writer.writerow(
            {
                "scan_id": entry.scan_id,
                "timestamp": entry.timestamp.isoformat(),
                "service_name": entry.service_name,
                "predicted_charge_type": entry.predicted_charge_type.value,
                "predicted_status": entry.predicted_status.value,
                "ai_confidence": f"{entry.ai_confidence:.2f}",
                "lifecycle_confidence": (
                    f"{entry.lifecycle_confidence:.2f}"
                    if entry.lifecycle_confidence is not None
                    else ""
                ),
                "has_cancel_subject": _flag(entry.has_cancel_signal_subject),
                "has_cancel_snippet": _flag(entry.has_cancel_signal_snippet),
                "has_cancel_body": _flag(entry.has_cancel_signal_body),
                "has_billing_signal": _flag(entry.has_billing_signal),
                "was_existing": _flag(entry.was_existing_subscription),
                "outcome": entry.outcome.value if entry.outcome else "",
                "resulting_status": entry.resulting_status or "",
                "was_reactivation": _flag(entry.was_reactivation),
            }
        )

    return buffer.getvalue()
