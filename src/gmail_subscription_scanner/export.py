"""Export scan candidates to CSV or JSON."""

import csv
import json

from .models import SubscriptionCandidate

FIELDNAMES = [
    "name",
    "cost",
    "billing_cycle",
    "category",
    "charge_type",
    "subscription_status",
    "status_effective_date",
    "renewal_date",
    "confidence",
    "cost_source",
    "is_estimated",
    "source_email_count",
    "is_selected",
    "evidence",
    "notes",
]


def candidate_to_row(candidate: SubscriptionCandidate) -> dict:
    """Flatten a candidate into JSON-compatible values."""
    return {
        "name": candidate.name,
        "cost": candidate.cost,
        "billing_cycle": candidate.billing_cycle.value,
        "category": candidate.category.value,
        "charge_type": candidate.charge_type.value,
        "subscription_status": candidate.subscription_status.value,
        "status_effective_date": (
            candidate.status_effective_date.isoformat() if candidate.status_effective_date else None
        ),
        "renewal_date": candidate.renewal_date.isoformat() if candidate.renewal_date else None,
        "confidence": round(candidate.confidence, 2),
        "cost_source": candidate.cost_source.value,
        "is_estimated": candidate.is_estimated,
        "source_email_count": candidate.source_email_count,
        "is_selected": candidate.is_selected,
        "evidence": candidate.evidence,
        "notes": candidate.notes,
    }


def export_candidates(
    candidates: list[SubscriptionCandidate],
    format: str,
    output_path: str,
    scan_id: str | None = None,
) -> None:
    """Write scan candidates to a file.

    Args:
        candidates: Candidates returned by a scan.
        format: Output format, either 'csv' or 'json'.
        output_path: Path to write the output file.
        scan_id: Identifier of the scan, included in JSON output so outcomes
            can be recorded against it later.
    """
    rows = [candidate_to_row(c) for c in candidates]

    if format == "csv":
        with open(output_path, "w", newline="") as f:
            writer = csv.DictWriter(f, fieldnames=FIELDNAMES)
            writer.writeheader()
            for row in rows:
                writer.writerow({k: "" if v is None else v for k, v in row.items()})
    elif format == "json":
        with open(output_path, "w") as f:
            json.dump({"scan_id": scan_id, "candidates": rows}, f, indent=2)
    else:
        raise ValueError(f"Unsupported export format: {format}")
