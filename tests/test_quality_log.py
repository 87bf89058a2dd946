"""Tests for the JSON-lines quality log."""

import json
from datetime import datetime, timedelta, timezone

from gmail_subscription_scanner.models import ChargeType, Outcome, SubscriptionStatus
from gmail_subscription_scanner.quality import compute_weekly_metrics
from gmail_subscription_scanner.quality_log import OutcomeUpdate, QualityLog

from conftest import day, make_entry


def test_read_missing_file(quality_log):
    assert quality_log.all_entries() == []


def test_append_and_read_back(quality_log):
    entry = make_entry(
        predicted_charge_type=ChargeType.USAGE_TOPUP,
        predicted_status=SubscriptionStatus.CANCELED,
        lifecycle_confidence=None,
        has_cancel_signal_body=True,
    )
    quality_log.append(entry)
    assert quality_log.all_entries() == [entry]


def test_log_is_json_lines_with_snake_case_keys(quality_log):
    quality_log.append_batch([make_entry(service_name="A"), make_entry(service_name="B")])
    lines = quality_log.path.read_text().splitlines()
    assert len(lines) == 2
    record = json.loads(lines[0])
    assert record["service_name"] == "A"
    assert record["predicted_charge_type"] == "recurring_subscription"
    assert record["timestamp"] == "2025-03-01T09:00:00+00:00"


def test_append_creates_parent_directory(tmp_path):
    log = QualityLog(tmp_path / "nested" / "dir" / "log.jsonl")
    log.append(make_entry())
    assert len(log.all_entries()) == 1


def test_unreadable_lines_are_skipped(quality_log):
    quality_log.append(make_entry(service_name="Good"))
    with open(quality_log.path, "a") as f:
        f.write("{not json\n")
        f.write(json.dumps({"scan_id": "x"}) + "\n")
        f.write("\n")
    quality_log.append(make_entry(service_name="Also good"))
    assert [e.service_name for e in quality_log.all_entries()] == ["Good", "Also good"]


def test_read_range_is_half_open(quality_log):
    quality_log.append_batch([make_entry(timestamp=day(n), service_name=str(n)) for n in range(5)])
    assert [e.service_name for e in quality_log.read_range(day(1), day(3))] == ["1", "2"]


def test_patch_outcome_matches_scan_and_name(quality_log):
    quality_log.append_batch(
        [
            make_entry(scan_id="s1", service_name="Netflix"),
            make_entry(scan_id="s1", service_name="Spotify"),
            make_entry(scan_id="s2", service_name="Netflix"),
        ]
    )
    patched = quality_log.patch_outcome(
        "s1",
        [OutcomeUpdate("netflix inc", Outcome.SELECTED, resulting_status="canceled", was_reactivation=False)],
    )
    assert patched == 1

    entries = quality_log.all_entries()
    assert entries[0].outcome is Outcome.SELECTED
    assert entries[0].resulting_status == "canceled"
    assert entries[0].was_reactivation is False
    assert entries[1].outcome is None
    assert entries[2].outcome is None


def test_patch_outcome_keeps_logged_reactivation(quality_log):
    quality_log.append(make_entry(scan_id="scan-1", service_name="Spotify", was_reactivation=True))

    quality_log.patch_outcome("scan-1", [OutcomeUpdate("Spotify", Outcome.SELECTED)])

    [entry] = quality_log.all_entries()
    assert entry.outcome is Outcome.SELECTED
    assert entry.was_reactivation is True
    assert compute_weekly_metrics([entry], day(0)).reactivations == 1


def test_patch_outcome_can_override_reactivation(quality_log):
    quality_log.append(make_entry(scan_id="scan-1", service_name="Spotify", was_reactivation=True))
    quality_log.patch_outcome("scan-1", [OutcomeUpdate("Spotify", Outcome.IGNORED, was_reactivation=False)])
    assert quality_log.all_entries()[0].was_reactivation is False


def test_patch_outcome_without_match_leaves_file(quality_log):
    quality_log.append(make_entry(scan_id="s1"))
    before = quality_log.path.read_text()
    assert quality_log.patch_outcome("other", [OutcomeUpdate("Netflix", Outcome.IGNORED)]) == 0
    assert quality_log.patch_outcome("s1", []) == 0
    assert quality_log.path.read_text() == before


def test_purge_older_than(quality_log):
    quality_log.append_batch([make_entry(timestamp=day(n), service_name=str(n)) for n in range(4)])
    removed = quality_log.purge_older_than(day(2))
    assert removed == 2
    assert [e.service_name for e in quality_log.all_entries()] == ["2", "3"]
    assert not list(quality_log.path.parent.glob("*.tmp"))


def test_purge_default_retention(quality_log):
    now = datetime.now(timezone.utc)
    quality_log.append_batch(
        [
            make_entry(timestamp=now - timedelta(days=120), service_name="old"),
            make_entry(timestamp=now - timedelta(days=10), service_name="recent"),
        ]
    )
    assert quality_log.purge_older_than() == 1
    assert [e.service_name for e in quality_log.all_entries()] == ["recent"]


def test_export_json_and_csv(quality_log):
    quality_log.append_batch(
        [
            make_entry(timestamp=day(1), service_name="Netflix"),
            make_entry(timestamp=day(20), service_name="Later"),
        ]
    )
    report = json.loads(quality_log.export_json(day(0), day(7)))
    assert report["total_candidates"] == 1
    assert "Netflix" not in json.dumps(report)

    csv_text = quality_log.export_csv(day(0), day(7))
    assert csv_text.splitlines()[0].startswith("scan_id,timestamp,service_name")
    assert len(csv_text.splitlines()) == 2
