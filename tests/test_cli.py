"""Tests for the CLI module."""

import json
from datetime import datetime, timezone

import pytest
from click.testing import CliRunner

import gmail_subscription_scanner.cli as cli_module
from gmail_subscription_scanner.cli import cli
from gmail_subscription_scanner.models import Outcome
from gmail_subscription_scanner.quality_log import QualityLog

from conftest import FakeEnricher, FakeMailbox, make_entry


@pytest.fixture
def config_file(tmp_path, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    path = tmp_path / "config.toml"
    path.write_text(f'[enrichment]\napi_key = "sk-test"\n\n[quality]\nlog_path = "{tmp_path / "quality.jsonl"}"\n')
    return path


@pytest.fixture
def log(tmp_path) -> QualityLog:
    return QualityLog(tmp_path / "quality.jsonl")


def test_cli_help():
    """CLI --help should work and show commands."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])
    assert result.exit_code == 0
    assert "scan" in result.output
    assert "auth" in result.output
    assert "quality" in result.output


def test_cli_version():
    """CLI --version should show version."""
    runner = CliRunner()
    result = runner.invoke(cli, ["--version"])
    assert result.exit_code == 0
    assert "0.1.0" in result.output


def test_invalid_config_file(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[scan\n")
    result = CliRunner().invoke(cli, ["-c", str(path), "quality", "report"])
    assert result.exit_code != 0
    assert "Invalid config file" in result.output


def test_scan_requires_api_key(tmp_path, monkeypatch):
    monkeypatch.delenv("ANTHROPIC_API_KEY", raising=False)
    result = CliRunner().invoke(cli, ["-c", str(tmp_path / "none.toml"), "scan"])
    assert result.exit_code != 0
    assert "API key" in result.output


def test_scan_no_credentials(tmp_path, monkeypatch, config_file):
    """Scan without credentials should show clear error."""
    import gmail_subscription_scanner.auth as auth_module

    monkeypatch.setattr(auth_module, "CREDENTIALS_PATH", tmp_path / "nonexistent.json")
    monkeypatch.setattr(auth_module, "TOKEN_PATH", tmp_path / "token.json")
    monkeypatch.setattr(auth_module, "CONFIG_DIR", tmp_path)

    result = CliRunner().invoke(cli, ["-c", str(config_file), "scan"])
    assert result.exit_code != 0
    assert "Credentials file not found" in result.output


def test_scan_displays_and_exports(tmp_path, monkeypatch, config_file, log, netflix_emails):
    enricher = FakeEnricher(
        [{"service_name": "Netflix", "cost": 15.49, "charge_type": "recurring_subscription", "confidence": 0.95}]
    )
    monkeypatch.setattr(cli_module, "get_gmail_service", lambda: object())
    monkeypatch.setattr(cli_module, "GmailMailbox", lambda service, **kwargs: FakeMailbox(netflix_emails))
    monkeypatch.setattr(cli_module, "ClaudeEnricher", lambda **kwargs: enricher)
    output = tmp_path / "out.json"

    result = CliRunner().invoke(
        cli, ["-c", str(config_file), "scan", "-e", "Spotify", "--json-output", str(output)]
    )

    assert result.exit_code == 0, result.output
    assert "Detected Charges" in result.output
    assert "Scan ID" in result.output
    assert enricher.existing == [["Spotify"]]

    exported = json.loads(output.read_text())
    assert [c["name"] for c in exported["candidates"]] == ["Netflix"]
    [entry] = log.all_entries()
    assert entry.scan_id == exported["scan_id"]


def test_scan_failure_is_reported(monkeypatch, config_file):
    class BrokenMailbox(FakeMailbox):
        def search(self, query, max_results=None):
            raise RuntimeError("rate limited")

    monkeypatch.setattr(cli_module, "get_gmail_service", lambda: object())
    monkeypatch.setattr(cli_module, "GmailMailbox", lambda service, **kwargs: BrokenMailbox([]))

    result = CliRunner().invoke(cli, ["-c", str(config_file), "scan", "--no-quality-log"])
    assert result.exit_code != 0
    assert "rate limited" in result.output


def test_auth_success(monkeypatch):
    monkeypatch.setattr(cli_module, "check_auth", lambda: "me@example.com")
    result = CliRunner().invoke(cli, ["auth"])
    assert result.exit_code == 0
    assert "me@example.com" in result.output


def test_quality_report_empty(config_file):
    result = CliRunner().invoke(cli, ["-c", str(config_file), "quality", "report"])
    assert result.exit_code == 0
    assert "No scan telemetry" in result.output


def test_quality_report_with_entries(config_file, log):
    log.append(make_entry(timestamp=datetime.now(timezone.utc)))
    result = CliRunner().invoke(cli, ["-c", str(config_file), "quality", "report"])
    assert result.exit_code == 0
    assert "No quality alerts" in result.output


def test_quality_export_json_to_stdout(config_file, log):
    log.append(make_entry(timestamp=datetime.now(timezone.utc), service_name="Netflix"))
    result = CliRunner().invoke(cli, ["-c", str(config_file), "quality", "export"])
    assert result.exit_code == 0
    report = json.loads(result.output)
    assert report["total_candidates"] == 1
    assert "Netflix" not in result.output


def test_quality_export_csv_to_file(tmp_path, config_file, log):
    log.append(make_entry(timestamp=datetime.now(timezone.utc)))
    output = tmp_path / "report.csv"
    result = CliRunner().invoke(
        cli, ["-c", str(config_file), "quality", "export", "--format", "csv", "-o", str(output)]
    )
    assert result.exit_code == 0
    assert len(output.read_text().splitlines()) == 2


def test_quality_outcome(config_file, log):
    log.append(make_entry(scan_id="abc", service_name="Netflix"))
    result = CliRunner().invoke(
        cli,
        ["-c", str(config_file), "quality", "outcome", "abc", "Netflix", "--outcome", "ignored"],
    )
    assert result.exit_code == 0
    assert log.all_entries()[0].outcome is Outcome.IGNORED


def test_quality_outcome_reactivation_flag_is_optional(config_file, log):
    log.append(make_entry(scan_id="abc", service_name="Spotify", was_reactivation=True))
    args = ["-c", str(config_file), "quality", "outcome", "abc", "Spotify", "--outcome", "selected"]

    assert CliRunner().invoke(cli, args).exit_code == 0
    assert log.all_entries()[0].was_reactivation is True

    assert CliRunner().invoke(cli, args + ["--no-reactivation"]).exit_code == 0
    assert log.all_entries()[0].was_reactivation is False


def test_quality_outcome_unknown_entry(config_file, log):
    log.append(make_entry(scan_id="abc", service_name="Netflix"))
    result = CliRunner().invoke(
        cli,
        ["-c", str(config_file), "quality", "outcome", "zzz", "Netflix", "--outcome", "selected"],
    )
    assert result.exit_code != 0
    assert "No entry" in result.output


def test_quality_purge(config_file, log):
    log.append(make_entry())
    log.append(make_entry(timestamp=datetime.now(timezone.utc)))
    result = CliRunner().invoke(cli, ["-c", str(config_file), "quality", "purge"])
    assert result.exit_code == 0
    assert "Removed 1 entries" in result.output
    assert len(log.all_entries()) == 1
