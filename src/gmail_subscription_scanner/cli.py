"""CLI entry point for Gmail Subscription Scanner."""

from __future__ import annotations

import logging
import tomllib
from dataclasses import replace
from datetime import datetime, timedelta, timezone
from pathlib import Path

import click
from rich.logging import RichHandler

from .auth import check_auth, get_gmail_service
from .config import AppConfig, load_config
from .constants import (
    MAX_LOOKBACK_MONTHS,
    MAX_MAX_MESSAGES,
    MIN_LOOKBACK_MONTHS,
    MIN_MAX_MESSAGES,
    QUALITY_RETENTION_DAYS,
)
from .display import console, create_progress, display_candidates, display_quality_report
from .enrichment import ClaudeEnricher
from .export import export_candidates
from .gmail_client import GmailMailbox
from .models import Outcome
from .quality import WEEK, generate_report, start_of_day
from .quality_log import OutcomeUpdate, QualityLog
from .scanner import ScanError, SubscriptionScanner

PACKAGE_LOGGER = "gmail_subscription_scanner"


def _setup_logging(verbose: bool) -> None:
    logger = logging.getLogger(PACKAGE_LOGGER)
    logger.handlers.clear()
    logger.addHandler(RichHandler(console=console, show_path=False, markup=False))
    logger.setLevel(logging.DEBUG if verbose else logging.INFO)
    logger.propagate = False


def _quality_log(config: AppConfig) -> QualityLog:
    return QualityLog(Path(config.quality.log_path).expanduser())


def _report_window(weeks: int) -> tuple[datetime, datetime]:
    end = datetime.now().astimezone()
    return start_of_day(end) - (weeks - 1) * WEEK, end


@click.group()
@click.version_option(version="0.1.0", prog_name="gmail-subscription-scanner")
@click.option("-v", "--verbose", is_flag=True, help="Enable debug logging.")
@click.option(
    "-c",
    "--config",
    "config_path",
    type=click.Path(dir_okay=False, path_type=Path),
    default=None,
    help="Path to config.toml.",
)
@click.pass_context
def cli(ctx: click.Context, verbose: bool, config_path: Path | None) -> None:
    """Gmail Subscription Scanner - find recurring charges in your Gmail."""
    _setup_logging(verbose)
    try:
        ctx.obj = load_config(config_path)
    except tomllib.TOMLDecodeError as e:
        raise click.ClickException(f"Invalid config file: {e}") from e


@cli.command()
@click.option(
    "-m",
    "--max-messages",
    default=None,
    type=click.IntRange(MIN_MAX_MESSAGES, MAX_MAX_MESSAGES, clamp=True),
    help="Maximum messages to scan.",
)
@click.option(
    "-l",
    "--lookback-months",
    default=None,
    type=click.IntRange(MIN_LOOKBACK_MONTHS, MAX_LOOKBACK_MONTHS, clamp=True),
    help="How many months of mail to search.",
)
@click.option(
    "-e",
    "--existing",
    multiple=True,
    help="Name of a subscription you already track (repeatable).",
)
@click.option("--no-quality-log", is_flag=True, help="Do not record scan telemetry.")
@click.option(
    "--json-output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Also write candidates to this JSON file.",
)
@click.option(
    "--csv-output",
    type=click.Path(dir_okay=False),
    default=None,
    help="Also write candidates to this CSV file.",
)
@click.pass_obj
def scan(
    config: AppConfig,
    max_messages: int | None,
    lookback_months: int | None,
    existing: tuple[str, ...],
    no_quality_log: bool,
    json_output: str | None,
    csv_output: str | None,
) -> None:
    """Scan your Gmail for subscriptions and other charges."""
    scan_config = config.scan
    if max_messages is not None:
        scan_config = replace(scan_config, max_messages=max_messages)
    if lookback_months is not None:
        scan_config = replace(scan_config, lookback_months=lookback_months)

    if not config.enrichment.api_key:
        raise click.ClickException(
            "Anthropic API key is not configured. "
            "Set ANTHROPIC_API_KEY or [enrichment] api_key in the config file."
        )

    try:
        service = get_gmail_service()
    except FileNotFoundError as e:
        raise click.ClickException(str(e)) from e

    quality_log = None
    if config.quality.enabled and not no_quality_log:
        quality_log = _quality_log(config)

    with create_progress("Fetching messages") as progress:
        task = progress.add_task("fetch", total=None)

        def _on_batch(done: int, total: int) -> None:
            progress.update(task, completed=done, total=total)

        scanner = SubscriptionScanner(
            mailbox=GmailMailbox(
                service,
                include_spam_trash=scan_config.include_spam_trash,
                lookback_months=scan_config.lookback_months,
                on_batch=_on_batch,
            ),
            enricher=ClaudeEnricher(
                api_key=config.enrichment.api_key,
                model=config.enrichment.model,
            ),
            config=scan_config,
            quality_log=quality_log,
        )
        try:
            candidates = scanner.scan(existing)
        except ScanError as e:
            raise click.ClickException(str(e)) from e

    display_candidates(candidates)
    console.print(f"[dim]Scan ID: {scanner.last_scan_id}[/dim]")

    if json_output:
        export_candidates(candidates, "json", json_output, scan_id=scanner.last_scan_id)
        console.print(f"Results saved to {json_output}")
    if csv_output:
        export_candidates(candidates, "csv", csv_output)
        console.print(f"Results saved to {csv_output}")


@cli.command()
def auth() -> None:
    """Test Gmail authentication (runs the OAuth flow if needed)."""
    try:
        address = check_auth()
    except FileNotFoundError as e:
        raise click.ClickException(str(e)) from e
    except Exception as e:  # noqa: BLE001
        raise click.ClickException(f"Authentication failed: {e}") from e
    console.print(f"[green]Authenticated as {address}[/green]")


@cli.group(name="quality")
def quality_group() -> None:
    """Inspect and maintain scan quality telemetry."""


@quality_group.command(name="report")
@click.option("-w", "--weeks", default=4, type=click.IntRange(min=1), help="Weeks to cover.")
@click.pass_obj
def quality_report(config: AppConfig, weeks: int) -> None:
    """Show quality metrics and alerts for recent weeks."""
    start, end = _report_window(weeks)
    report = generate_report(_quality_log(config).read_range(start, end), start, end)
    if report["total_candidates"] == 0:
        console.print("[dim]No scan telemetry recorded in this period.[/dim]")
        return
    display_quality_report(report)


@quality_group.command(name="export")
@click.option(
    "--format",
    "fmt",
    type=click.Choice(["json", "csv"]),
    default="json",
    help="Output format.",
)
@click.option("-w", "--weeks", default=4, type=click.IntRange(min=1), help="Weeks to cover.")
@click.option("-o", "--output", default=None, help="Output file path (default: stdout).")
@click.pass_obj
def quality_export(config: AppConfig, fmt: str, weeks: int, output: str | None) -> None:
    """Export quality telemetry as an aggregate JSON report or per-entry CSV."""
    start, end = _report_window(weeks)
    log = _quality_log(config)
    text = log.export_json(start, end) if fmt == "json" else log.export_csv(start, end)

    if output is None:
        click.echo(text, nl=False)
        return
    Path(output).write_text(text)
    console.print(f"Report saved to {output}")


@quality_group.command(name="outcome")
@click.argument("scan_id")
@click.argument("service_name")
@click.option(
    "--outcome",
    "outcome_value",
    required=True,
    type=click.Choice([o.value for o in Outcome]),
    help="What happened to the candidate.",
)
@click.option("--resulting-status", default=None, help="Status the subscription ended up with.")
@click.option(
    "--reactivation/--no-reactivation",
    default=None,
    help="Override whether the outcome reactivated a subscription.",
)
@click.pass_obj
def quality_outcome(
    config: AppConfig,
    scan_id: str,
    service_name: str,
    outcome_value: str,
    resulting_status: str | None,
    reactivation: bool | None,
) -> None:
    """Record the outcome of a candidate from a previous scan."""
    update = OutcomeUpdate(
        service_name=service_name,
        outcome=Outcome(outcome_value),
        resulting_status=resulting_status,
        was_reactivation=reactivation,
    )
    patched = _quality_log(config).patch_outcome(scan_id, [update])
    if patched == 0:
        raise click.ClickException(f"No entry for '{service_name}' in scan {scan_id}.")
    console.print(f"[green]Updated {patched} entr{'y' if patched == 1 else 'ies'}.[/green]")


@quality_group.command(name="purge")
@click.option(
    "--days",
    default=QUALITY_RETENTION_DAYS,
    type=click.IntRange(min=1),
    help="Keep entries newer than this many days.",
)
@click.pass_obj
def quality_purge(config: AppConfig, days: int) -> None:
    """Delete telemetry older than the retention window."""
    cutoff = datetime.now(timezone.utc) - timedelta(days=days)
    removed = _quality_log(config).purge_older_than(cutoff)
    console.print(f"[green]Removed {removed} entries.[/green]")
