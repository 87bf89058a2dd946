"""Rich-based display functions for Gmail Subscription Scanner."""

from rich.console import Console
from rich.panel import Panel
from rich.progress import (
    BarColumn,
    MofNCompleteColumn,
    Progress,
    SpinnerColumn,
    TextColumn,
    TimeElapsedColumn,
)
from rich.table import Table

from .models import ChargeType, SubscriptionCandidate, SubscriptionStatus

console = Console()


def _confidence_color(confidence: float) -> str:
    """Return a Rich color name based on the confidence value."""
    if confidence >= 0.9:
        return "green"
    if confidence >= 0.7:
        return "yellow"
    return "red"


def _status_color(status: SubscriptionStatus) -> str:
    if status is SubscriptionStatus.ACTIVE:
        return "white"
    if status is SubscriptionStatus.CANCELED:
        return "red"
    return "yellow"


def create_progress(description: str) -> Progress:
    """Create a configured Rich Progress bar."""
    return Progress(
        SpinnerColumn(),
        TextColumn(f"[bold blue]{description}"),
        BarColumn(),
        MofNCompleteColumn(),
        TimeElapsedColumn(),
        console=console,
        transient=True,
    )


def monthly_total(candidates: list[SubscriptionCandidate]) -> float:
    """Monthly cost of the selected, active, recurring candidates."""
    return sum(
        c.cost * c.billing_cycle.monthly_cost_multiplier
        for c in candidates
        if c.is_selected
        and c.charge_type is ChargeType.RECURRING_SUBSCRIPTION
        and c.subscription_status is SubscriptionStatus.ACTIVE
    )


def display_candidates(candidates: list[SubscriptionCandidate]) -> None:
    """Display detected charges in the order the scan ranked them."""
    if not candidates:
        console.print("[dim]No subscriptions or charges found.[/dim]")
        return

    table = Table(title="Detected Charges")
    table.add_column("#", justify="right", style="dim")
    table.add_column("Service")
    table.add_column("Cost", justify="right")
    table.add_column("Cycle")
    table.add_column("Type")
    table.add_column("Status")
    table.add_column("Confidence", justify="right")
    table.add_column("Source")
    table.add_column("Emails", justify="right")

    for idx, candidate in enumerate(candidates, start=1):
        color = _confidence_color(candidate.confidence)
        status_color = _status_color(candidate.subscription_status)
        status = candidate.subscription_status.value
        if candidate.status_effective_date:
            status += f" ({candidate.status_effective_date.isoformat()})"
        name = candidate.name if candidate.is_selected else f"[dim]{candidate.name}[/dim]"
        table.add_row(
            str(idx),
            name,
            f"{candidate.cost:.2f}",
            candidate.billing_cycle.value,
            candidate.charge_type.value,
            f"[{status_color}]{status}[/{status_color}]",
            f"[{color}]{candidate.confidence:.2f} {candidate.confidence_label}[/{color}]",
            candidate.cost_source_label,
            str(candidate.source_email_count),
        )

    console.print(table)

    selected = sum(1 for c in candidates if c.is_selected)
    console.print(
        Panel(
            f"Candidates: {len(candidates)}  |  "
            f"Selected: {selected}  |  "
            f"Monthly recurring: {monthly_total(candidates):.2f}",
            title="Summary",
        )
    )


def display_quality_report(report: dict) -> None:
    """Display an aggregate quality report as produced by quality.generate_report."""
    period = report["period"]
    metrics = report["metrics"]

    table = Table(title=f"Scan Quality {period['start']} to {period['end']}")
    table.add_column("Metric")
    table.add_column("Value", justify="right")

    table.add_row("Scans", str(report["scan_count"]))
    table.add_row("Candidates", str(report["total_candidates"]))
    for key, value in metrics.items():
        label = key.replace("_", " ").capitalize()
        table.add_row(label, f"{value:.2f}" if isinstance(value, float) else str(value))

    console.print(table)

    if not report["alerts"]:
        console.print("[green]No quality alerts.[/green]")
        return

    lines = [f"[bold red]{a['type']}[/bold red]: {a['message']}" for a in report["alerts"]]
    console.print(Panel("\n".join(lines), title="Alerts", border_style="red"))
