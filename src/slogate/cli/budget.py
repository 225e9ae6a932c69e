"""
Error budget reporting commands.
"""

from __future__ import annotations

from rich.markup import escape

from slogate.cli.helpers import open_services, run_async
from slogate.cli.ux import (
    console,
    error,
    header,
    info,
    print_json,
    print_key_value,
    print_table,
    styled_status,
    success,
    warning,
)
from slogate.core.errors import ExitCode
from slogate.slos.models import (
    BudgetBatchResult,
    BudgetStatus,
    BurnEvent,
    BurnRateReport,
    ExhaustionProjection,
    SystemHealth,
    WeekOverWeek,
)


def _budget_row(status: BudgetStatus) -> list[str]:
    return [
        status.slo_slug,
        f"{status.target_percent}%",
        f"{status.current_value:.3f}%",
        f"{status.remaining_ratio * 100:.1f}%",
        f"{status.good_events}/{status.total_events}",
        styled_status(status.status.value),
    ]


def budget_show_command(slo_slug: str, output_format: str = "text") -> int:
    """Show one SLO's budget with burn rates and exhaustion projection."""

    async def _show() -> tuple[BudgetStatus, BurnRateReport, ExhaustionProjection]:
        async with open_services() as services:
            calculator = services.calculator
            status = await calculator.calculate_budget(slo_slug)
            rates = await calculator.burn_rates(slo_slug)
            projection = calculator.project_exhaustion(status, rates.rates.get("24h"))
            return status, rates, projection

    status, rates, projection = run_async(_show())

    if output_format == "json":
        print_json(
            {
                "budget": status.to_dict(),
                "burn_rates": rates.rates,
                "projection": projection.to_dict(),
            }
        )
        return ExitCode.SUCCESS

    header(f"Error Budget: {status.slo_slug}")
    details = {
        "Indicator": status.sli_slug,
        "Window": f"{status.window} ({status.window_start.isoformat()} to {status.window_end.isoformat()})",
        "Events": f"{status.good_events} good / {status.bad_events} bad",
        "Current": f"{status.current_value:.4f}% (target {status.target_percent}%)",
        "Budget": (
            f"{status.budget_remaining_percent:.4f} of {status.budget_total_percent:.4f} points "
            f"remaining ({status.remaining_ratio * 100:.1f}%)"
        ),
        "Status": styled_status(status.status.value),
    }
    if status.observed_latency_ms is not None:
        details["Observed latency"] = f"{status.observed_latency_ms:.1f}ms"
    print_key_value(details)

    print_key_value(
        {
            label: f"{rate:.2f}x" if rate is not None else "no data"
            for label, rate in rates.rates.items()
        },
        title="Burn rates",
    )

    console.print()
    risk = projection.risk_level
    if projection.projected_exhaustion is not None:
        console.print(
            f"Projected exhaustion: {projection.projected_exhaustion.isoformat()} "
            f"(in {projection.hours_until_exhaustion}h, risk {styled_status(risk)})"
        )
    else:
        console.print(f"Exhaustion risk: {risk}")
    return ExitCode.SUCCESS


def budget_all_command(persist: bool = False, output_format: str = "text") -> int:
    """
    Evaluate every active SLO.

    Exit codes: 0 = all evaluated, 11 = at least one SLO failed to evaluate
    """

    async def _all() -> BudgetBatchResult:
        async with open_services() as services:
            return await services.calculator.calculate_all_budgets(persist=persist)

    batch = run_async(_all())

    if output_format == "json":
        print_json(batch.to_dict())
    else:
        if batch.statuses:
            print_table(
                "Error Budgets",
                ["SLO", "Target", "Current", "Remaining", "Good/Total", "Status"],
                [_budget_row(s) for s in batch.statuses.values()],
            )
        else:
            warning("No active SLOs")
        for slug, message in batch.errors.items():
            error(f"{slug}: {escape(message)}")

    return ExitCode.SUCCESS if batch.ok else ExitCode.STORAGE_ERROR


def budget_health_command(output_format: str = "text") -> int:
    """Summarize budget health across all active SLOs."""

    async def _health() -> SystemHealth:
        async with open_services() as services:
            return await services.calculator.system_health()

    health = run_async(_health())

    if output_format == "json":
        print_json(health.to_dict())
        return ExitCode.SUCCESS if not health.errors else ExitCode.STORAGE_ERROR

    header("System Health")
    print_key_value(
        {
            "Overall": styled_status(health.overall_status.value),
            "SLOs": str(health.total_slos),
            "Tiers": ", ".join(f"{tier}={count}" for tier, count in health.counts.items()),
            "Avg remaining": f"{health.avg_remaining_ratio * 100:.1f}%",
            "Min remaining": f"{health.min_remaining_ratio * 100:.1f}%",
        }
    )
    if health.slos_at_risk:
        warning(f"At risk: {', '.join(health.slos_at_risk)}")
    if health.slos_exhausted:
        error(f"Exhausted: {', '.join(health.slos_exhausted)}")
    for slug, message in health.errors.items():
        error(f"{slug}: {escape(message)}")

    return ExitCode.SUCCESS if not health.errors else ExitCode.STORAGE_ERROR


def _print_burn_events(title: str, events: list[BurnEvent]) -> None:
    print_table(
        title,
        ["Time", "SLO", "Event", "Severity", "Message"],
        [
            [
                event.occurred_at.isoformat(),
                event.slo_slug,
                event.event_type.value,
                styled_status(event.severity),
                escape(event.message),
            ]
            for event in events
        ],
    )


def budget_detect_command(output_format: str = "text") -> int:
    """Detect and record burn events for every active SLO."""

    async def _detect() -> list[BurnEvent]:
        async with open_services() as services:
            return await services.calculator.detect_burn_events()

    events = run_async(_detect())

    if output_format == "json":
        print_json([event.to_dict() for event in events])
    elif events:
        _print_burn_events("New Burn Events", events)
    else:
        success("No new burn events")
    return ExitCode.SUCCESS


def budget_events_command(
    slo_slug: str | None = None,
    hours: int = 24,
    output_format: str = "text",
) -> int:
    """List recorded burn events."""

    async def _events() -> list[BurnEvent]:
        async with open_services() as services:
            return await services.calculator.recent_burn_events(slo_slug=slo_slug, hours=hours)

    events = run_async(_events())

    if output_format == "json":
        print_json([event.to_dict() for event in events])
    elif events:
        _print_burn_events(f"Burn Events (last {hours}h)", events)
    else:
        info(f"No burn events in the last {hours}h")
    return ExitCode.SUCCESS


def _percent(value: float | None) -> str:
    return f"{value:.3f}%" if value is not None else "no data"


def budget_trend_command(output_format: str = "text") -> int:
    """Week-over-week budget comparison for every active SLO."""

    async def _trend() -> list[WeekOverWeek]:
        async with open_services() as services:
            return await services.calculator.week_over_week()

    comparisons = run_async(_trend())

    if output_format == "json":
        print_json([c.to_dict() for c in comparisons])
        return ExitCode.SUCCESS

    if not comparisons:
        warning("No active SLOs")
        return ExitCode.SUCCESS

    print_table(
        "Week over Week",
        ["SLO", "This week", "Last week", "Budget change", "Trend"],
        [
            [
                c.slo_slug,
                _percent(c.current.sli_value),
                _percent(c.previous.sli_value),
                f"{c.budget_change:+.2f}" if c.budget_change is not None else "-",
                styled_status(c.trend),
            ]
            for c in comparisons
        ],
    )
    return ExitCode.SUCCESS
