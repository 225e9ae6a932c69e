"""
Schema, indicator and SLO definition commands.
"""

from __future__ import annotations

from datetime import timedelta

from rich.markup import escape

from slogate.cli.helpers import open_services, run_async
from slogate.cli.ux import console, print_json, print_key_value, print_table, success, warning
from slogate.config import get_settings
from slogate.core.errors import ExitCode
from slogate.db.session import create_schema, dispose_engine, init_engine


def init_db_command() -> int:
    """Create all tables in the configured database."""

    async def _init() -> None:
        init_engine(get_settings())
        try:
            await create_schema()
        finally:
            await dispose_engine()

    run_async(_init())
    success("Database schema created")
    return ExitCode.SUCCESS


def sli_register_command(
    slug: str,
    name: str,
    kind: str = "event_ratio",
    threshold_ms: float | None = None,
    percentile: str = "p95",
    description: str = "",
) -> int:
    """Register a new indicator."""

    async def _register():
        async with open_services() as services:
            return await services.recorder.register_indicator(
                slug=slug,
                name=name,
                kind=kind,
                threshold_ms=threshold_ms,
                percentile=percentile,
                description=description,
            )

    sli = run_async(_register())
    success(f"Registered indicator {sli.slug} ({sli.kind.value})")
    if sli.threshold_ms is not None:
        console.print(f"  [muted]Good when {sli.percentile} <= {sli.threshold_ms}ms[/muted]")
    return ExitCode.SUCCESS


def sli_list_command(output_format: str = "text") -> int:
    """List registered indicators."""

    async def _list():
        async with open_services() as services:
            return await services.repository.list_slis()

    slis = run_async(_list())

    if output_format == "json":
        print_json([sli.to_dict() for sli in slis])
        return ExitCode.SUCCESS

    if not slis:
        warning("No indicators registered")
        return ExitCode.SUCCESS

    print_table(
        "Indicators",
        ["Slug", "Name", "Kind", "Threshold", "Active"],
        [
            [
                sli.slug,
                escape(sli.name),
                sli.kind.value,
                f"{sli.percentile} <= {sli.threshold_ms}ms" if sli.threshold_ms is not None else "-",
                "yes" if sli.is_active else "no",
            ]
            for sli in slis
        ],
    )
    return ExitCode.SUCCESS


def slo_define_command(
    slug: str,
    name: str,
    sli_slug: str,
    target_percent: float,
    window: str = "30d",
    deploy_types: list[str] | None = None,
    owner_team: str | None = None,
    description: str = "",
) -> int:
    """Define an SLO against a registered indicator."""

    async def _define():
        async with open_services() as services:
            return await services.recorder.define_slo(
                slug=slug,
                name=name,
                sli_slug=sli_slug,
                target_percent=target_percent,
                window=window,
                deploy_types=deploy_types,
                owner_team=owner_team,
                description=description,
            )

    slo = run_async(_define())
    success(f"Defined SLO {slo.slug}")
    print_key_value(
        {
            "Indicator": slo.sli_slug,
            "Target": f"{slo.target_percent}%",
            "Window": slo.window,
            "Error budget": f"{slo.error_budget_percent():.4f} points",
            "Gates": ", ".join(slo.deploy_types) if slo.deploy_types else "all gated deploy types",
        }
    )
    return ExitCode.SUCCESS


def prune_command(days: int | None = None) -> int:
    """Apply the bucket retention policy."""

    async def _prune() -> int:
        async with open_services() as services:
            older_than = timedelta(days=days) if days is not None else None
            return await services.recorder.prune(older_than)

    removed = run_async(_prune())
    success(f"Pruned {removed} event bucket(s)")
    return ExitCode.SUCCESS
