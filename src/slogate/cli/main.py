"""
slogate CLI.

Usage:
    slogate <command> [args]

Records SLI events, reports error budgets and gates deployments for CI/CD.
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from rich.markup import escape

from slogate.cli.budget import (
    budget_all_command,
    budget_detect_command,
    budget_events_command,
    budget_health_command,
    budget_show_command,
    budget_trend_command,
)
from slogate.cli.definitions import (
    init_db_command,
    prune_command,
    slo_define_command,
    sli_list_command,
    sli_register_command,
)
from slogate.cli.deploy import (
    deploy_check_command,
    deploy_list_command,
    deploy_override_command,
    deploy_show_command,
)
from slogate.cli.record import record_events_command, record_latency_command
from slogate.cli.ux import error
from slogate.config import get_settings
from slogate.core.errors import (
    ExitCode,
    SloGateError,
    format_error_message,
    main_with_error_handling,
)
from slogate.logging import configure_logging
from slogate.slos.models import PERCENTILE_KEYS, DeployType, SLIKind

DEPLOY_TYPES = [t.value for t in DeployType]


class GateArgumentParser(argparse.ArgumentParser):
    """Usage errors exit with the validation code; 2 means "allowed with warning"."""

    def error(self, message: str) -> None:  # type: ignore[override]
        self.print_usage(sys.stderr)
        self.exit(ExitCode.VALIDATION_ERROR, f"{self.prog}: error: {message}\n")


def _add_output_flag(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--json", dest="output", action="store_const", const="json",
                        default="text", help="Emit JSON instead of formatted text")


def build_parser() -> argparse.ArgumentParser:
    parser = GateArgumentParser(prog="slogate", description="SLO error budget evaluator and deploy gate")
    parser.add_argument("-v", "--verbose", action="store_true", help="Show tracebacks on errors")
    subparsers = parser.add_subparsers(dest="command")

    subparsers.add_parser("init-db", help="Create database tables")

    # sli
    sli_parser = subparsers.add_parser("sli", help="Manage indicators")
    sli_sub = sli_parser.add_subparsers(dest="sli_command")
    register = sli_sub.add_parser("register", help="Register an indicator")
    register.add_argument("slug", help="Indicator slug (e.g. api-availability)")
    register.add_argument("--name", help="Display name (defaults to slug)")
    register.add_argument("--kind", choices=[k.value for k in SLIKind], default=SLIKind.EVENT_RATIO.value)
    register.add_argument("--threshold-ms", type=float, help="Latency threshold for threshold indicators")
    register.add_argument("--percentile", choices=list(PERCENTILE_KEYS), default="p95",
                          help="Percentile judged against the threshold")
    register.add_argument("--description", default="")
    sli_list = sli_sub.add_parser("list", help="List registered indicators")
    _add_output_flag(sli_list)

    # slo
    slo_parser = subparsers.add_parser("slo", help="Manage SLOs")
    slo_sub = slo_parser.add_subparsers(dest="slo_command")
    define = slo_sub.add_parser("define", help="Define an SLO for an indicator")
    define.add_argument("slug", help="SLO slug")
    define.add_argument("--sli", dest="sli_slug", required=True, help="Indicator slug")
    define.add_argument("--target", type=float, required=True, help="Target percentage (e.g. 99.9)")
    define.add_argument("--window", default="30d", help="Rolling window (e.g. 30d, 7d, 1h)")
    define.add_argument("--name", help="Display name (defaults to slug)")
    define.add_argument("--deploy-types", nargs="+", choices=DEPLOY_TYPES,
                        help="Deploy types this SLO gates (default: all gated types)")
    define.add_argument("--owner-team")
    define.add_argument("--description", default="")

    # record
    record_parser = subparsers.add_parser("record", help="Record SLI observations")
    record_sub = record_parser.add_subparsers(dest="record_command")
    events = record_sub.add_parser("events", help="Record good/bad event counts")
    events.add_argument("sli_slug")
    events.add_argument("--good", type=int, default=0)
    events.add_argument("--bad", type=int, default=0)
    events.add_argument("--source", default="default", help="Source tag")
    latency = record_sub.add_parser("latency", help="Record a latency observation")
    latency.add_argument("sli_slug")
    latency.add_argument("--value", type=float, help="Raw latency sample in ms")
    latency.add_argument("--percentile", dest="percentiles", action="append", metavar="KEY=MS",
                         help="Pre-aggregated percentile (repeatable), e.g. p95=120")
    latency.add_argument("--source", default="default", help="Source tag")

    # budget
    budget_parser = subparsers.add_parser("budget", help="Error budget reports")
    budget_sub = budget_parser.add_subparsers(dest="budget_command")
    show = budget_sub.add_parser("show", help="Show one SLO's budget")
    show.add_argument("slo_slug")
    _add_output_flag(show)
    all_parser = budget_sub.add_parser("all", help="Evaluate every active SLO")
    all_parser.add_argument("--persist", action="store_true", help="Write budget snapshots")
    _add_output_flag(all_parser)
    health = budget_sub.add_parser("health", help="Overall budget health")
    _add_output_flag(health)
    detect = budget_sub.add_parser("detect", help="Detect and record burn events")
    _add_output_flag(detect)
    burn_events = budget_sub.add_parser("events", help="List recorded burn events")
    burn_events.add_argument("--slo", dest="slo_slug", help="Only this SLO")
    burn_events.add_argument("--hours", type=int, default=24)
    _add_output_flag(burn_events)
    trend = budget_sub.add_parser("trend", help="Week-over-week budget comparison")
    _add_output_flag(trend)

    # deploy
    deploy_parser = subparsers.add_parser("deploy", help="Deployment gate")
    deploy_sub = deploy_parser.add_subparsers(dest="deploy_command")
    check = deploy_sub.add_parser("check", help="Check the gate (exit 0 allowed, 1 blocked, 2 warning)")
    check.add_argument("deploy_type", help=f"One of: {', '.join(DEPLOY_TYPES)}")
    check.add_argument("--record", action="store_true", help="Persist the decision for audit")
    check.add_argument("--deploy-id", help="Deployment identifier (required with --record)")
    check.add_argument("--name", dest="deploy_name", help="Deployment name")
    check.add_argument("--requested-by", help="Who is deploying")
    check.add_argument("--decision-id", help="Report OVERRIDDEN if this decision was overridden")
    _add_output_flag(check)
    override = deploy_sub.add_parser("override", help="Override a blocked decision")
    override.add_argument("decision_id")
    override.add_argument("--by", dest="overridden_by", required=True, help="Who authorizes the override")
    override.add_argument("--role", required=True, help="Authorizing role (e.g. tech_lead)")
    override.add_argument("--reason", required=True)
    override.add_argument("--yes", action="store_true", help="Skip confirmation prompt")
    show_decision = deploy_sub.add_parser("show", help="Show a recorded decision")
    show_decision.add_argument("decision_id")
    _add_output_flag(show_decision)
    list_parser = deploy_sub.add_parser("list", help="List recent decisions")
    list_parser.add_argument("--hours", type=int, default=24)
    _add_output_flag(list_parser)

    # prune
    prune_parser = subparsers.add_parser("prune", help="Delete event buckets past retention")
    prune_parser.add_argument("--days", type=int, help="Override retention_days")

    return parser


def _dispatch(parser: argparse.ArgumentParser, args: argparse.Namespace) -> int:
    if args.command == "init-db":
        return init_db_command()

    if args.command == "sli" and args.sli_command == "register":
        return sli_register_command(
            args.slug,
            args.name or args.slug,
            kind=args.kind,
            threshold_ms=args.threshold_ms,
            percentile=args.percentile,
            description=args.description,
        )

    if args.command == "sli" and args.sli_command == "list":
        return sli_list_command(output_format=args.output)

    if args.command == "slo" and args.slo_command == "define":
        return slo_define_command(
            args.slug,
            args.name or args.slug,
            args.sli_slug,
            args.target,
            window=args.window,
            deploy_types=args.deploy_types,
            owner_team=args.owner_team,
            description=args.description,
        )

    if args.command == "record" and args.record_command == "events":
        return record_events_command(args.sli_slug, args.good, args.bad, source=args.source)

    if args.command == "record" and args.record_command == "latency":
        return record_latency_command(
            args.sli_slug, value=args.value, percentiles=args.percentiles, source=args.source
        )

    if args.command == "budget" and args.budget_command == "show":
        return budget_show_command(args.slo_slug, output_format=args.output)

    if args.command == "budget" and args.budget_command == "all":
        return budget_all_command(persist=args.persist, output_format=args.output)

    if args.command == "budget" and args.budget_command == "health":
        return budget_health_command(output_format=args.output)

    if args.command == "budget" and args.budget_command == "detect":
        return budget_detect_command(output_format=args.output)

    if args.command == "budget" and args.budget_command == "events":
        return budget_events_command(
            slo_slug=args.slo_slug, hours=args.hours, output_format=args.output
        )

    if args.command == "budget" and args.budget_command == "trend":
        return budget_trend_command(output_format=args.output)

    if args.command == "deploy" and args.deploy_command == "check":
        if args.record and not args.deploy_id:
            parser.error("--deploy-id is required with --record")
        if args.record and args.decision_id:
            parser.error("--record cannot be combined with --decision-id")
        return deploy_check_command(
            args.deploy_type,
            record=args.record,
            deploy_id=args.deploy_id,
            deploy_name=args.deploy_name,
            requested_by=args.requested_by,
            decision_id=args.decision_id,
            output_format=args.output,
        )

    if args.command == "deploy" and args.deploy_command == "override":
        return deploy_override_command(
            args.decision_id,
            args.overridden_by,
            args.role,
            args.reason,
            yes=args.yes,
        )

    if args.command == "deploy" and args.deploy_command == "show":
        return deploy_show_command(args.decision_id, output_format=args.output)

    if args.command == "deploy" and args.deploy_command == "list":
        return deploy_list_command(hours=args.hours, output_format=args.output)

    if args.command == "prune":
        return prune_command(days=args.days)

    parser.print_help()
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    configure_logging(settings.log_level)

    return _run(parser, args, show_traceback=args.verbose or settings.debug)


def _run(parser: argparse.ArgumentParser, args: argparse.Namespace, show_traceback: bool) -> int:
    @main_with_error_handling(show_traceback=show_traceback)
    def _execute() -> int:
        try:
            return _dispatch(parser, args)
        except SloGateError as exc:
            error(escape(format_error_message(exc)))
            raise

    return _execute()


if __name__ == "__main__":
    raise SystemExit(main())
