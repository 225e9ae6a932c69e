"""
Deployment gate commands.

Evaluates the error budget gate for a deploy type, records decisions and
applies overrides.

Exit codes: 0 = Allowed/Overridden, 1 = Blocked, 2 = Allowed with warning
"""

from __future__ import annotations

from rich.markup import escape

from slogate.cli.helpers import open_services, run_async
from slogate.cli.ux import (
    confirm,
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
from slogate.core.errors import ExitCode, ValidationError
from slogate.policies.audit import DeployDecision
from slogate.slos.gates import GateDecision, GateStatus


def deploy_check_command(
    deploy_type: str,
    record: bool = False,
    deploy_id: str | None = None,
    deploy_name: str | None = None,
    requested_by: str | None = None,
    decision_id: str | None = None,
    output_format: str = "text",
) -> int:
    """
    Check if a deployment should be allowed based on error budget.

    With record=True the decision is persisted and its id printed for
    use with ``deploy override``. Passing decision_id of an overridden
    decision reports OVERRIDDEN.
    """

    if record and not deploy_id:
        raise ValidationError("A deploy id is required to record a decision")

    async def _check() -> tuple[GateDecision, DeployDecision | None]:
        async with open_services() as services:
            result = await services.gate.can_deploy(deploy_type, decision_id=decision_id)
            if not record or deploy_id is None:
                return result, None

            decision = await services.gate.save_decision(
                result, deploy_id, deploy_name or deploy_id, requested_by=requested_by
            )
            result.decision_id = decision.id
            return result, decision

    result, decision = run_async(_check())

    if output_format == "json":
        print_json(result.to_dict())
        return result.exit_code

    header(f"Deployment Gate Check: {result.deploy_type}")
    _display_gate_result(result)
    if decision is not None:
        console.print(f"[muted]Decision id: {decision.id}[/muted]")
    return result.exit_code


def deploy_override_command(
    decision_id: str,
    overridden_by: str,
    authorizing_role: str,
    reason: str,
    yes: bool = False,
) -> int:
    """Override a blocked decision."""
    if not yes and not confirm(f"Override blocked deploy decision {decision_id}?"):
        warning("Override cancelled")
        return ExitCode.BLOCKED

    async def _override() -> DeployDecision:
        async with open_services() as services:
            return await services.gate.record_override(
                decision_id, overridden_by, reason, authorizing_role
            )

    decision = run_async(_override())
    success(f"Decision {decision.id} overridden by {overridden_by} ({authorizing_role})")
    return ExitCode.SUCCESS


def deploy_show_command(decision_id: str, output_format: str = "text") -> int:
    """Show a recorded decision with its effective status."""

    async def _show() -> DeployDecision:
        async with open_services() as services:
            return await services.gate.get_decision(decision_id)

    decision = run_async(_show())
    status = GateStatus(decision.effective_status)

    if output_format == "json":
        print_json(decision.to_dict())
        return status.exit_code

    header(f"Deploy Decision {decision.id}")
    details = {
        "Deploy": f"{decision.deploy_name} ({decision.deploy_id})",
        "Type": decision.deploy_type,
        "Status": styled_status(status.value),
        "Reason": decision.reason,
        "Recorded": decision.created_at.isoformat(),
    }
    if decision.requested_by:
        details["Requested by"] = decision.requested_by
    if decision.override is not None:
        details["Overridden by"] = (
            f"{decision.override.overridden_by} ({decision.override.authorizing_role}): "
            f"{decision.override.reason}"
        )
    elif decision.can_override:
        details["Override requires"] = decision.override_level or "-"
    print_key_value(details)
    return status.exit_code


def deploy_list_command(hours: int = 24, output_format: str = "text") -> int:
    """List recent decisions."""

    async def _list() -> list[DeployDecision]:
        async with open_services() as services:
            return await services.gate.recent_decisions(hours)

    decisions = run_async(_list())

    if output_format == "json":
        print_json([d.to_dict() for d in decisions])
        return ExitCode.SUCCESS

    if not decisions:
        info(f"No deploy decisions in the last {hours}h")
        return ExitCode.SUCCESS

    print_table(
        f"Deploy decisions (last {hours}h)",
        ["Id", "Deploy", "Type", "Status", "Recorded"],
        [
            [
                d.id,
                d.deploy_name,
                d.deploy_type,
                styled_status(d.effective_status),
                d.created_at.isoformat(timespec="seconds"),
            ]
            for d in decisions
        ],
    )
    return ExitCode.SUCCESS


def _display_gate_result(result: GateDecision) -> None:
    if result.status == GateStatus.BLOCKED:
        error(f"Deployment BLOCKED: {escape(result.reason)}")
        if result.can_override:
            console.print(f"[muted]Override requires role: {result.override_level}[/muted]")
    elif result.status == GateStatus.ALLOWED_WITH_WARNING:
        warning(f"Deployment allowed with WARNING: {result.reason}")
    elif result.status == GateStatus.OVERRIDDEN:
        success(f"Deployment OVERRIDDEN: {result.reason}")
    else:
        success(f"Deployment APPROVED: {result.reason}")

    if result.blocking_slos or result.warning_slos:
        print_key_value(
            {
                "Blocking SLOs": ", ".join(result.blocking_slos) or "-",
                "Warning SLOs": ", ".join(result.warning_slos) or "-",
            }
        )
