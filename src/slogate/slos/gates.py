"""
Deployment gate checks for error budget validation.

Turns the worst relevant budget status into an allow/warn/block decision,
records decisions for audit and handles manual overrides of blocked ones.

Exit codes follow CI/CD conventions used by the CLI:
- 0 = Allowed (or overridden)
- 1 = Blocked
- 2 = Allowed with warning
"""

from __future__ import annotations

import uuid
from dataclasses import dataclass, field
from datetime import timedelta
from enum import Enum
from typing import Any

import structlog
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from slogate.clock import Clock, utcnow
from slogate.config import Settings, get_settings
from slogate.core.errors import (
    ExitCode,
    InvalidDeployTypeError,
    NotBlockedError,
    StorageError,
    UnauthorizedRoleError,
    UnknownDecisionError,
    ValidationError,
)
from slogate.policies.audit import DeployDecision, DeployOverride
from slogate.policies.repository import DecisionRepository
from slogate.slos.calculator import BudgetCalculator, worst_status
from slogate.slos.models import BudgetStatus, DeployType, SLOStatus

logger = structlog.get_logger()

EVALUATION_UNAVAILABLE = "EvaluationUnavailable"
EVALUATION_UNAVAILABLE_SEVERITY = "evaluation_unavailable"

BYPASS_DEPLOY_TYPES = {DeployType.HOTFIX, DeployType.ROLLBACK}

_BLOCKING = {SLOStatus.CRITICAL, SLOStatus.EXHAUSTED}


class GateStatus(str, Enum):
    """Outcome of a gate check."""

    ALLOWED = "allowed"
    ALLOWED_WITH_WARNING = "allowed_with_warning"
    BLOCKED = "blocked"
    OVERRIDDEN = "overridden"  # only reachable from BLOCKED

    @property
    def exit_code(self) -> ExitCode:
        if self == GateStatus.BLOCKED:
            return ExitCode.BLOCKED
        if self == GateStatus.ALLOWED_WITH_WARNING:
            return ExitCode.WARNING
        return ExitCode.SUCCESS


@dataclass
class GateDecision:
    """Result of a deploy gate check."""

    allowed: bool
    status: GateStatus
    reason: str
    deploy_type: str
    can_override: bool = False
    override_level: str | None = None
    decision_id: str | None = None
    severity: str | None = None
    blocking_slos: list[str] = field(default_factory=list)
    warning_slos: list[str] = field(default_factory=list)
    budgets: dict[str, dict[str, Any]] = field(default_factory=dict)

    @property
    def exit_code(self) -> ExitCode:
        return self.status.exit_code

    @property
    def is_blocked(self) -> bool:
        return self.status == GateStatus.BLOCKED

    def to_dict(self) -> dict[str, Any]:
        return {
            "allowed": self.allowed,
            "status": self.status.value,
            "reason": self.reason,
            "can_override": self.can_override,
            "override_level": self.override_level,
            "decision_id": self.decision_id,
            "deploy_type": self.deploy_type,
            "severity": self.severity,
            "blocking_slos": list(self.blocking_slos),
            "warning_slos": list(self.warning_slos),
        }


def parse_deploy_type(deploy_type: DeployType | str) -> DeployType:
    try:
        return DeployType(deploy_type)
    except ValueError:
        allowed = ", ".join(t.value for t in DeployType)
        raise InvalidDeployTypeError(
            f"Unknown deploy type: {deploy_type}",
            {"deploy_type": str(deploy_type), "allowed": allowed},
        ) from None


class DeployGate:
    """
    Checks if a deployment should be allowed based on error budget.

    - hotfix/rollback: always allowed (bypass, noted for audit)
    - feature/infrastructure: blocked if any gating SLO is critical or
      exhausted, warned if any is warning, otherwise allowed
    - unknown (no events) never blocks
    - evaluation failures fail closed as BLOCKED (EvaluationUnavailable)
    """

    def __init__(
        self,
        calculator: BudgetCalculator,
        decisions: DecisionRepository,
        settings: Settings | None = None,
        clock: Clock = utcnow,
    ) -> None:
        self.calculator = calculator
        self.decisions = decisions
        self.settings = settings or get_settings()
        self.clock = clock

    async def can_deploy(
        self,
        deploy_type: DeployType | str,
        decision_id: str | None = None,
    ) -> GateDecision:
        """
        Evaluate the gate for a deploy type.

        Args:
            deploy_type: feature, infrastructure, hotfix or rollback
            decision_id: Previously recorded decision; if it was recorded
                for the same deploy type and has been overridden, the
                OVERRIDDEN result is returned

        Returns:
            GateDecision with status, reason and override requirements
        """
        kind = parse_deploy_type(deploy_type)

        if decision_id is not None:
            recorded = await self.get_decision(decision_id)
            if recorded.override is not None:
                if recorded.deploy_type == kind.value:
                    return self._overridden_result(recorded, recorded.override)
                logger.info(
                    "deploy_override_not_applicable",
                    decision_id=decision_id,
                    recorded_deploy_type=recorded.deploy_type,
                    deploy_type=kind.value,
                )

        if kind in BYPASS_DEPLOY_TYPES:
            logger.info("deploy_gate_bypassed", deploy_type=kind.value)
            return GateDecision(
                allowed=True,
                status=GateStatus.ALLOWED,
                reason=f"{kind.value} deploys bypass the error budget gate",
                deploy_type=kind.value,
                decision_id=decision_id,
            )

        try:
            statuses = await self._gating_statuses(kind)
        except Exception as exc:
            logger.error(
                "deploy_gate_evaluation_failed",
                deploy_type=kind.value,
                error=str(exc),
                exc_info=True,
            )
            return GateDecision(
                allowed=False,
                status=GateStatus.BLOCKED,
                reason=f"{EVALUATION_UNAVAILABLE}: error budgets could not be evaluated ({exc})",
                deploy_type=kind.value,
                can_override=True,
                override_level=self.settings.override_levels.get(EVALUATION_UNAVAILABLE_SEVERITY),
                decision_id=decision_id,
                severity=EVALUATION_UNAVAILABLE_SEVERITY,
            )

        result = self._decide(kind, statuses)
        result.decision_id = decision_id
        logger.info(
            "deploy_gate_evaluated",
            deploy_type=kind.value,
            status=result.status.value,
            severity=result.severity,
            blocking_slos=result.blocking_slos,
        )
        return result

    async def record_deploy_decision(
        self,
        deploy_id: str,
        deploy_type: DeployType | str,
        deploy_name: str,
        requested_by: str | None = None,
    ) -> DeployDecision:
        """Evaluate the gate and persist the outcome. Returns the stored decision."""
        result = await self.can_deploy(deploy_type)
        return await self.save_decision(result, deploy_id, deploy_name, requested_by)

    async def save_decision(
        self,
        result: GateDecision,
        deploy_id: str,
        deploy_name: str,
        requested_by: str | None = None,
    ) -> DeployDecision:
        """Persist an evaluated gate result as an audit record."""
        decision = DeployDecision(
            id=str(uuid.uuid4()),
            deploy_id=deploy_id,
            deploy_type=result.deploy_type,
            deploy_name=deploy_name,
            status=result.status.value,
            reason=result.reason,
            created_at=self.clock(),
            severity=result.severity,
            can_override=result.can_override,
            override_level=result.override_level,
            budget_snapshot=result.budgets,
            requested_by=requested_by,
        )

        try:
            await self.decisions.record_decision(decision)
            await self.decisions.session.commit()
        except SQLAlchemyError as exc:
            await self.decisions.session.rollback()
            raise StorageError(
                f"Failed to record deploy decision: {exc}", {"deploy_id": deploy_id}
            ) from exc

        logger.info(
            "deploy_decision_recorded",
            decision_id=decision.id,
            deploy_id=deploy_id,
            deploy_type=decision.deploy_type,
            status=decision.status,
            requested_by=requested_by,
        )
        return decision

    async def record_override(
        self,
        decision_id: str,
        overridden_by: str,
        reason: str,
        authorizing_role: str,
    ) -> DeployDecision:
        """
        Transition a BLOCKED decision to OVERRIDDEN.

        Raises:
            UnknownDecisionError: no such decision
            NotBlockedError: decision was not blocked, or already overridden
            UnauthorizedRoleError: role ranks below the level the severity requires
        """
        if not overridden_by:
            raise ValidationError("Override requires who is overriding", {"decision_id": decision_id})
        if not reason:
            raise ValidationError("Override requires a reason", {"decision_id": decision_id})

        decision = await self.get_decision(decision_id)
        if decision.effective_status != GateStatus.BLOCKED.value:
            raise NotBlockedError(
                f"Decision {decision_id} is {decision.effective_status}, not blocked",
                {"decision_id": decision_id, "status": decision.effective_status},
            )

        self._authorize(decision, authorizing_role)

        override = DeployOverride(
            id=str(uuid.uuid4()),
            decision_id=decision_id,
            overridden_by=overridden_by,
            authorizing_role=authorizing_role,
            reason=reason,
            created_at=self.clock(),
        )

        try:
            await self.decisions.record_override(override)
            await self.decisions.session.commit()
        except IntegrityError:
            # Lost a race with a concurrent override of the same decision
            await self.decisions.session.rollback()
            raise NotBlockedError(
                f"Decision {decision_id} was already overridden",
                {"decision_id": decision_id, "status": GateStatus.OVERRIDDEN.value},
            ) from None
        except SQLAlchemyError as exc:
            await self.decisions.session.rollback()
            raise StorageError(
                f"Failed to record override: {exc}", {"decision_id": decision_id}
            ) from exc

        logger.info(
            "deploy_decision_overridden",
            decision_id=decision_id,
            overridden_by=overridden_by,
            authorizing_role=authorizing_role,
            severity=decision.severity,
        )
        decision.override = override
        return decision

    async def get_decision(self, decision_id: str) -> DeployDecision:
        """Get a recorded decision with its effective status."""
        decision = await self.decisions.get_decision(decision_id)
        if decision is None:
            raise UnknownDecisionError(decision_id)
        return decision

    async def recent_decisions(self, hours: int = 24) -> list[DeployDecision]:
        """Decisions recorded in the last ``hours``, newest first."""
        cutoff = self.clock() - timedelta(hours=hours)
        return await self.decisions.get_decisions_since(cutoff)

    async def _gating_statuses(self, kind: DeployType) -> list[BudgetStatus]:
        slos = await self.calculator.repository.list_active_slos()
        return [
            await self.calculator.calculate_budget(slo)
            for slo in slos
            if slo.gates(kind.value)
        ]

    def _decide(self, kind: DeployType, statuses: list[BudgetStatus]) -> GateDecision:
        budgets = {s.slo_slug: s.to_dict() for s in statuses}

        if not statuses:
            return GateDecision(
                allowed=True,
                status=GateStatus.ALLOWED,
                reason=f"No active SLOs gate {kind.value} deploys",
                deploy_type=kind.value,
            )

        worst = worst_status([s.status for s in statuses])
        blocking = [s.slo_slug for s in statuses if s.status in _BLOCKING]
        warning = [s.slo_slug for s in statuses if s.status == SLOStatus.WARNING]

        if blocking:
            return GateDecision(
                allowed=False,
                status=GateStatus.BLOCKED,
                reason=f"Error budget {worst.value} for: {', '.join(blocking)}",
                deploy_type=kind.value,
                can_override=True,
                override_level=self.settings.override_levels.get(worst.value),
                severity=worst.value,
                blocking_slos=blocking,
                warning_slos=warning,
                budgets=budgets,
            )

        if warning:
            return GateDecision(
                allowed=True,
                status=GateStatus.ALLOWED_WITH_WARNING,
                reason=f"Error budget low for: {', '.join(warning)}",
                deploy_type=kind.value,
                severity=worst.value,
                warning_slos=warning,
                budgets=budgets,
            )

        return GateDecision(
            allowed=True,
            status=GateStatus.ALLOWED,
            reason="Error budgets healthy",
            deploy_type=kind.value,
            severity=worst.value,
            budgets=budgets,
        )

    def _authorize(self, decision: DeployDecision, role: str) -> None:
        ranks = self.settings.override_role_ranks
        if role not in ranks:
            raise UnauthorizedRoleError(
                f"Unknown authorizing role: {role}",
                {"role": role, "allowed": ",".join(ranks)},
            )

        required = decision.override_level
        if required is None and decision.severity is not None:
            required = self.settings.override_levels.get(decision.severity)
        if required is None:
            return

        if ranks[role] < ranks.get(required, max(ranks.values())):
            raise UnauthorizedRoleError(
                f"Role {role} may not override a {decision.severity} block; requires {required}",
                {"role": role, "required": required, "severity": decision.severity},
            )

    @staticmethod
    def _overridden_result(decision: DeployDecision, override: DeployOverride) -> GateDecision:
        return GateDecision(
            allowed=True,
            status=GateStatus.OVERRIDDEN,
            reason=(
                f"Overridden by {override.overridden_by} ({override.authorizing_role}): "
                f"{override.reason}"
            ),
            deploy_type=decision.deploy_type,
            decision_id=decision.id,
            severity=decision.severity,
        )
