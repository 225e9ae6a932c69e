"""
Deploy decision repository.

Handles database operations for deploy decisions and overrides.
Both tables are insert-only (no update/delete).
"""

from __future__ import annotations

from datetime import datetime

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from slogate.db.models import DeployDecisionModel, DeployOverrideModel
from slogate.policies.audit import DeployDecision, DeployOverride


class DecisionRepository:
    """Repository for deploy decision audit operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    async def record_decision(self, decision: DeployDecision) -> None:
        """Insert a deploy decision record."""
        model = DeployDecisionModel(
            id=decision.id,
            deploy_id=decision.deploy_id,
            deploy_type=decision.deploy_type,
            deploy_name=decision.deploy_name,
            status=decision.status,
            reason=decision.reason,
            severity=decision.severity,
            can_override=decision.can_override,
            override_level=decision.override_level,
            budget_snapshot=decision.budget_snapshot,
            requested_by=decision.requested_by,
            created_at=decision.created_at,
        )
        self.session.add(model)
        await self.session.flush()

    async def record_override(self, override: DeployOverride) -> None:
        """Insert an override record. At most one per decision."""
        model = DeployOverrideModel(
            id=override.id,
            decision_id=override.decision_id,
            overridden_by=override.overridden_by,
            authorizing_role=override.authorizing_role,
            reason=override.reason,
            created_at=override.created_at,
        )
        self.session.add(model)
        await self.session.flush()

    async def get_decision(self, decision_id: str) -> DeployDecision | None:
        """Get a decision together with its override, if any."""
        result = await self.session.execute(
            select(DeployDecisionModel, DeployOverrideModel)
            .outerjoin(
                DeployOverrideModel,
                DeployOverrideModel.decision_id == DeployDecisionModel.id,
            )
            .where(DeployDecisionModel.id == decision_id)
        )
        row = result.first()
        if row is None:
            return None
        decision_model, override_model = row
        return self._decision_to_domain(decision_model, override_model)

    async def get_decisions_since(self, cutoff: datetime) -> list[DeployDecision]:
        """Decisions created at or after cutoff, newest first."""
        result = await self.session.execute(
            select(DeployDecisionModel, DeployOverrideModel)
            .outerjoin(
                DeployOverrideModel,
                DeployOverrideModel.decision_id == DeployDecisionModel.id,
            )
            .where(DeployDecisionModel.created_at >= cutoff)
            .order_by(DeployDecisionModel.created_at.desc())
        )
        return [self._decision_to_domain(d, o) for d, o in result.all()]

    # -- Model-to-domain converters --

    @classmethod
    def _decision_to_domain(
        cls,
        model: DeployDecisionModel,
        override_model: DeployOverrideModel | None,
    ) -> DeployDecision:
        return DeployDecision(
            id=model.id,
            deploy_id=model.deploy_id,
            deploy_type=model.deploy_type,
            deploy_name=model.deploy_name,
            status=model.status,
            reason=model.reason,
            created_at=model.created_at,
            severity=model.severity,
            can_override=model.can_override,
            override_level=model.override_level,
            budget_snapshot=model.budget_snapshot or {},
            requested_by=model.requested_by,
            override=cls._override_to_domain(override_model) if override_model else None,
        )

    @staticmethod
    def _override_to_domain(model: DeployOverrideModel) -> DeployOverride:
        return DeployOverride(
            id=model.id,
            decision_id=model.decision_id,
            overridden_by=model.overridden_by,
            authorizing_role=model.authorizing_role,
            reason=model.reason,
            created_at=model.created_at,
        )
