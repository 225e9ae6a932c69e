"""
Tests for deploy decision recording and overrides.
"""

from unittest.mock import AsyncMock, patch

import pytest
from slogate.core.errors import (
    NotBlockedError,
    StorageError,
    UnauthorizedRoleError,
    UnknownDecisionError,
    ValidationError,
)
from slogate.policies.audit import DeployDecision
from slogate.slos.gates import GateStatus
from sqlalchemy.exc import OperationalError


@pytest.fixture
async def exhausted(recorder):
    await recorder.register_indicator("checkout-requests", "Checkout requests")
    await recorder.define_slo("checkout-availability", "Checkout", "checkout-requests", 99.0)
    await recorder.record_good_bad("checkout-requests", 900, 100)


@pytest.fixture
async def blocked_decision(gate, exhausted) -> DeployDecision:
    return await gate.record_deploy_decision(
        "deploy-123", "feature", "checkout v2", requested_by="alice@example.com"
    )


class TestRecordDecision:
    @pytest.mark.asyncio
    async def test_blocked_decision_is_stored(self, gate, blocked_decision, clock):
        stored = await gate.get_decision(blocked_decision.id)

        assert stored.status == "blocked"
        assert stored.effective_status == "blocked"
        assert stored.is_blocked
        assert stored.deploy_id == "deploy-123"
        assert stored.severity == "exhausted"
        assert stored.override_level == "engineering_manager"
        assert stored.requested_by == "alice@example.com"
        assert stored.created_at == clock.now
        assert stored.budget_snapshot["checkout-availability"]["status"] == "exhausted"
        assert stored.override is None

    @pytest.mark.asyncio
    async def test_bypass_decision_is_stored_as_allowed(self, gate, exhausted):
        decision = await gate.record_deploy_decision("deploy-124", "rollback", "revert checkout v2")

        assert decision.status == "allowed"
        assert (await gate.get_decision(decision.id)).effective_status == "allowed"

    @pytest.mark.asyncio
    async def test_unknown_decision(self, gate):
        with pytest.raises(UnknownDecisionError):
            await gate.get_decision("does-not-exist")

    @pytest.mark.asyncio
    async def test_storage_failure(self, gate, exhausted):
        with patch.object(
            gate.decisions,
            "record_decision",
            AsyncMock(side_effect=OperationalError("INSERT", {}, Exception("disk full"))),
        ):
            with pytest.raises(StorageError):
                await gate.record_deploy_decision("deploy-125", "feature", "checkout v3")


class TestOverride:
    @pytest.mark.asyncio
    async def test_override_blocked_decision(self, gate, blocked_decision):
        overridden = await gate.record_override(
            blocked_decision.id,
            overridden_by="bob@example.com",
            reason="Fix for the outage itself",
            authorizing_role="engineering_manager",
        )

        assert overridden.effective_status == "overridden"
        assert overridden.status == "blocked"

        stored = await gate.get_decision(blocked_decision.id)
        assert stored.effective_status == "overridden"
        assert stored.override.overridden_by == "bob@example.com"
        assert stored.override.authorizing_role == "engineering_manager"
        assert stored.to_dict()["decided_status"] == "blocked"

    @pytest.mark.asyncio
    async def test_can_deploy_reports_override(self, gate, blocked_decision):
        await gate.record_override(
            blocked_decision.id, "bob@example.com", "Approved in incident channel", "director"
        )

        result = await gate.can_deploy("feature", decision_id=blocked_decision.id)

        assert result.status == GateStatus.OVERRIDDEN
        assert result.allowed
        assert result.exit_code == 0
        assert "bob@example.com" in result.reason

        # Without the decision id the budget still blocks
        assert (await gate.can_deploy("feature")).status == GateStatus.BLOCKED

    @pytest.mark.asyncio
    async def test_override_only_applies_to_its_deploy_type(self, gate, blocked_decision):
        await gate.record_override(
            blocked_decision.id, "bob@example.com", "Approved for the feature rollout", "director"
        )

        result = await gate.can_deploy("infrastructure", decision_id=blocked_decision.id)

        assert result.status == GateStatus.BLOCKED
        assert result.exit_code == 1
        assert result.deploy_type == "infrastructure"
        assert result.decision_id == blocked_decision.id

    @pytest.mark.asyncio
    async def test_can_deploy_with_unknown_decision(self, gate):
        with pytest.raises(UnknownDecisionError):
            await gate.can_deploy("feature", decision_id="does-not-exist")

    @pytest.mark.asyncio
    async def test_allowed_decision_cannot_be_overridden(self, gate, exhausted):
        decision = await gate.record_deploy_decision("deploy-200", "hotfix", "patch")

        with pytest.raises(NotBlockedError):
            await gate.record_override(decision.id, "bob@example.com", "because", "director")

    @pytest.mark.asyncio
    async def test_second_override_rejected(self, gate, blocked_decision):
        await gate.record_override(blocked_decision.id, "bob@example.com", "first", "director")

        with pytest.raises(NotBlockedError):
            await gate.record_override(blocked_decision.id, "carol@example.com", "second", "director")

        stored = await gate.get_decision(blocked_decision.id)
        assert stored.override.overridden_by == "bob@example.com"

    @pytest.mark.asyncio
    async def test_concurrent_override_loses_on_unique_constraint(self, gate, blocked_decision):
        """A stale read that still sees BLOCKED is stopped by the database."""
        stale = await gate.get_decision(blocked_decision.id)
        await gate.record_override(blocked_decision.id, "bob@example.com", "first", "director")

        with patch.object(gate, "get_decision", AsyncMock(return_value=stale)):
            with pytest.raises(NotBlockedError):
                await gate.record_override(blocked_decision.id, "carol@example.com", "second", "director")

        stored = await gate.get_decision(blocked_decision.id)
        assert stored.override.overridden_by == "bob@example.com"

    @pytest.mark.asyncio
    @pytest.mark.parametrize("role", ["engineer", "tech_lead"])
    async def test_role_below_required_level(self, gate, blocked_decision, role):
        with pytest.raises(UnauthorizedRoleError):
            await gate.record_override(blocked_decision.id, "dave@example.com", "ship it", role)

        assert (await gate.get_decision(blocked_decision.id)).is_blocked

    @pytest.mark.asyncio
    async def test_unknown_role(self, gate, blocked_decision):
        with pytest.raises(UnauthorizedRoleError):
            await gate.record_override(blocked_decision.id, "dave@example.com", "ship it", "intern")

    @pytest.mark.asyncio
    @pytest.mark.parametrize("by,reason", [("", "because"), ("bob@example.com", "")])
    async def test_override_requires_actor_and_reason(self, gate, blocked_decision, by, reason):
        with pytest.raises(ValidationError):
            await gate.record_override(blocked_decision.id, by, reason, "director")

    @pytest.mark.asyncio
    async def test_override_unknown_decision(self, gate):
        with pytest.raises(UnknownDecisionError):
            await gate.record_override("does-not-exist", "bob@example.com", "because", "director")

    @pytest.mark.asyncio
    async def test_unavailable_evaluation_needs_sre_lead(self, gate, exhausted):
        with patch.object(
            gate.calculator,
            "calculate_budget",
            AsyncMock(side_effect=RuntimeError("boom")),
        ):
            decision = await gate.record_deploy_decision("deploy-300", "feature", "checkout v4")

        assert decision.severity == "evaluation_unavailable"
        with pytest.raises(UnauthorizedRoleError):
            await gate.record_override(decision.id, "bob@example.com", "db down", "engineering_manager")

        overridden = await gate.record_override(decision.id, "erin@example.com", "db down", "sre_lead")
        assert overridden.effective_status == "overridden"


class TestRecentDecisions:
    @pytest.mark.asyncio
    async def test_newest_first_within_window(self, gate, exhausted, clock):
        old = await gate.record_deploy_decision("deploy-1", "feature", "old")
        clock.advance(hours=25)
        first = await gate.record_deploy_decision("deploy-2", "hotfix", "first")
        clock.advance(minutes=5)
        second = await gate.record_deploy_decision("deploy-3", "feature", "second")

        recent = await gate.recent_decisions(hours=24)

        assert [d.id for d in recent] == [second.id, first.id]
        assert old.id not in {d.id for d in recent}
