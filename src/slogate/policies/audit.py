"""
Deploy decision audit domain models.

Immutable records of gate decisions and the overrides applied to them.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any

OVERRIDDEN = "overridden"
BLOCKED = "blocked"


@dataclass
class DeployOverride:
    """Record of a manual override of a blocked decision."""

    id: str
    decision_id: str
    overridden_by: str
    authorizing_role: str
    reason: str
    created_at: datetime

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "decision_id": self.decision_id,
            "overridden_by": self.overridden_by,
            "authorizing_role": self.authorizing_role,
            "reason": self.reason,
            "created_at": self.created_at.isoformat(),
        }


@dataclass
class DeployDecision:
    """Record of a deploy gate decision at the time it was made."""

    id: str
    deploy_id: str
    deploy_type: str
    deploy_name: str
    status: str  # "allowed" | "allowed_with_warning" | "blocked"
    reason: str
    created_at: datetime
    severity: str | None = None
    can_override: bool = False
    override_level: str | None = None
    budget_snapshot: dict[str, Any] = field(default_factory=dict)
    requested_by: str | None = None
    override: DeployOverride | None = None

    @property
    def effective_status(self) -> str:
        """Status after applying any override."""
        if self.override is not None:
            return OVERRIDDEN
        return self.status

    @property
    def is_blocked(self) -> bool:
        return self.effective_status == BLOCKED

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "deploy_id": self.deploy_id,
            "deploy_type": self.deploy_type,
            "deploy_name": self.deploy_name,
            "status": self.effective_status,
            "decided_status": self.status,
            "reason": self.reason,
            "severity": self.severity,
            "can_override": self.can_override,
            "override_level": self.override_level,
            "budget_snapshot": self.budget_snapshot,
            "requested_by": self.requested_by,
            "created_at": self.created_at.isoformat(),
            "override": self.override.to_dict() if self.override else None,
        }
