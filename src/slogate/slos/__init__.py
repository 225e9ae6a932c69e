"""
SLO (Service Level Objective) management.

This module handles SLI recording, error budget calculation and
deployment gating on budget health.
"""

from slogate.slos.cache import MemoryBudgetCache, RedisBudgetCache, build_cache
from slogate.slos.calculator import BudgetCalculator, compute_budget_status
from slogate.slos.gates import (
    EVALUATION_UNAVAILABLE,
    DeployGate,
    GateDecision,
    GateStatus,
)
from slogate.slos.models import (
    BudgetBatchResult,
    BudgetStatus,
    BurnRateReport,
    DeployType,
    ExhaustionProjection,
    SliDefinition,
    SLIKind,
    SloDefinition,
    SLOStatus,
    SystemHealth,
)
from slogate.slos.recorder import SliRecorder
from slogate.slos.storage import SLORepository

__all__ = [
    "BudgetBatchResult",
    "BudgetCalculator",
    "BudgetStatus",
    "BurnRateReport",
    "DeployGate",
    "DeployType",
    "EVALUATION_UNAVAILABLE",
    "ExhaustionProjection",
    "GateDecision",
    "GateStatus",
    "MemoryBudgetCache",
    "RedisBudgetCache",
    "SLIKind",
    "SLORepository",
    "SLOStatus",
    "SliDefinition",
    "SliRecorder",
    "SloDefinition",
    "SystemHealth",
    "build_cache",
    "compute_budget_status",
]
