"""
SLI/SLO data models.

Domain records for indicators, objectives and the derived error budget
status. Persistence lives in slogate.db.models; these are plain dataclasses.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Any

from slogate.core.errors import ValidationError

PERCENTILE_KEYS = ("p50", "p95", "p99", "avg", "max")

_DURATION_RE = re.compile(r"^(\d+)([mhdw])$")


class SLIKind(str, Enum):
    """How an indicator is measured."""

    EVENT_RATIO = "event_ratio"  # good / (good + bad)
    THRESHOLD = "threshold"      # latency observation <= threshold


class SLOStatus(str, Enum):
    """Error budget status tier."""

    HEALTHY = "healthy"      # >= 50% of budget remaining
    WARNING = "warning"      # 20-50% remaining
    CRITICAL = "critical"    # 0-20% remaining
    EXHAUSTED = "exhausted"  # nothing remaining
    UNKNOWN = "unknown"      # no events in window


class BurnEventType(str, Enum):
    """Budget changes worth keeping an audit trail of."""

    BURN_RATE_SPIKE = "burn_rate_spike"      # 1h burn rate far above sustainable
    THRESHOLD_CROSSED = "threshold_crossed"  # budget nearly exhausted
    SLO_BREACHED = "slo_breached"            # current value below target


class DeployType(str, Enum):
    """Kinds of deployment the gate knows about."""

    FEATURE = "feature"
    INFRASTRUCTURE = "infrastructure"
    HOTFIX = "hotfix"      # bypasses the gate
    ROLLBACK = "rollback"  # bypasses the gate


def parse_window(duration: str) -> timedelta:
    """Convert a duration string (e.g. "30d", "6h", "15m", "4w") to timedelta."""
    match = _DURATION_RE.match(duration.strip()) if duration else None
    if match is None:
        raise ValidationError(f"Unsupported window: {duration!r}", {"window": duration})

    value = int(match.group(1))
    unit = match.group(2)
    if value <= 0:
        raise ValidationError(f"Window must be positive: {duration!r}", {"window": duration})

    if unit == "d":
        return timedelta(days=value)
    elif unit == "h":
        return timedelta(hours=value)
    elif unit == "m":
        return timedelta(minutes=value)
    else:
        return timedelta(weeks=value)


def determine_status(
    remaining: float,
    total: float,
    warning_threshold: float = 0.5,
    critical_threshold: float = 0.2,
) -> SLOStatus:
    """Determine status from the share of the total budget still remaining."""
    if remaining <= 0:
        return SLOStatus.EXHAUSTED

    ratio = remaining / total
    if ratio >= warning_threshold:
        return SLOStatus.HEALTHY
    elif ratio >= critical_threshold:
        return SLOStatus.WARNING
    else:
        return SLOStatus.CRITICAL


@dataclass
class SliDefinition:
    """A measurable indicator, identified by its slug."""

    slug: str
    name: str
    kind: SLIKind = SLIKind.EVENT_RATIO
    description: str = ""
    threshold_ms: float | None = None
    percentile: str = "p95"
    is_active: bool = True
    id: int | None = None

    def validate(self) -> None:
        if not self.slug:
            raise ValidationError("Indicator slug is required")
        if self.kind == SLIKind.THRESHOLD:
            if self.threshold_ms is None or self.threshold_ms <= 0:
                raise ValidationError(
                    "Threshold indicators need a positive threshold_ms",
                    {"sli_slug": self.slug},
                )
            if self.percentile not in PERCENTILE_KEYS:
                raise ValidationError(
                    f"Unknown percentile: {self.percentile}",
                    {"sli_slug": self.slug, "allowed": ",".join(PERCENTILE_KEYS)},
                )

    def to_dict(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "name": self.name,
            "kind": self.kind.value,
            "description": self.description,
            "threshold_ms": self.threshold_ms,
            "percentile": self.percentile,
            "is_active": self.is_active,
        }


@dataclass
class SloDefinition:
    """
    Service Level Objective.

    A target percentage for one indicator over a rolling window.
    """

    slug: str
    name: str
    sli_slug: str
    target_percent: float  # e.g. 99.9
    window: str = "30d"
    description: str = ""
    deploy_types: list[str] | None = None  # None = every gated deploy type
    owner_team: str | None = None
    is_active: bool = True
    id: int | None = None

    def validate(self) -> None:
        if not self.slug:
            raise ValidationError("SLO slug is required")
        if not 0 < self.target_percent < 100:
            raise ValidationError(
                "SLO target must be between 0 and 100 (exclusive)",
                {"slo_slug": self.slug, "target_percent": self.target_percent},
            )
        parse_window(self.window)

    def window_timedelta(self) -> timedelta:
        return parse_window(self.window)

    def window_start(self, now: datetime) -> datetime:
        """Get the start time of the rolling window ending at now."""
        return now - self.window_timedelta()

    def error_budget_percent(self) -> float:
        """Allowed failure in percentage points (100 - target)."""
        return 100 - self.target_percent

    def gates(self, deploy_type: str) -> bool:
        """Whether this SLO participates in gating the given deploy type."""
        return self.deploy_types is None or deploy_type in self.deploy_types

    def to_dict(self) -> dict[str, Any]:
        return {
            "slug": self.slug,
            "name": self.name,
            "sli_slug": self.sli_slug,
            "target_percent": self.target_percent,
            "window": self.window,
            "description": self.description,
            "deploy_types": self.deploy_types,
            "owner_team": self.owner_team,
            "is_active": self.is_active,
        }


@dataclass
class WindowTotals:
    """Aggregated bucket counters for one indicator over a time range."""

    good_events: int = 0
    bad_events: int = 0
    observed_latency_ms: float | None = None

    @property
    def total_events(self) -> int:
        return self.good_events + self.bad_events


@dataclass(frozen=True)
class BudgetStatus:
    """Error budget for an SLO at evaluation time."""

    slo_slug: str
    sli_slug: str
    target_percent: float
    window: str
    window_start: datetime
    window_end: datetime
    good_events: int
    bad_events: int
    current_value: float
    budget_total_percent: float
    budget_consumed_percent: float
    budget_remaining_percent: float
    status: SLOStatus
    observed_latency_ms: float | None = None

    @property
    def total_events(self) -> int:
        return self.good_events + self.bad_events

    @property
    def remaining_ratio(self) -> float:
        """Share of the total budget still remaining (0.0 - 1.0)."""
        if self.budget_total_percent <= 0:
            return 0.0
        return self.budget_remaining_percent / self.budget_total_percent

    @property
    def slo_met(self) -> bool:
        return self.status == SLOStatus.UNKNOWN or self.current_value >= self.target_percent

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for API/CLI output."""
        return {
            "slo_slug": self.slo_slug,
            "sli_slug": self.sli_slug,
            "target_percent": self.target_percent,
            "window": self.window,
            "window_start": self.window_start.isoformat(),
            "window_end": self.window_end.isoformat(),
            "good_events": self.good_events,
            "bad_events": self.bad_events,
            "current_value": self.current_value,
            "budget_total_percent": self.budget_total_percent,
            "budget_consumed_percent": self.budget_consumed_percent,
            "budget_remaining_percent": self.budget_remaining_percent,
            "status": self.status.value,
            "observed_latency_ms": self.observed_latency_ms,
        }

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> BudgetStatus:
        return cls(
            slo_slug=data["slo_slug"],
            sli_slug=data["sli_slug"],
            target_percent=data["target_percent"],
            window=data["window"],
            window_start=datetime.fromisoformat(data["window_start"]),
            window_end=datetime.fromisoformat(data["window_end"]),
            good_events=data["good_events"],
            bad_events=data["bad_events"],
            current_value=data["current_value"],
            budget_total_percent=data["budget_total_percent"],
            budget_consumed_percent=data["budget_consumed_percent"],
            budget_remaining_percent=data["budget_remaining_percent"],
            status=SLOStatus(data["status"]),
            observed_latency_ms=data.get("observed_latency_ms"),
        )


@dataclass
class BudgetBatchResult:
    """Outcome of evaluating every active SLO; failures are per item."""

    statuses: dict[str, BudgetStatus] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def ok(self) -> bool:
        return not self.errors

    def to_dict(self) -> dict[str, Any]:
        return {
            "statuses": {slug: s.to_dict() for slug, s in self.statuses.items()},
            "errors": dict(self.errors),
        }


@dataclass
class BurnRateReport:
    """Burn rates (multiples of the sustainable rate) over short windows."""

    slo_slug: str
    rates: dict[str, float | None]

    def fastest(self) -> float | None:
        values = [r for r in self.rates.values() if r is not None]
        return max(values) if values else None


@dataclass
class ExhaustionProjection:
    """Projected budget exhaustion at the current burn rate."""

    slo_slug: str
    burn_rate: float | None
    hours_until_exhaustion: float | None
    projected_exhaustion: datetime | None
    risk_level: str  # "low" | "medium" | "high" | "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "slo_slug": self.slo_slug,
            "burn_rate": self.burn_rate,
            "hours_until_exhaustion": self.hours_until_exhaustion,
            "projected_exhaustion": (
                self.projected_exhaustion.isoformat() if self.projected_exhaustion else None
            ),
            "risk_level": self.risk_level,
        }


@dataclass
class SystemHealth:
    """Roll-up of every active SLO's budget status."""

    overall_status: SLOStatus
    total_slos: int
    counts: dict[str, int]
    avg_remaining_ratio: float
    min_remaining_ratio: float
    slos_at_risk: list[str] = field(default_factory=list)
    slos_exhausted: list[str] = field(default_factory=list)
    errors: dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "overall_status": self.overall_status.value,
            "total_slos": self.total_slos,
            "counts": dict(self.counts),
            "avg_remaining_ratio": round(self.avg_remaining_ratio, 4),
            "min_remaining_ratio": round(self.min_remaining_ratio, 4),
            "slos_at_risk": list(self.slos_at_risk),
            "slos_exhausted": list(self.slos_exhausted),
            "errors": dict(self.errors),
        }


@dataclass
class BurnEvent:
    """A detected budget burn event, persisted for audit."""

    slo_slug: str
    event_type: BurnEventType
    severity: str
    occurred_at: datetime
    budget_remaining_percent: float
    message: str
    context: dict[str, Any] = field(default_factory=dict)
    id: int | None = None

    def to_dict(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "slo_slug": self.slo_slug,
            "event_type": self.event_type.value,
            "severity": self.severity,
            "occurred_at": self.occurred_at.isoformat(),
            "budget_remaining_percent": self.budget_remaining_percent,
            "message": self.message,
            "context": dict(self.context),
        }


@dataclass
class PeriodMetrics:
    """Aggregate SLI and budget figures for one SLO over a fixed period."""

    start: datetime
    end: datetime
    good_events: int
    bad_events: int
    budget_remaining_ratio: float

    @property
    def total_events(self) -> int:
        return self.good_events + self.bad_events

    @property
    def sli_value(self) -> float | None:
        if self.total_events == 0:
            return None
        return self.good_events * 100 / self.total_events

    def to_dict(self) -> dict[str, Any]:
        sli_value = self.sli_value
        return {
            "start": self.start.isoformat(),
            "end": self.end.isoformat(),
            "good_events": self.good_events,
            "bad_events": self.bad_events,
            "sli_value": round(sli_value, 4) if sli_value is not None else None,
            "budget_remaining_ratio": round(self.budget_remaining_ratio, 4),
        }


@dataclass
class WeekOverWeek:
    """This week's budget against last week's for one SLO."""

    slo_slug: str
    current: PeriodMetrics
    previous: PeriodMetrics
    budget_change: float | None  # percent of the total budget
    sli_change: float | None     # percentage points
    trend: str  # "improving" | "degrading" | "stable" | "unknown"

    def to_dict(self) -> dict[str, Any]:
        return {
            "slo_slug": self.slo_slug,
            "current": self.current.to_dict(),
            "previous": self.previous.to_dict(),
            "budget_change": self.budget_change,
            "sli_change": self.sli_change,
            "trend": self.trend,
        }
