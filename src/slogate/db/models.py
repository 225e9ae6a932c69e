from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship

from slogate.clock import utcnow


class Base(DeclarativeBase):
    pass


# Indicator and objective definitions


class SliDefinitionModel(Base):
    """SLI (Service Level Indicator) definition."""

    __tablename__ = "sli_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    kind: Mapped[str] = mapped_column(String(50), nullable=False, default="event_ratio")
    threshold_ms: Mapped[float | None] = mapped_column(Float)
    percentile: Mapped[str] = mapped_column(String(10), nullable=False, default="p95")
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    slos: Mapped[list[SloDefinitionModel]] = relationship(back_populates="sli")


class SloDefinitionModel(Base):
    """SLO target bound to exactly one SLI."""

    __tablename__ = "slo_definitions"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slug: Mapped[str] = mapped_column(String(100), unique=True, nullable=False)
    name: Mapped[str] = mapped_column(String(200), nullable=False)
    description: Mapped[str | None] = mapped_column(Text)
    sli_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sli_definitions.id", ondelete="CASCADE"), nullable=False
    )
    target_percent: Mapped[float] = mapped_column(Float, nullable=False)
    window: Mapped[str] = mapped_column(String(50), nullable=False, default="30d")
    deploy_types: Mapped[list[str] | None] = mapped_column(JSON)
    owner_team: Mapped[str | None] = mapped_column(String(100))
    is_active: Mapped[bool] = mapped_column(Boolean, nullable=False, default=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    sli: Mapped[SliDefinitionModel] = relationship(back_populates="slos", lazy="joined")

    __table_args__ = (Index("idx_slo_definitions_sli_active", "sli_id", "is_active"),)


# Recorded events


class SliEventBucketModel(Base):
    """Time-bucketed counters for an SLI; incremented atomically on recording."""

    __tablename__ = "sli_event_buckets"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    sli_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("sli_definitions.id", ondelete="CASCADE"), nullable=False
    )
    bucket_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    source: Mapped[str] = mapped_column(String(100), nullable=False, default="default")
    good_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    bad_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    sample_count: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    latency_sum_ms: Mapped[float] = mapped_column(Float, nullable=False, default=0.0)
    p50_ms: Mapped[float | None] = mapped_column(Float)
    p95_ms: Mapped[float | None] = mapped_column(Float)
    p99_ms: Mapped[float | None] = mapped_column(Float)
    avg_ms: Mapped[float | None] = mapped_column(Float)
    max_ms: Mapped[float | None] = mapped_column(Float)
    tags: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    updated_at: Mapped[datetime] = mapped_column(
        DateTime, default=utcnow, onupdate=utcnow, nullable=False
    )

    __table_args__ = (
        UniqueConstraint("sli_id", "bucket_start", "source", name="uq_sli_bucket"),
        Index("idx_sli_event_buckets_sli_start", "sli_id", "bucket_start"),
    )


class BudgetSnapshotModel(Base):
    """Persisted error budget evaluation; historical rows are never updated."""

    __tablename__ = "error_budget_snapshots"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slo_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("slo_definitions.id", ondelete="CASCADE"), nullable=False
    )
    window_start: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    window_end: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    good_events: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    bad_events: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    current_value: Mapped[float] = mapped_column(Float, nullable=False)
    budget_total_percent: Mapped[float] = mapped_column(Float, nullable=False)
    budget_consumed_percent: Mapped[float] = mapped_column(Float, nullable=False)
    budget_remaining_percent: Mapped[float] = mapped_column(Float, nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    observed_latency_ms: Mapped[float | None] = mapped_column(Float)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_error_budget_snapshots_slo_end", "slo_id", "window_end"),)



class BudgetBurnEventModel(Base):
    """Detected burn event (spike, low budget, breach); insert-only."""

    __tablename__ = "budget_burn_events"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    slo_id: Mapped[int] = mapped_column(
        Integer, ForeignKey("slo_definitions.id", ondelete="CASCADE"), nullable=False
    )
    occurred_at: Mapped[datetime] = mapped_column(DateTime, nullable=False)
    event_type: Mapped[str] = mapped_column(String(50), nullable=False)
    severity: Mapped[str] = mapped_column(String(20), nullable=False, default="critical")
    budget_remaining_percent: Mapped[float] = mapped_column(Float, nullable=False)
    message: Mapped[str] = mapped_column(String(500), nullable=False)
    context: Mapped[dict[str, Any] | None] = mapped_column(JSON)

    __table_args__ = (
        Index("idx_budget_burn_events_slo_type_time", "slo_id", "event_type", "occurred_at"),
    )

# Deploy gate audit log (insert-only)


class DeployDecisionModel(Base):
    """Point-in-time deploy gate decision."""

    __tablename__ = "deploy_decisions"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    deploy_id: Mapped[str] = mapped_column(String(100), nullable=False, index=True)
    deploy_type: Mapped[str] = mapped_column(String(50), nullable=False)
    deploy_name: Mapped[str] = mapped_column(String(200), nullable=False)
    status: Mapped[str] = mapped_column(String(50), nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    severity: Mapped[str | None] = mapped_column(String(50))
    can_override: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)
    override_level: Mapped[str | None] = mapped_column(String(50))
    budget_snapshot: Mapped[dict[str, Any] | None] = mapped_column(JSON)
    requested_by: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (Index("idx_deploy_decisions_status_created", "status", "created_at"),)


class DeployOverrideModel(Base):
    """Manual override of a BLOCKED decision."""

    __tablename__ = "deploy_overrides"

    id: Mapped[str] = mapped_column(String(36), primary_key=True)
    decision_id: Mapped[str] = mapped_column(
        String(36), ForeignKey("deploy_decisions.id", ondelete="CASCADE"), nullable=False
    )
    overridden_by: Mapped[str] = mapped_column(String(255), nullable=False)
    authorizing_role: Mapped[str] = mapped_column(String(100), nullable=False)
    reason: Mapped[str] = mapped_column(String(500), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)

    __table_args__ = (UniqueConstraint("decision_id", name="uq_override_decision"),)
