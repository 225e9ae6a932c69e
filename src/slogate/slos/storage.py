"""
SLI/SLO storage and repository.

Handles database operations for indicator and objective definitions, the
time-bucketed event counters, and persisted budget snapshots.
"""

from __future__ import annotations

from datetime import datetime
from typing import Any

from sqlalchemy import case, delete, func, null, select
from sqlalchemy.dialects.postgresql import insert as pg_insert
from sqlalchemy.dialects.sqlite import insert as sqlite_insert
from sqlalchemy.ext.asyncio import AsyncSession

from slogate.clock import utcnow
from slogate.core.errors import StorageError, UnknownIndicatorError, ValidationError
from slogate.db.models import (
    BudgetBurnEventModel,
    BudgetSnapshotModel,
    SliDefinitionModel,
    SliEventBucketModel,
    SloDefinitionModel,
)
from slogate.slos.models import (
    PERCENTILE_KEYS,
    BudgetStatus,
    BurnEvent,
    BurnEventType,
    SliDefinition,
    SLIKind,
    SloDefinition,
    WindowTotals,
)

_BUCKET_KEY = ["sli_id", "bucket_start", "source"]


class SLORepository:
    """Repository for SLI/SLO database operations."""

    def __init__(self, session: AsyncSession) -> None:
        self.session = session

    # Indicators

    async def create_sli(self, sli: SliDefinition) -> SliDefinition:
        """Register a new indicator."""
        sli.validate()
        if await self._get_sli_model(sli.slug) is not None:
            raise ValidationError(f"Indicator already registered: {sli.slug}", {"sli_slug": sli.slug})

        model = SliDefinitionModel(
            slug=sli.slug,
            name=sli.name,
            description=sli.description,
            kind=sli.kind.value,
            threshold_ms=sli.threshold_ms,
            percentile=sli.percentile,
            is_active=sli.is_active,
        )
        self.session.add(model)
        await self.session.flush()
        return self._model_to_sli(model)

    async def get_sli(self, slug: str) -> SliDefinition | None:
        """Get an indicator by slug."""
        model = await self._get_sli_model(slug)
        if model is None:
            return None
        return self._model_to_sli(model)

    async def list_slis(self) -> list[SliDefinition]:
        """All registered indicators, ordered by slug."""
        result = await self.session.execute(select(SliDefinitionModel).order_by(SliDefinitionModel.slug))
        return [self._model_to_sli(model) for model in result.scalars().all()]

    async def update_sli_metadata(
        self,
        slug: str,
        *,
        name: str | None = None,
        description: str | None = None,
        is_active: bool | None = None,
    ) -> SliDefinition:
        """Edit indicator metadata. Kind and threshold are immutable."""
        model = await self._get_sli_model(slug)
        if model is None:
            raise UnknownIndicatorError(slug)

        if name is not None:
            model.name = name
        if description is not None:
            model.description = description
        if is_active is not None:
            model.is_active = is_active
        model.updated_at = utcnow()

        await self.session.flush()
        return self._model_to_sli(model)

    # Objectives

    async def create_slo(self, slo: SloDefinition) -> SloDefinition:
        """Create a new SLO bound to an active indicator."""
        slo.validate()
        sli_model = await self._get_sli_model(slo.sli_slug)
        if sli_model is None:
            raise UnknownIndicatorError(slo.sli_slug)
        if not sli_model.is_active:
            raise ValidationError(
                f"Indicator is not active: {slo.sli_slug}", {"sli_slug": slo.sli_slug}
            )
        if await self._get_slo_model(slo.slug) is not None:
            raise ValidationError(f"SLO already defined: {slo.slug}", {"slo_slug": slo.slug})

        model = SloDefinitionModel(
            slug=slo.slug,
            name=slo.name,
            description=slo.description,
            sli_id=sli_model.id,
            target_percent=slo.target_percent,
            window=slo.window,
            deploy_types=slo.deploy_types,
            owner_team=slo.owner_team,
            is_active=slo.is_active,
        )
        model.sli = sli_model
        self.session.add(model)
        await self.session.flush()
        return self._model_to_slo(model)

    async def get_slo(self, slug: str) -> SloDefinition | None:
        """Get an SLO by slug."""
        model = await self._get_slo_model(slug)
        if model is None:
            return None
        return self._model_to_slo(model)

    async def set_slo_active(self, slug: str, is_active: bool) -> None:
        model = await self._get_slo_model(slug)
        if model is None:
            raise ValidationError(f"SLO not found: {slug}", {"slo_slug": slug})
        model.is_active = is_active
        model.updated_at = utcnow()
        await self.session.flush()

    async def list_active_slos(self) -> list[SloDefinition]:
        """Get all active SLOs, ordered by slug."""
        result = await self.session.execute(
            select(SloDefinitionModel)
            .where(SloDefinitionModel.is_active.is_(True))
            .order_by(SloDefinitionModel.slug)
        )
        return [self._model_to_slo(model) for model in result.scalars().all()]

    async def get_active_slos_for_sli(self, sli_slug: str) -> list[SloDefinition]:
        """Get active SLOs bound to an indicator."""
        result = await self.session.execute(
            select(SloDefinitionModel)
            .join(SloDefinitionModel.sli)
            .where(
                SliDefinitionModel.slug == sli_slug,
                SloDefinitionModel.is_active.is_(True),
            )
            .order_by(SloDefinitionModel.slug)
        )
        return [self._model_to_slo(model) for model in result.scalars().all()]

    # Event buckets

    async def increment_bucket(
        self,
        sli_id: int,
        bucket_start: datetime,
        *,
        source: str = "default",
        good: int = 0,
        bad: int = 0,
        samples: int = 0,
        latency_sum_ms: float = 0.0,
        percentiles: dict[str, float] | None = None,
        tags: dict[str, Any] | None = None,
    ) -> None:
        """
        Atomically add to the bucket keyed by (sli, bucket_start, source).

        Uses INSERT ... ON CONFLICT DO UPDATE so concurrent writers are
        additive without a read-modify-write round trip. Percentile columns
        keep the worst value seen in the bucket.
        """
        insert = self._insert_for_dialect()
        percentiles = percentiles or {}

        values: dict[str, Any] = {
            "sli_id": sli_id,
            "bucket_start": bucket_start,
            "source": source,
            "good_count": good,
            "bad_count": bad,
            "sample_count": samples,
            "latency_sum_ms": latency_sum_ms,
            "tags": tags if tags is not None else null(),
            "updated_at": utcnow(),
        }
        for key in PERCENTILE_KEYS:
            values[f"{key}_ms"] = percentiles.get(key)

        stmt = insert(SliEventBucketModel).values(**values)
        excluded = stmt.excluded
        bucket = SliEventBucketModel

        update_values: dict[str, Any] = {
            "good_count": bucket.good_count + excluded.good_count,
            "bad_count": bucket.bad_count + excluded.bad_count,
            "sample_count": bucket.sample_count + excluded.sample_count,
            "latency_sum_ms": bucket.latency_sum_ms + excluded.latency_sum_ms,
            "tags": func.coalesce(excluded.tags, bucket.tags),
            "updated_at": excluded.updated_at,
        }
        for key in PERCENTILE_KEYS:
            current = getattr(bucket, f"{key}_ms")
            incoming = getattr(excluded, f"{key}_ms")
            update_values[f"{key}_ms"] = case(
                (current.is_(None), incoming),
                (incoming > current, incoming),
                else_=current,
            )

        stmt = stmt.on_conflict_do_update(index_elements=_BUCKET_KEY, set_=update_values)
        await self.session.execute(stmt)

    async def get_window_totals(
        self,
        sli: SliDefinition,
        start: datetime,
        end: datetime,
    ) -> WindowTotals:
        """Sum bucket counters with start <= bucket_start <= end."""
        bucket = SliEventBucketModel
        percentile_col = getattr(bucket, f"{sli.percentile}_ms")

        result = await self.session.execute(
            select(
                func.coalesce(func.sum(bucket.good_count), 0),
                func.coalesce(func.sum(bucket.bad_count), 0),
                func.max(percentile_col),
                func.max(bucket.max_ms),
            )
            .join(SliDefinitionModel, SliDefinitionModel.id == bucket.sli_id)
            .where(
                SliDefinitionModel.slug == sli.slug,
                bucket.bucket_start >= start,
                bucket.bucket_start <= end,
            )
        )
        good, bad, worst_percentile, worst_sample = result.one()

        observed = None
        if sli.kind == SLIKind.THRESHOLD:
            observed = worst_percentile if worst_percentile is not None else worst_sample

        return WindowTotals(
            good_events=int(good),
            bad_events=int(bad),
            observed_latency_ms=float(observed) if observed is not None else None,
        )

    async def delete_buckets_before(self, cutoff: datetime) -> int:
        """Retention policy: drop buckets that started before cutoff."""
        result = await self.session.execute(
            delete(SliEventBucketModel).where(SliEventBucketModel.bucket_start < cutoff)
        )
        return result.rowcount or 0  # type: ignore[attr-defined]

    # Budget snapshots

    async def save_budget_snapshot(self, status: BudgetStatus) -> None:
        """Append a budget evaluation to the snapshot history."""
        slo_model = await self._get_slo_model(status.slo_slug)
        if slo_model is None:
            raise ValidationError(f"SLO not found: {status.slo_slug}", {"slo_slug": status.slo_slug})

        model = BudgetSnapshotModel(
            slo_id=slo_model.id,
            window_start=status.window_start,
            window_end=status.window_end,
            good_events=status.good_events,
            bad_events=status.bad_events,
            current_value=status.current_value,
            budget_total_percent=status.budget_total_percent,
            budget_consumed_percent=status.budget_consumed_percent,
            budget_remaining_percent=status.budget_remaining_percent,
            status=status.status.value,
            observed_latency_ms=status.observed_latency_ms,
        )
        self.session.add(model)
        await self.session.flush()

    async def get_budget_snapshots(self, slo_slug: str, limit: int = 30) -> list[dict[str, Any]]:
        """Most recent snapshots for an SLO, newest first."""
        result = await self.session.execute(
            select(BudgetSnapshotModel)
            .join(SloDefinitionModel, SloDefinitionModel.id == BudgetSnapshotModel.slo_id)
            .where(SloDefinitionModel.slug == slo_slug)
            .order_by(BudgetSnapshotModel.window_end.desc(), BudgetSnapshotModel.id.desc())
            .limit(limit)
        )
        return [
            {
                "window_start": model.window_start.isoformat(),
                "window_end": model.window_end.isoformat(),
                "current_value": model.current_value,
                "budget_remaining_percent": model.budget_remaining_percent,
                "status": model.status,
            }
            for model in result.scalars().all()
        ]

    # Burn events

    async def record_burn_event(self, event: BurnEvent) -> BurnEvent:
        """Append a burn event for the event's SLO."""
        slo_model = await self._get_slo_model(event.slo_slug)
        if slo_model is None:
            raise ValidationError(f"SLO not found: {event.slo_slug}", {"slo_slug": event.slo_slug})

        model = BudgetBurnEventModel(
            slo_id=slo_model.id,
            occurred_at=event.occurred_at,
            event_type=event.event_type.value,
            severity=event.severity,
            budget_remaining_percent=event.budget_remaining_percent,
            message=event.message,
            context=event.context or None,
        )
        self.session.add(model)
        await self.session.flush()
        event.id = model.id
        return event

    async def has_recent_burn_event(
        self,
        slo_slug: str,
        event_type: BurnEventType,
        since: datetime,
    ) -> bool:
        result = await self.session.execute(
            select(BudgetBurnEventModel.id)
            .join(SloDefinitionModel, SloDefinitionModel.id == BudgetBurnEventModel.slo_id)
            .where(
                SloDefinitionModel.slug == slo_slug,
                BudgetBurnEventModel.event_type == event_type.value,
                BudgetBurnEventModel.occurred_at >= since,
            )
            .limit(1)
        )
        return result.first() is not None

    async def list_burn_events(
        self,
        slo_slug: str | None = None,
        since: datetime | None = None,
        limit: int = 100,
    ) -> list[BurnEvent]:
        """Burn events, newest first."""
        stmt = (
            select(BudgetBurnEventModel, SloDefinitionModel.slug)
            .join(SloDefinitionModel, SloDefinitionModel.id == BudgetBurnEventModel.slo_id)
            .order_by(BudgetBurnEventModel.occurred_at.desc(), BudgetBurnEventModel.id.desc())
            .limit(limit)
        )
        if slo_slug is not None:
            stmt = stmt.where(SloDefinitionModel.slug == slo_slug)
        if since is not None:
            stmt = stmt.where(BudgetBurnEventModel.occurred_at >= since)

        result = await self.session.execute(stmt)
        return [
            BurnEvent(
                id=model.id,
                slo_slug=slug,
                event_type=BurnEventType(model.event_type),
                severity=model.severity,
                occurred_at=model.occurred_at,
                budget_remaining_percent=model.budget_remaining_percent,
                message=model.message,
                context=dict(model.context or {}),
            )
            for model, slug in result.all()
        ]

    # Helpers

    def _insert_for_dialect(self) -> Any:
        dialect = self.session.get_bind().dialect.name
        if dialect == "postgresql":
            return pg_insert
        if dialect == "sqlite":
            return sqlite_insert
        raise StorageError(
            f"Atomic bucket upsert is not supported on {dialect}", {"dialect": dialect}
        )

    async def _get_sli_model(self, slug: str) -> SliDefinitionModel | None:
        result = await self.session.execute(
            select(SliDefinitionModel).where(SliDefinitionModel.slug == slug)
        )
        return result.scalar_one_or_none()

    async def _get_slo_model(self, slug: str) -> SloDefinitionModel | None:
        result = await self.session.execute(
            select(SloDefinitionModel).where(SloDefinitionModel.slug == slug)
        )
        return result.unique().scalar_one_or_none()

    @staticmethod
    def _model_to_sli(model: SliDefinitionModel) -> SliDefinition:
        return SliDefinition(
            id=model.id,
            slug=model.slug,
            name=model.name,
            description=model.description or "",
            kind=SLIKind(model.kind),
            threshold_ms=model.threshold_ms,
            percentile=model.percentile,
            is_active=model.is_active,
        )

    @staticmethod
    def _model_to_slo(model: SloDefinitionModel) -> SloDefinition:
        return SloDefinition(
            id=model.id,
            slug=model.slug,
            name=model.name,
            description=model.description or "",
            sli_slug=model.sli.slug,
            target_percent=model.target_percent,
            window=model.window,
            deploy_types=list(model.deploy_types) if model.deploy_types is not None else None,
            owner_team=model.owner_team,
            is_active=model.is_active,
        )
