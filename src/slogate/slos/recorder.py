"""
SLI recorder.

Accepts good/bad event counts and latency observations for a named indicator
and folds them into time-bucketed counters. Each call commits on its own so
a recording is durable once it returns.
"""

from __future__ import annotations

import math
from datetime import datetime, timedelta
from typing import Any

import structlog
from sqlalchemy.exc import SQLAlchemyError

from slogate.clock import Clock, bucket_floor, utcnow
from slogate.config import Settings, get_settings
from slogate.core.errors import (
    InvalidCountError,
    StorageError,
    UnknownIndicatorError,
    ValidationError,
    WrongIndicatorKindError,
)
from slogate.slos.cache import BudgetCache, indicator_prefix
from slogate.slos.models import (
    PERCENTILE_KEYS,
    DeployType,
    SliDefinition,
    SLIKind,
    SloDefinition,
)
from slogate.slos.storage import SLORepository

logger = structlog.get_logger()


def _validate_count(name: str, value: Any) -> int:
    # bool is an int subclass; True is not a count
    if isinstance(value, bool) or not isinstance(value, int):
        raise InvalidCountError(f"{name} must be an integer", {name: repr(value)})
    if value < 0:
        raise InvalidCountError(f"{name} must not be negative", {name: value})
    return value


def _validate_latency(name: str, value: Any) -> float:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        raise InvalidCountError(f"{name} must be a number", {name: repr(value)})
    if math.isnan(value) or math.isinf(value) or value < 0:
        raise InvalidCountError(f"{name} must be a finite, non-negative number", {name: value})
    return float(value)


class SliRecorder:
    """Writes indicator observations into event buckets."""

    def __init__(
        self,
        repository: SLORepository,
        cache: BudgetCache | None = None,
        clock: Clock = utcnow,
        settings: Settings | None = None,
    ) -> None:
        self.repository = repository
        self.cache = cache
        self.clock = clock
        self.settings = settings or get_settings()

    async def register_indicator(
        self,
        slug: str,
        name: str,
        kind: SLIKind | str = SLIKind.EVENT_RATIO,
        threshold_ms: float | None = None,
        percentile: str = "p95",
        description: str = "",
    ) -> SliDefinition:
        """Register a new indicator."""
        try:
            kind = SLIKind(kind)
        except ValueError:
            raise ValidationError(f"Unknown indicator kind: {kind}", {"sli_slug": slug}) from None

        sli = await self.repository.create_sli(
            SliDefinition(
                slug=slug,
                name=name,
                kind=kind,
                description=description,
                threshold_ms=threshold_ms if kind == SLIKind.THRESHOLD else None,
                percentile=percentile,
            )
        )
        await self._commit()
        logger.info("sli_registered", sli_slug=slug, kind=kind.value)
        return sli

    async def define_slo(
        self,
        slug: str,
        name: str,
        sli_slug: str,
        target_percent: float,
        window: str = "30d",
        deploy_types: list[str] | None = None,
        owner_team: str | None = None,
        description: str = "",
    ) -> SloDefinition:
        """Define an SLO against a registered indicator."""
        if deploy_types is not None:
            allowed = {t.value for t in DeployType}
            unknown = [t for t in deploy_types if t not in allowed]
            if unknown:
                raise ValidationError(
                    f"Unknown deploy types: {', '.join(unknown)}", {"slo_slug": slug}
                )

        slo = await self.repository.create_slo(
            SloDefinition(
                slug=slug,
                name=name,
                sli_slug=sli_slug,
                target_percent=target_percent,
                window=window,
                description=description,
                deploy_types=deploy_types,
                owner_team=owner_team,
            )
        )
        await self._commit()
        logger.info(
            "slo_defined",
            slo_slug=slug,
            sli_slug=sli_slug,
            target_percent=target_percent,
            window=window,
        )
        return slo

    async def record_good_bad(
        self,
        sli_slug: str,
        good_count: int,
        bad_count: int,
        source: str = "default",
        tags: dict[str, Any] | None = None,
        at: datetime | None = None,
    ) -> datetime:
        """
        Add good/bad events to the bucket containing ``at`` (default: now).

        Returns the bucket start the events were counted in.
        """
        good = _validate_count("good_count", good_count)
        bad = _validate_count("bad_count", bad_count)

        sli = await self._get_indicator(sli_slug)
        if sli.kind != SLIKind.EVENT_RATIO:
            raise WrongIndicatorKindError(sli_slug, sli.kind.value, SLIKind.EVENT_RATIO.value)

        bucket_start = bucket_floor(at or self.clock(), self.settings.bucket_seconds)
        await self._increment(
            sli,
            bucket_start,
            source=source,
            good=good,
            bad=bad,
            samples=good + bad,
            tags=tags,
        )

        logger.info(
            "sli_recorded",
            sli_slug=sli_slug,
            good=good,
            bad=bad,
            source=source,
            bucket_start=bucket_start.isoformat(),
        )
        await self._invalidate(sli_slug)
        return bucket_start

    async def record_latency(
        self,
        sli_slug: str,
        value: float | None = None,
        percentiles: dict[str, float] | None = None,
        source: str = "default",
        tags: dict[str, Any] | None = None,
        at: datetime | None = None,
    ) -> bool:
        """
        Store one latency observation for a threshold indicator.

        Either a raw sample ``value`` or a pre-aggregated ``percentiles`` map
        (keys p50, p95, p99, avg, max) is accepted. The observation counts as
        good when the judged latency is within the indicator's threshold.

        Returns True if the observation was good.
        """
        if value is None and percentiles is None:
            raise InvalidCountError("Either a latency value or percentiles are required")
        if value is not None and percentiles is not None:
            raise InvalidCountError("Pass a latency value or percentiles, not both")

        clean: dict[str, float] = {}
        if percentiles is not None:
            for key, raw in percentiles.items():
                if key not in PERCENTILE_KEYS:
                    raise InvalidCountError(
                        f"Unknown percentile key: {key}",
                        {"allowed": ",".join(PERCENTILE_KEYS)},
                    )
                clean[key] = _validate_latency(key, raw)
        else:
            sample = _validate_latency("value", value)

        sli = await self._get_indicator(sli_slug)
        if sli.kind != SLIKind.THRESHOLD:
            raise WrongIndicatorKindError(sli_slug, sli.kind.value, SLIKind.THRESHOLD.value)
        threshold_ms = sli.threshold_ms
        if threshold_ms is None:
            raise ValidationError(
                f"Threshold indicator {sli_slug} has no threshold_ms", {"sli_slug": sli_slug}
            )

        if percentiles is not None:
            if sli.percentile not in clean:
                raise InvalidCountError(
                    f"Indicator {sli_slug} is judged on {sli.percentile}, which is missing",
                    {"sli_slug": sli_slug, "percentile": sli.percentile},
                )
            judged = clean[sli.percentile]
        else:
            judged = sample
            clean = {"max": sample}

        is_good = judged <= threshold_ms
        bucket_start = bucket_floor(at or self.clock(), self.settings.bucket_seconds)
        await self._increment(
            sli,
            bucket_start,
            source=source,
            good=1 if is_good else 0,
            bad=0 if is_good else 1,
            samples=1,
            latency_sum_ms=judged,
            percentiles=clean,
            tags=tags,
        )

        logger.info(
            "sli_latency_recorded",
            sli_slug=sli_slug,
            latency_ms=judged,
            threshold_ms=threshold_ms,
            good=is_good,
            source=source,
            bucket_start=bucket_start.isoformat(),
        )
        await self._invalidate(sli_slug)
        return is_good

    async def prune(self, older_than: timedelta | None = None) -> int:
        """Delete buckets older than the retention period. Returns rows removed."""
        if older_than is None:
            older_than = timedelta(days=self.settings.retention_days)
        cutoff = self.clock() - older_than

        try:
            removed = await self.repository.delete_buckets_before(cutoff)
        except SQLAlchemyError as exc:
            await self.repository.session.rollback()
            raise StorageError(f"Failed to prune buckets: {exc}") from exc
        await self._commit()

        logger.info("sli_buckets_pruned", cutoff=cutoff.isoformat(), removed=removed)
        if removed and self.cache is not None:
            try:
                await self.cache.clear()
            except Exception:
                logger.warning("budget_cache_invalidation_failed", scope="all", exc_info=True)
        return removed

    async def _get_indicator(self, sli_slug: str) -> SliDefinition:
        sli = await self.repository.get_sli(sli_slug)
        if sli is None:
            raise UnknownIndicatorError(sli_slug)
        return sli

    async def _increment(self, sli: SliDefinition, bucket_start: datetime, **counters: Any) -> None:
        if sli.id is None:
            raise UnknownIndicatorError(sli.slug)
        try:
            await self.repository.increment_bucket(sli.id, bucket_start, **counters)
        except SQLAlchemyError as exc:
            await self.repository.session.rollback()
            raise StorageError(
                f"Failed to record events for {sli.slug}: {exc}", {"sli_slug": sli.slug}
            ) from exc
        await self._commit()

    async def _commit(self) -> None:
        try:
            await self.repository.session.commit()
        except SQLAlchemyError as exc:
            await self.repository.session.rollback()
            raise StorageError(f"Commit failed: {exc}") from exc

    async def _invalidate(self, sli_slug: str) -> None:
        """Drop cached budgets for the indicator. Failures are logged, never raised."""
        if self.cache is None:
            return
        try:
            await self.cache.delete_prefix(indicator_prefix(sli_slug))
        except Exception:
            logger.warning("budget_cache_invalidation_failed", sli_slug=sli_slug, exc_info=True)
