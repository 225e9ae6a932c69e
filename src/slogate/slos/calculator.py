"""
Error budget calculator.

Aggregates an SLO's event buckets over its rolling window and derives the
current service level, error budget consumption and status tier.
"""

from __future__ import annotations

from datetime import datetime, timedelta

import structlog
from sqlalchemy.exc import SQLAlchemyError

from slogate.clock import Clock, utcnow, week_start
from slogate.config import Settings, get_settings
from slogate.core.errors import NoActiveSloError, StorageError, UnknownIndicatorError
from slogate.slos.cache import (
    KEY_PREFIX,
    BudgetCache,
    MemoryBudgetCache,
    budget_key,
    is_fresh,
)
from slogate.slos.models import (
    BudgetBatchResult,
    BudgetStatus,
    BurnEvent,
    BurnEventType,
    BurnRateReport,
    ExhaustionProjection,
    PeriodMetrics,
    SliDefinition,
    SloDefinition,
    SLOStatus,
    SystemHealth,
    WeekOverWeek,
    WindowTotals,
    determine_status,
)
from slogate.slos.storage import SLORepository

logger = structlog.get_logger()

BURN_RATE_WINDOWS: dict[str, timedelta] = {
    "1h": timedelta(hours=1),
    "6h": timedelta(hours=6),
    "24h": timedelta(hours=24),
    "7d": timedelta(days=7),
}

# Worst first
_SEVERITY_ORDER = [
    SLOStatus.EXHAUSTED,
    SLOStatus.CRITICAL,
    SLOStatus.WARNING,
    SLOStatus.HEALTHY,
    SLOStatus.UNKNOWN,
]


def compute_budget_status(
    slo: SloDefinition,
    totals: WindowTotals,
    window_start: datetime,
    window_end: datetime,
    warning_threshold: float = 0.5,
    critical_threshold: float = 0.2,
) -> BudgetStatus:
    """
    Derive a BudgetStatus from window totals.

    consumed = min(max(0, target - current), total), so over-performing
    never produces negative consumption and remaining stays in [0, total].
    remaining + consumed equals total exactly, not just to within rounding.
    An empty window reports 100% with status unknown.
    """
    total = slo.error_budget_percent()

    if totals.total_events == 0:
        current = 100.0
        consumed = 0.0
        remaining = total
        status = SLOStatus.UNKNOWN
    else:
        current = totals.good_events * 100 / totals.total_events
        consumed = min(max(0.0, slo.target_percent - current), total)
        remaining = total - consumed
        # total - remaining is exact here, so remaining + consumed == total in floats
        consumed = total - remaining
        status = determine_status(remaining, total, warning_threshold, critical_threshold)

    return BudgetStatus(
        slo_slug=slo.slug,
        sli_slug=slo.sli_slug,
        target_percent=slo.target_percent,
        window=slo.window,
        window_start=window_start,
        window_end=window_end,
        good_events=totals.good_events,
        bad_events=totals.bad_events,
        current_value=current,
        budget_total_percent=total,
        budget_consumed_percent=consumed,
        budget_remaining_percent=remaining,
        status=status,
        observed_latency_ms=totals.observed_latency_ms,
    )


def worst_status(statuses: list[SLOStatus]) -> SLOStatus:
    """Most severe tier in the list (unknown when empty)."""
    for candidate in _SEVERITY_ORDER:
        if candidate in statuses:
            return candidate
    return SLOStatus.UNKNOWN


class BudgetCalculator:
    """Calculator for error budget consumption."""

    def __init__(
        self,
        repository: SLORepository,
        cache: BudgetCache | None = None,
        clock: Clock = utcnow,
        settings: Settings | None = None,
    ) -> None:
        self.repository = repository
        self.cache = cache if cache is not None else MemoryBudgetCache()
        self.clock = clock
        self.settings = settings or get_settings()

    async def calculate_budget(self, slo: SloDefinition | str) -> BudgetStatus:
        """
        Calculate the error budget for an SLO over [now - window, now].

        Args:
            slo: SLO definition or its slug

        Returns:
            BudgetStatus, served from cache while younger than the cache TTL

        Raises:
            NoActiveSloError: slug unknown or SLO inactive
        """
        definition = await self._resolve_slo(slo)
        now = self.clock()
        key = budget_key(definition.sli_slug, definition.slug)

        cached = await self._cache_get(key, now)
        if cached is not None:
            return cached

        sli = await self.repository.get_sli(definition.sli_slug)
        if sli is None:
            raise UnknownIndicatorError(definition.sli_slug)

        window_start = definition.window_start(now)
        totals = await self.repository.get_window_totals(sli, window_start, now)
        status = compute_budget_status(
            definition,
            totals,
            window_start,
            now,
            self.settings.warning_threshold,
            self.settings.critical_threshold,
        )

        logger.debug(
            "budget_calculated",
            slo_slug=definition.slug,
            current_value=status.current_value,
            budget_remaining_percent=status.budget_remaining_percent,
            status=status.status.value,
        )
        await self._cache_set(key, status)
        return status

    async def calculate_budget_for_indicator(self, sli_slug: str) -> list[BudgetStatus]:
        """Budgets of every active SLO bound to an indicator."""
        if await self.repository.get_sli(sli_slug) is None:
            raise UnknownIndicatorError(sli_slug)

        slos = await self.repository.get_active_slos_for_sli(sli_slug)
        if not slos:
            raise NoActiveSloError(
                f"No active SLO is bound to indicator {sli_slug}", {"sli_slug": sli_slug}
            )
        return [await self.calculate_budget(slo) for slo in slos]

    async def calculate_all_budgets(self, persist: bool = False) -> BudgetBatchResult:
        """
        Evaluate every active SLO.

        A failure for one SLO is recorded in the result and logged; the rest
        of the batch still reports. With persist=True each status is also
        written as a budget snapshot, committed per SLO so one failed write
        never discards the others.
        """
        result = BudgetBatchResult()
        session = self.repository.session

        for slo in await self._active_slos():
            try:
                status = await self.calculate_budget(slo)
                if persist:
                    await self.repository.save_budget_snapshot(status)
                    await session.commit()
                result.statuses[slo.slug] = status
            except Exception as exc:
                # A failed statement leaves the transaction unusable
                await session.rollback()
                logger.warning(
                    "budget_calculation_failed",
                    slo_slug=slo.slug,
                    error=str(exc),
                    exc_info=True,
                )
                result.errors[slo.slug] = str(exc)

        logger.info(
            "budgets_calculated",
            calculated=len(result.statuses),
            failed=len(result.errors),
            persisted=persist,
        )
        return result

    async def clear_cache(self, slo_slug: str | None = None) -> None:
        """Invalidate memoized budgets, for one SLO or all of them."""
        if slo_slug is None:
            await self.cache.clear()
            return

        slo = await self.repository.get_slo(slo_slug)
        if slo is None:
            await self.cache.delete_prefix(KEY_PREFIX)
            return
        await self.cache.delete_prefix(budget_key(slo.sli_slug, slo.slug))

    async def burn_rates(self, slo: SloDefinition | str) -> BurnRateReport:
        """
        Burn rate per short window as a multiple of the sustainable rate.

        1.0 means the budget would be used up exactly at the end of the SLO
        window; windows with no events report None.
        """
        definition = await self._resolve_slo(slo)
        sli = await self.repository.get_sli(definition.sli_slug)
        if sli is None:
            raise UnknownIndicatorError(definition.sli_slug)

        now = self.clock()
        allowed_bad_fraction = definition.error_budget_percent() / 100
        rates: dict[str, float | None] = {}

        for label, span in BURN_RATE_WINDOWS.items():
            totals = await self.repository.get_window_totals(sli, now - span, now)
            if totals.total_events == 0:
                rates[label] = None
                continue
            bad_fraction = totals.bad_events / totals.total_events
            rates[label] = bad_fraction / allowed_bad_fraction

        return BurnRateReport(slo_slug=definition.slug, rates=rates)

    def project_exhaustion(
        self,
        status: BudgetStatus,
        burn_rate: float | None,
    ) -> ExhaustionProjection:
        """
        Project when the remaining budget runs out at the given burn rate.

        Risk is high when the budget is gone or will be within a day, medium
        when it will run out before the window ends, low otherwise.
        """
        if status.status == SLOStatus.EXHAUSTED:
            return ExhaustionProjection(
                slo_slug=status.slo_slug,
                burn_rate=burn_rate,
                hours_until_exhaustion=0.0,
                projected_exhaustion=status.window_end,
                risk_level="high",
            )

        if burn_rate is None:
            return ExhaustionProjection(
                slo_slug=status.slo_slug,
                burn_rate=None,
                hours_until_exhaustion=None,
                projected_exhaustion=None,
                risk_level="unknown",
            )

        if burn_rate <= 0:
            return ExhaustionProjection(
                slo_slug=status.slo_slug,
                burn_rate=burn_rate,
                hours_until_exhaustion=None,
                projected_exhaustion=None,
                risk_level="low",
            )

        window_hours = (status.window_end - status.window_start).total_seconds() / 3600
        hours = status.remaining_ratio * window_hours / burn_rate

        if hours < 24:
            risk = "high"
        elif burn_rate > 1:
            risk = "medium"
        else:
            risk = "low"

        return ExhaustionProjection(
            slo_slug=status.slo_slug,
            burn_rate=burn_rate,
            hours_until_exhaustion=round(hours, 1),
            projected_exhaustion=status.window_end + timedelta(hours=hours),
            risk_level=risk,
        )

    async def system_health(self) -> SystemHealth:
        """Roll up all active SLOs into one health summary."""
        batch = await self.calculate_all_budgets()
        statuses = list(batch.statuses.values())

        counts = {tier.value: 0 for tier in SLOStatus}
        for status in statuses:
            counts[status.status.value] += 1

        measured = [s for s in statuses if s.status != SLOStatus.UNKNOWN]
        ratios = [s.remaining_ratio for s in measured]

        return SystemHealth(
            overall_status=worst_status([s.status for s in measured]),
            total_slos=len(statuses) + len(batch.errors),
            counts=counts,
            avg_remaining_ratio=sum(ratios) / len(ratios) if ratios else 0.0,
            min_remaining_ratio=min(ratios) if ratios else 0.0,
            slos_at_risk=[
                s.slo_slug
                for s in measured
                if s.remaining_ratio < self.settings.warning_threshold
            ],
            slos_exhausted=[s.slo_slug for s in measured if s.status == SLOStatus.EXHAUSTED],
            errors=dict(batch.errors),
        )

    async def detect_burn_events(self) -> list[BurnEvent]:
        """
        Record burn events for every active SLO and return the new ones.

        - burn_rate_spike: 1h burn rate above ``burn_spike_rate``
        - threshold_crossed: remaining ratio at or below ``low_budget_ratio``
          while the budget is not yet exhausted
        - slo_breached: measured value below target

        An event type already recorded for the SLO within
        ``burn_event_dedupe_minutes`` is not recorded again. A failure for
        one SLO is logged and the others are still checked.
        """
        now = self.clock()
        since = now - timedelta(minutes=self.settings.burn_event_dedupe_minutes)
        session = self.repository.session
        events: list[BurnEvent] = []

        for slo in await self._active_slos():
            try:
                status = await self.calculate_budget(slo)
                rates = await self.burn_rates(slo)
                recorded = []
                for event in self._burn_event_candidates(status, rates, now):
                    if await self.repository.has_recent_burn_event(slo.slug, event.event_type, since):
                        continue
                    recorded.append(await self.repository.record_burn_event(event))
                await session.commit()
            except Exception as exc:
                await session.rollback()
                logger.warning(
                    "burn_event_detection_failed",
                    slo_slug=slo.slug,
                    error=str(exc),
                    exc_info=True,
                )
                continue

            for event in recorded:
                logger.warning(
                    "budget_burn_event",
                    slo_slug=event.slo_slug,
                    event_type=event.event_type.value,
                    severity=event.severity,
                    message=event.message,
                )
            events.extend(recorded)

        return events

    async def recent_burn_events(self, slo_slug: str | None = None, hours: int = 24) -> list[BurnEvent]:
        """Burn events recorded in the last ``hours``, newest first."""
        return await self.repository.list_burn_events(
            slo_slug=slo_slug, since=self.clock() - timedelta(hours=hours)
        )

    async def week_over_week(self) -> list[WeekOverWeek]:
        """
        Compare this week with last week for every active SLO.

        Weeks start Monday 00:00 UTC. This week runs up to now; last week is
        the full seven days before it.
        """
        now = self.clock()
        this_week = week_start(now)
        last_week = this_week - timedelta(weeks=1)

        comparisons = []
        for slo in await self._active_slos():
            sli = await self.repository.get_sli(slo.sli_slug)
            if sli is None:
                raise UnknownIndicatorError(slo.sli_slug)

            current = await self._period_metrics(slo, sli, this_week, now)
            previous = await self._period_metrics(
                slo, sli, last_week, this_week - timedelta(microseconds=1)
            )
            comparisons.append(
                compare_periods(slo.slug, current, previous, self.settings.trend_change_percent)
            )
        return comparisons

    async def _resolve_slo(self, slo: SloDefinition | str) -> SloDefinition:
        if isinstance(slo, str):
            definition = await self.repository.get_slo(slo)
            if definition is None:
                raise NoActiveSloError(f"No active SLO: {slo}", {"slo_slug": slo})
        else:
            definition = slo
        if not definition.is_active:
            raise NoActiveSloError(
                f"No active SLO: {definition.slug}", {"slo_slug": definition.slug}
            )
        return definition

    async def _active_slos(self) -> list[SloDefinition]:
        try:
            return await self.repository.list_active_slos()
        except SQLAlchemyError as exc:
            await self.repository.session.rollback()
            raise StorageError(f"Failed to list active SLOs: {exc}") from exc

    async def _period_metrics(
        self,
        slo: SloDefinition,
        sli: SliDefinition,
        start: datetime,
        end: datetime,
    ) -> PeriodMetrics:
        totals = await self.repository.get_window_totals(sli, start, end)
        status = compute_budget_status(
            slo, totals, start, end, self.settings.warning_threshold, self.settings.critical_threshold
        )
        return PeriodMetrics(
            start=start,
            end=end,
            good_events=totals.good_events,
            bad_events=totals.bad_events,
            budget_remaining_ratio=status.remaining_ratio,
        )

    def _burn_event_candidates(
        self,
        status: BudgetStatus,
        rates: BurnRateReport,
        now: datetime,
    ) -> list[BurnEvent]:
        rate_1h = rates.rates.get("1h")
        context = {
            "burn_rate_1h": rate_1h,
            "burn_rate_24h": rates.rates.get("24h"),
            "good_events": status.good_events,
            "bad_events": status.bad_events,
            "remaining_ratio": round(status.remaining_ratio, 4),
        }

        def event(event_type: BurnEventType, message: str) -> BurnEvent:
            return BurnEvent(
                slo_slug=status.slo_slug,
                event_type=event_type,
                severity="critical",
                occurred_at=now,
                budget_remaining_percent=status.budget_remaining_percent,
                message=message,
                context=dict(context),
            )

        events = []
        if rate_1h is not None and rate_1h > self.settings.burn_spike_rate:
            events.append(
                event(BurnEventType.BURN_RATE_SPIKE, f"Burn rate spike detected: {rate_1h:.1f}x sustainable")
            )
        measured = status.status not in (SLOStatus.EXHAUSTED, SLOStatus.UNKNOWN)
        if measured and status.remaining_ratio <= self.settings.low_budget_ratio:
            events.append(
                event(
                    BurnEventType.THRESHOLD_CROSSED,
                    f"Budget nearly exhausted: {status.remaining_ratio * 100:.1f}% remaining",
                )
            )
        if not status.slo_met:
            events.append(
                event(
                    BurnEventType.SLO_BREACHED,
                    f"SLO breached: current value {status.current_value:.3f}% "
                    f"(target {status.target_percent}%)",
                )
            )
        return events

    async def _cache_get(self, key: str, now: datetime) -> BudgetStatus | None:
        ttl = self.settings.budget_cache_ttl_seconds
        if ttl <= 0:
            return None
        try:
            cached = await self.cache.get(key)
        except Exception:
            logger.warning("budget_cache_read_failed", key=key, exc_info=True)
            return None
        if cached is not None and is_fresh(cached, now, ttl):
            return cached
        return None

    async def _cache_set(self, key: str, status: BudgetStatus) -> None:
        ttl = self.settings.budget_cache_ttl_seconds
        if ttl <= 0:
            return
        try:
            await self.cache.set(key, status, ttl)
        except Exception:
            logger.warning("budget_cache_write_failed", key=key, exc_info=True)


def format_budget_status(status: BudgetStatus) -> str:
    """One-line human readable summary."""
    line = (
        f"{status.slo_slug}: {status.current_value:.3f}% vs {status.target_percent}% target, "
        f"{status.budget_remaining_percent:.4f} of {status.budget_total_percent:.4f} "
        f"budget points remaining ({status.status.value})"
    )
    if status.observed_latency_ms is not None:
        line += f", observed {status.observed_latency_ms:.1f}ms"
    return line


def compare_periods(
    slo_slug: str,
    current: PeriodMetrics,
    previous: PeriodMetrics,
    change_percent: float = 5.0,
) -> WeekOverWeek:
    """
    Trend between two periods from the change in remaining budget.

    improving/degrading when the remaining share of the budget moved by more
    than ``change_percent`` points, stable otherwise, unknown when either
    period has no events.
    """
    if current.sli_value is None or previous.sli_value is None:
        return WeekOverWeek(
            slo_slug=slo_slug,
            current=current,
            previous=previous,
            budget_change=None,
            sli_change=None,
            trend="unknown",
        )

    budget_change = round((current.budget_remaining_ratio - previous.budget_remaining_ratio) * 100, 2)
    if budget_change > change_percent:
        trend = "improving"
    elif budget_change < -change_percent:
        trend = "degrading"
    else:
        trend = "stable"

    return WeekOverWeek(
        slo_slug=slo_slug,
        current=current,
        previous=previous,
        budget_change=budget_change,
        sli_change=round(current.sli_value - previous.sli_value, 4),
        trend=trend,
    )
