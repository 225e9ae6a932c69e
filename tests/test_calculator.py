"""
Tests for BudgetCalculator.
"""

import random
from datetime import datetime, timedelta
from unittest.mock import patch

import pytest
from slogate.clock import bucket_floor, week_start
from slogate.core.errors import NoActiveSloError, UnknownIndicatorError
from slogate.db.models import BudgetSnapshotModel
from slogate.slos.calculator import (
    BudgetCalculator,
    compare_periods,
    compute_budget_status,
    format_budget_status,
    worst_status,
)
from slogate.slos.models import (
    BudgetStatus,
    BurnEventType,
    PeriodMetrics,
    SloDefinition,
    SLOStatus,
    WindowTotals,
)


async def _slo(recorder, slug="checkout-availability", sli_slug="checkout-requests", target=99.0, window="30d"):
    if await recorder.repository.get_sli(sli_slug) is None:
        await recorder.register_indicator(sli_slug, sli_slug)
    return await recorder.define_slo(slug, slug, sli_slug, target, window=window)


def _status(status=SLOStatus.HEALTHY, remaining=1.0, total=1.0):
    return BudgetStatus(
        slo_slug="checkout-availability",
        sli_slug="checkout-requests",
        target_percent=99.0,
        window="30d",
        window_start=datetime(2026, 1, 31, 12, 0),
        window_end=datetime(2026, 3, 2, 12, 0),
        good_events=100,
        bad_events=0,
        current_value=100.0,
        budget_total_percent=total,
        budget_consumed_percent=total - remaining,
        budget_remaining_percent=remaining,
        status=status,
    )


class TestComputeBudgetStatus:
    def test_over_performing_consumes_nothing(self):
        slo = SloDefinition(slug="a", name="A", sli_slug="api", target_percent=99.0)
        now = datetime(2026, 3, 2, 12, 0)

        status = compute_budget_status(slo, WindowTotals(1000, 0), slo.window_start(now), now)

        assert status.current_value == 100.0
        assert status.budget_consumed_percent == 0.0
        assert status.budget_remaining_percent == pytest.approx(1.0)
        assert status.status == SLOStatus.HEALTHY

    def test_consumption_capped_at_total(self):
        slo = SloDefinition(slug="a", name="A", sli_slug="api", target_percent=99.0)
        now = datetime(2026, 3, 2, 12, 0)

        status = compute_budget_status(slo, WindowTotals(0, 50), slo.window_start(now), now)

        assert status.current_value == 0.0
        assert status.budget_consumed_percent == pytest.approx(1.0)
        assert status.budget_remaining_percent == 0.0
        assert status.status == SLOStatus.EXHAUSTED

    @pytest.mark.parametrize(
        "target,good,bad",
        [
            (38.07, 74, 333),
            (99.9, 999, 1),
            (99.99, 123457, 89),
            (99.0, 981, 19),
            (50.0, 3, 7),
            (0.5, 1, 999),
        ],
    )
    def test_remaining_and_consumed_sum_to_total(self, target, good, bad):
        slo = SloDefinition(slug="a", name="A", sli_slug="api", target_percent=target)
        now = datetime(2026, 3, 2, 12, 0)

        status = compute_budget_status(slo, WindowTotals(good, bad), slo.window_start(now), now)

        assert status.budget_remaining_percent + status.budget_consumed_percent == status.budget_total_percent
        assert 0.0 <= status.budget_remaining_percent <= status.budget_total_percent
        assert 0.0 <= status.budget_consumed_percent <= status.budget_total_percent

    def test_remaining_and_consumed_sum_to_total_across_targets(self):
        rng = random.Random(20260302)
        now = datetime(2026, 3, 2, 12, 0)

        for _ in range(5000):
            target = rng.randint(1, 99999) / 1000
            slo = SloDefinition(slug="a", name="A", sli_slug="api", target_percent=target)
            totals = WindowTotals(rng.randint(0, 10**6), rng.randint(0, 10**5))

            status = compute_budget_status(slo, totals, slo.window_start(now), now)

            total = status.budget_total_percent
            assert status.budget_remaining_percent + status.budget_consumed_percent == total, (target, totals)
            assert 0.0 <= status.budget_remaining_percent <= total

    def test_worst_status(self):
        assert worst_status([SLOStatus.HEALTHY, SLOStatus.CRITICAL, SLOStatus.WARNING]) == SLOStatus.CRITICAL
        assert worst_status([SLOStatus.UNKNOWN, SLOStatus.HEALTHY]) == SLOStatus.HEALTHY
        assert worst_status([]) == SLOStatus.UNKNOWN


class TestCalculateBudget:
    @pytest.mark.asyncio
    async def test_target_met_exactly_is_healthy(self, recorder, calculator):
        await _slo(recorder, target=99.9)
        await recorder.record_good_bad("checkout-requests", 999, 1)

        status = await calculator.calculate_budget("checkout-availability")

        assert status.current_value == pytest.approx(99.9)
        assert status.budget_consumed_percent == pytest.approx(0.0)
        assert status.budget_remaining_percent == pytest.approx(0.1)
        assert status.status == SLOStatus.HEALTHY

    @pytest.mark.asyncio
    async def test_exhausted_budget(self, recorder, calculator):
        await _slo(recorder, target=99.0)
        await recorder.record_good_bad("checkout-requests", 900, 100)

        status = await calculator.calculate_budget("checkout-availability")

        assert status.current_value == pytest.approx(90.0)
        assert status.budget_total_percent == pytest.approx(1.0)
        assert status.budget_consumed_percent == pytest.approx(1.0)
        assert status.budget_remaining_percent == 0.0
        assert status.status == SLOStatus.EXHAUSTED
        assert not status.slo_met

    @pytest.mark.asyncio
    @pytest.mark.parametrize(
        "good,bad,expected",
        [
            (9835, 165, SLOStatus.WARNING),
            (981, 19, SLOStatus.CRITICAL),
            (1000, 0, SLOStatus.HEALTHY),
        ],
    )
    async def test_status_tiers(self, recorder, calculator, good, bad, expected):
        await _slo(recorder, target=99.0)
        await recorder.record_good_bad("checkout-requests", good, bad)

        status = await calculator.calculate_budget("checkout-availability")

        assert status.status == expected
        assert status.budget_remaining_percent + status.budget_consumed_percent == pytest.approx(
            status.budget_total_percent
        )

    @pytest.mark.asyncio
    async def test_empty_window_is_unknown(self, recorder, calculator):
        await _slo(recorder)

        status = await calculator.calculate_budget("checkout-availability")

        assert status.current_value == 100.0
        assert status.total_events == 0
        assert status.budget_consumed_percent == 0.0
        assert status.status == SLOStatus.UNKNOWN
        assert status.slo_met

    @pytest.mark.asyncio
    async def test_incremental_recording_updates_budget(self, recorder, calculator, clock):
        await _slo(recorder, target=99.0)

        await recorder.record_good_bad("checkout-requests", 100, 0)
        first = await calculator.calculate_budget("checkout-availability")
        clock.advance(minutes=2)
        await recorder.record_good_bad("checkout-requests", 0, 100)
        second = await calculator.calculate_budget("checkout-availability")

        assert first.current_value == 100.0
        assert second.current_value == pytest.approx(50.0)
        assert second.total_events == 200

    @pytest.mark.asyncio
    async def test_repeated_calculation_is_stable(self, recorder, repository, clock, settings):
        await _slo(recorder, target=99.0)
        await recorder.record_good_bad("checkout-requests", 990, 4)
        settings.budget_cache_ttl_seconds = 0
        uncached = BudgetCalculator(repository, clock=clock, settings=settings)

        first = await uncached.calculate_budget("checkout-availability")
        second = await uncached.calculate_budget("checkout-availability")

        assert first == second

    @pytest.mark.asyncio
    async def test_events_leave_the_rolling_window(self, recorder, calculator, clock):
        await _slo(recorder, target=99.0, window="1h")
        await recorder.record_good_bad("checkout-requests", 0, 50, at=clock.now - timedelta(hours=2))
        await recorder.record_good_bad("checkout-requests", 10, 0, at=clock.now - timedelta(hours=1))
        await recorder.record_good_bad("checkout-requests", 30, 0, at=clock.now - timedelta(minutes=30))

        status = await calculator.calculate_budget("checkout-availability")

        assert status.window_start == clock.now - timedelta(hours=1)
        assert status.window_end == clock.now
        assert status.good_events == 40
        assert status.bad_events == 0

    @pytest.mark.asyncio
    async def test_threshold_indicator(self, recorder, calculator):
        await recorder.register_indicator(
            "checkout-latency", "Checkout latency", kind="threshold", threshold_ms=300
        )
        await recorder.define_slo("checkout-fast", "Checkout fast", "checkout-latency", 90.0)
        for _ in range(9):
            await recorder.record_latency("checkout-latency", value=100)
        await recorder.record_latency("checkout-latency", value=500)

        status = await calculator.calculate_budget("checkout-fast")

        assert status.current_value == pytest.approx(90.0)
        assert status.status == SLOStatus.HEALTHY
        assert status.observed_latency_ms == 500.0
        assert "observed 500.0ms" in format_budget_status(status)

    @pytest.mark.asyncio
    async def test_unknown_slo(self, calculator):
        with pytest.raises(NoActiveSloError):
            await calculator.calculate_budget("missing")

    @pytest.mark.asyncio
    async def test_inactive_slo(self, recorder, repository, calculator):
        await _slo(recorder)
        await repository.set_slo_active("checkout-availability", False)
        await repository.session.commit()

        with pytest.raises(NoActiveSloError):
            await calculator.calculate_budget("checkout-availability")


class TestCaching:
    @pytest.mark.asyncio
    async def test_cached_within_ttl_then_recomputed(self, recorder, repository, calculator, clock):
        sli = await recorder.register_indicator("checkout-requests", "Checkout")
        await recorder.define_slo("checkout-availability", "Checkout", "checkout-requests", 99.0)
        await recorder.record_good_bad("checkout-requests", 100, 0)
        first = await calculator.calculate_budget("checkout-availability")

        # Written behind the recorder's back, so nothing invalidates the cache
        await repository.increment_bucket(sli.id, bucket_floor(clock.now, 60), bad=100)
        await repository.session.commit()

        clock.advance(seconds=299)
        assert await calculator.calculate_budget("checkout-availability") == first

        clock.advance(seconds=1)
        refreshed = await calculator.calculate_budget("checkout-availability")
        assert refreshed.bad_events == 100
        assert refreshed.window_end == clock.now

    @pytest.mark.asyncio
    async def test_clear_cache(self, recorder, repository, calculator, clock):
        sli = await recorder.register_indicator("checkout-requests", "Checkout")
        await recorder.define_slo("checkout-availability", "Checkout", "checkout-requests", 99.0)
        await calculator.calculate_budget("checkout-availability")
        await repository.increment_bucket(sli.id, bucket_floor(clock.now, 60), good=5)
        await repository.session.commit()

        await calculator.clear_cache("checkout-availability")

        status = await calculator.calculate_budget("checkout-availability")
        assert status.good_events == 5


class TestBatch:
    @pytest.mark.asyncio
    async def test_failure_is_isolated(self, recorder, calculator, monkeypatch):
        await _slo(recorder, slug="checkout-availability")
        await _slo(recorder, slug="search-availability", sli_slug="search-requests")
        await recorder.record_good_bad("checkout-requests", 10, 0)

        original = calculator.calculate_budget

        async def flaky(slo):
            if slo.slug == "search-availability":
                raise RuntimeError("disk on fire")
            return await original(slo)

        monkeypatch.setattr(calculator, "calculate_budget", flaky)

        result = await calculator.calculate_all_budgets()

        assert list(result.statuses) == ["checkout-availability"]
        assert result.errors == {"search-availability": "disk on fire"}
        assert not result.ok

    @pytest.mark.asyncio
    async def test_failed_snapshot_write_does_not_poison_the_batch(self, recorder, repository, calculator):
        checkout = await _slo(recorder, slug="checkout-availability")
        await _slo(recorder, slug="search-availability", sli_slug="search-requests")
        await recorder.record_good_bad("checkout-requests", 99, 1)
        await recorder.record_good_bad("search-requests", 99, 1)

        original = repository.save_budget_snapshot

        async def save_or_violate_not_null(status):
            if status.slo_slug == "checkout-availability":
                repository.session.add(
                    BudgetSnapshotModel(
                        slo_id=checkout.id,
                        window_start=status.window_start,
                        window_end=status.window_end,
                        current_value=status.current_value,
                        budget_total_percent=status.budget_total_percent,
                        budget_consumed_percent=status.budget_consumed_percent,
                        budget_remaining_percent=status.budget_remaining_percent,
                        status=None,
                    )
                )
                await repository.session.flush()
            await original(status)

        with patch.object(repository, "save_budget_snapshot", save_or_violate_not_null):
            result = await calculator.calculate_all_budgets(persist=True)

        assert list(result.statuses) == ["search-availability"]
        assert list(result.errors) == ["checkout-availability"]
        assert await repository.get_budget_snapshots("checkout-availability") == []
        assert len(await repository.get_budget_snapshots("search-availability")) == 1

        # The session is usable again for the next batch
        again = await calculator.calculate_all_budgets(persist=True)
        assert again.ok
        assert len(await repository.get_budget_snapshots("checkout-availability")) == 1

    @pytest.mark.asyncio
    async def test_persist_writes_snapshots(self, recorder, repository, calculator):
        await _slo(recorder)
        await recorder.record_good_bad("checkout-requests", 99, 1)

        result = await calculator.calculate_all_budgets(persist=True)

        assert result.ok
        snapshots = await repository.get_budget_snapshots("checkout-availability")
        assert len(snapshots) == 1
        assert snapshots[0]["status"] == result.statuses["checkout-availability"].status.value

    @pytest.mark.asyncio
    async def test_budgets_for_indicator(self, recorder, calculator):
        await _slo(recorder, slug="checkout-availability", target=99.0)
        await _slo(recorder, slug="checkout-strict", target=99.99)
        await recorder.register_indicator("search-requests", "Search")
        await recorder.record_good_bad("checkout-requests", 999, 1)

        statuses = await calculator.calculate_budget_for_indicator("checkout-requests")

        assert [s.slo_slug for s in statuses] == ["checkout-availability", "checkout-strict"]
        assert statuses[0].status == SLOStatus.HEALTHY
        assert statuses[1].status == SLOStatus.EXHAUSTED

        with pytest.raises(NoActiveSloError):
            await calculator.calculate_budget_for_indicator("search-requests")
        with pytest.raises(UnknownIndicatorError):
            await calculator.calculate_budget_for_indicator("missing")

    @pytest.mark.asyncio
    async def test_system_health(self, recorder, calculator):
        await _slo(recorder, slug="a-healthy", sli_slug="a-requests")
        await _slo(recorder, slug="b-exhausted", sli_slug="b-requests")
        await _slo(recorder, slug="c-unmeasured", sli_slug="c-requests")
        await recorder.record_good_bad("a-requests", 1000, 0)
        await recorder.record_good_bad("b-requests", 900, 100)

        health = await calculator.system_health()

        assert health.overall_status == SLOStatus.EXHAUSTED
        assert health.total_slos == 3
        assert health.counts["healthy"] == 1
        assert health.counts["exhausted"] == 1
        assert health.counts["unknown"] == 1
        assert health.avg_remaining_ratio == pytest.approx(0.5)
        assert health.min_remaining_ratio == 0.0
        assert health.slos_at_risk == ["b-exhausted"]
        assert health.slos_exhausted == ["b-exhausted"]
        assert health.to_dict()["overall_status"] == "exhausted"

    @pytest.mark.asyncio
    async def test_system_health_without_measurements(self, recorder, calculator):
        await _slo(recorder)

        health = await calculator.system_health()

        assert health.overall_status == SLOStatus.UNKNOWN
        assert health.slos_at_risk == []


class TestBurnRate:
    @pytest.mark.asyncio
    async def test_rates_per_window(self, recorder, calculator, clock):
        await _slo(recorder, target=99.0)
        await recorder.record_good_bad("checkout-requests", 90, 10, at=clock.now - timedelta(minutes=30))
        await recorder.record_good_bad("checkout-requests", 100, 0, at=clock.now - timedelta(hours=3))
        await recorder.record_good_bad("checkout-requests", 800, 0, at=clock.now - timedelta(days=2))

        report = await calculator.burn_rates("checkout-availability")

        assert report.rates["1h"] == pytest.approx(10.0)
        assert report.rates["6h"] == pytest.approx(5.0)
        assert report.rates["24h"] == pytest.approx(5.0)
        assert report.rates["7d"] == pytest.approx(1.0)
        assert report.fastest() == pytest.approx(10.0)

    @pytest.mark.asyncio
    async def test_quiet_windows_have_no_rate(self, recorder, calculator, clock):
        await _slo(recorder, target=99.0)
        await recorder.record_good_bad("checkout-requests", 10, 0, at=clock.now - timedelta(days=3))

        report = await calculator.burn_rates("checkout-availability")

        assert report.rates["1h"] is None
        assert report.rates["24h"] is None
        assert report.rates["7d"] == 0.0


class TestProjectExhaustion:
    @pytest.fixture
    def calculator(self, settings):
        return BudgetCalculator(None, settings=settings)

    def test_exhausted_is_high_risk(self, calculator):
        projection = calculator.project_exhaustion(_status(SLOStatus.EXHAUSTED, remaining=0.0), 3.0)

        assert projection.risk_level == "high"
        assert projection.hours_until_exhaustion == 0.0

    @pytest.mark.parametrize(
        "burn_rate,hours,risk",
        [
            (0.5, 720.0, "low"),
            (2.0, 180.0, "medium"),
            (20.0, 18.0, "high"),
        ],
    )
    def test_projection_from_burn_rate(self, calculator, burn_rate, hours, risk):
        status = _status(SLOStatus.HEALTHY, remaining=0.5)

        projection = calculator.project_exhaustion(status, burn_rate)

        assert projection.hours_until_exhaustion == pytest.approx(hours)
        assert projection.risk_level == risk
        assert projection.projected_exhaustion == status.window_end + timedelta(hours=hours)

    def test_no_burn(self, calculator):
        assert calculator.project_exhaustion(_status(), 0.0).risk_level == "low"
        assert calculator.project_exhaustion(_status(), None).risk_level == "unknown"


async def _burning_slo(recorder, clock, slug="checkout-availability", sli_slug="checkout-requests"):
    """98.05% over the window (5% of the budget left), with a bad last hour."""
    await _slo(recorder, slug=slug, sli_slug=sli_slug, target=99.0)
    await recorder.record_good_bad(sli_slug, 9805, 175, at=clock.now - timedelta(days=2))
    await recorder.record_good_bad(sli_slug, 0, 20, at=clock.now - timedelta(minutes=30))


class TestBurnEvents:
    @pytest.mark.asyncio
    async def test_spike_low_budget_and_breach(self, recorder, calculator, clock):
        await _burning_slo(recorder, clock)

        events = await calculator.detect_burn_events()

        assert {e.event_type for e in events} == {
            BurnEventType.BURN_RATE_SPIKE,
            BurnEventType.THRESHOLD_CROSSED,
            BurnEventType.SLO_BREACHED,
        }
        assert all(e.severity == "critical" for e in events)
        assert all(e.occurred_at == clock.now for e in events)
        spike = next(e for e in events if e.event_type == BurnEventType.BURN_RATE_SPIKE)
        assert spike.context["burn_rate_1h"] == pytest.approx(100.0)
        assert spike.budget_remaining_percent == pytest.approx(0.05)

    @pytest.mark.asyncio
    async def test_events_are_deduplicated_within_the_hour(self, recorder, calculator, clock):
        await _burning_slo(recorder, clock)
        assert len(await calculator.detect_burn_events()) == 3

        clock.advance(minutes=59)
        assert await calculator.detect_burn_events() == []

        # The bad minute has left the 1h window, so only the budget events recur
        clock.advance(minutes=2)
        again = await calculator.detect_burn_events()
        assert {e.event_type for e in again} == {
            BurnEventType.THRESHOLD_CROSSED,
            BurnEventType.SLO_BREACHED,
        }

        recent = await calculator.recent_burn_events(hours=24)
        assert len(recent) == 5
        assert recent[0].occurred_at == clock.now

    @pytest.mark.asyncio
    async def test_exhausted_budget_only_breaches(self, recorder, calculator):
        await _slo(recorder, target=99.0)
        await recorder.record_good_bad("checkout-requests", 900, 100)

        events = await calculator.detect_burn_events()

        # 1h burn rate is exactly 10x, which is not a spike
        assert [e.event_type for e in events] == [BurnEventType.SLO_BREACHED]

    @pytest.mark.asyncio
    @pytest.mark.parametrize("good,bad", [(1000, 0), (0, 0)])
    async def test_healthy_or_unmeasured_slo_records_nothing(self, recorder, calculator, good, bad):
        await _slo(recorder, target=99.0)
        if good or bad:
            await recorder.record_good_bad("checkout-requests", good, bad)

        assert await calculator.detect_burn_events() == []
        assert await calculator.recent_burn_events() == []

    @pytest.mark.asyncio
    async def test_failure_for_one_slo_is_isolated(self, recorder, calculator, clock, monkeypatch):
        await _burning_slo(recorder, clock, slug="checkout-availability", sli_slug="checkout-requests")
        await _burning_slo(recorder, clock, slug="search-availability", sli_slug="search-requests")

        original = calculator.burn_rates

        async def flaky(slo):
            if slo.slug == "checkout-availability":
                raise RuntimeError("disk on fire")
            return await original(slo)

        monkeypatch.setattr(calculator, "burn_rates", flaky)

        events = await calculator.detect_burn_events()

        assert {e.slo_slug for e in events} == {"search-availability"}
        assert await calculator.recent_burn_events(slo_slug="checkout-availability") == []

    @pytest.mark.asyncio
    async def test_recent_events_filtered_by_slo_and_age(self, recorder, calculator, clock):
        await _burning_slo(recorder, clock, slug="checkout-availability", sli_slug="checkout-requests")
        await calculator.detect_burn_events()
        clock.advance(hours=3)
        await _burning_slo(recorder, clock, slug="search-availability", sli_slug="search-requests")
        await calculator.detect_burn_events()

        search = await calculator.recent_burn_events(slo_slug="search-availability")
        last_two_hours = await calculator.recent_burn_events(hours=2)

        assert {e.slo_slug for e in search} == {"search-availability"}
        assert all(e.occurred_at == clock.now for e in last_two_hours)
        assert search[0].to_dict()["event_type"] in {t.value for t in BurnEventType}


def _period(good, bad, ratio):
    return PeriodMetrics(
        start=datetime(2026, 2, 23),
        end=datetime(2026, 3, 1, 23, 59),
        good_events=good,
        bad_events=bad,
        budget_remaining_ratio=ratio,
    )


class TestWeekOverWeek:
    def test_week_start(self):
        assert week_start(datetime(2026, 3, 4, 15, 30)) == datetime(2026, 3, 2)
        assert week_start(datetime(2026, 3, 1, 23, 59)) == datetime(2026, 2, 23)
        assert week_start(datetime(2026, 3, 2)) == datetime(2026, 3, 2)

    @pytest.mark.parametrize(
        "current_ratio,previous_ratio,trend",
        [
            (0.9, 0.5, "improving"),
            (0.2, 0.5, "degrading"),
            (0.52, 0.5, "stable"),
            (0.47, 0.5, "stable"),
        ],
    )
    def test_trend_from_budget_change(self, current_ratio, previous_ratio, trend):
        comparison = compare_periods(
            "checkout-availability", _period(99, 1, current_ratio), _period(99, 1, previous_ratio)
        )

        assert comparison.trend == trend
        assert comparison.budget_change == pytest.approx((current_ratio - previous_ratio) * 100)
        assert comparison.sli_change == 0.0

    def test_trend_unknown_without_events(self):
        comparison = compare_periods("checkout-availability", _period(99, 1, 1.0), _period(0, 0, 1.0))

        assert comparison.trend == "unknown"
        assert comparison.budget_change is None
        assert comparison.sli_change is None
        assert comparison.to_dict()["previous"]["sli_value"] is None

    @pytest.mark.asyncio
    async def test_degrading_week(self, recorder, calculator, clock):
        await _slo(recorder, target=99.0)
        # Monday 12:00: this week started at midnight
        await recorder.record_good_bad("checkout-requests", 985, 15, at=clock.now - timedelta(hours=1))
        await recorder.record_good_bad("checkout-requests", 1000, 0, at=clock.now - timedelta(days=3))
        # Two weeks ago, outside both periods
        await recorder.record_good_bad("checkout-requests", 0, 1000, at=clock.now - timedelta(days=8))

        [comparison] = await calculator.week_over_week()

        assert comparison.slo_slug == "checkout-availability"
        assert comparison.current.start == datetime(2026, 3, 2)
        assert comparison.current.end == clock.now
        assert comparison.previous.start == datetime(2026, 2, 23)
        assert comparison.current.total_events == 1000
        assert comparison.previous.total_events == 1000
        assert comparison.current.sli_value == pytest.approx(98.5)
        assert comparison.previous.sli_value == 100.0
        assert comparison.budget_change == pytest.approx(-50.0)
        assert comparison.sli_change == pytest.approx(-1.5)
        assert comparison.trend == "degrading"

    @pytest.mark.asyncio
    async def test_quiet_last_week_is_unknown(self, recorder, calculator, clock):
        await _slo(recorder, target=99.0)
        await recorder.record_good_bad("checkout-requests", 100, 0, at=clock.now - timedelta(hours=1))

        [comparison] = await calculator.week_over_week()

        assert comparison.trend == "unknown"
        assert comparison.previous.total_events == 0
