"""
Recording commands: feed good/bad counts or latency observations.
"""

from __future__ import annotations

from slogate.cli.helpers import open_services, run_async
from slogate.cli.ux import success, warning
from slogate.core.errors import ExitCode, InvalidCountError


def parse_percentiles(pairs: list[str]) -> dict[str, float]:
    """Parse ["p95=120", "p99=300"] into a percentile map."""
    result: dict[str, float] = {}
    for pair in pairs:
        key, sep, raw = pair.partition("=")
        if not sep:
            raise InvalidCountError(f"Expected key=value, got {pair!r}")
        try:
            result[key.strip()] = float(raw)
        except ValueError:
            raise InvalidCountError(f"Not a number: {raw!r}", {"percentile": key}) from None
    return result


def record_events_command(sli_slug: str, good: int, bad: int, source: str = "default") -> int:
    """Record good/bad event counts for a ratio indicator."""

    async def _record():
        async with open_services() as services:
            return await services.recorder.record_good_bad(sli_slug, good, bad, source=source)

    bucket_start = run_async(_record())
    success(f"Recorded {good} good / {bad} bad for {sli_slug} (bucket {bucket_start.isoformat()})")
    return ExitCode.SUCCESS


def record_latency_command(
    sli_slug: str,
    value: float | None = None,
    percentiles: list[str] | None = None,
    source: str = "default",
) -> int:
    """Record one latency observation for a threshold indicator."""
    percentile_map = parse_percentiles(percentiles) if percentiles else None

    async def _record() -> bool:
        async with open_services() as services:
            return await services.recorder.record_latency(
                sli_slug, value=value, percentiles=percentile_map, source=source
            )

    is_good = run_async(_record())
    if is_good:
        success(f"Recorded latency for {sli_slug} (within threshold)")
    else:
        warning(f"Recorded latency for {sli_slug} (over threshold)")
    return ExitCode.SUCCESS
