"""
CLI helper functions for slogate commands.

Provides database session management and service wiring for CLI commands.
"""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Any, AsyncIterator, Coroutine, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from slogate.config import Settings, get_settings
from slogate.core.errors import StorageError
from slogate.db.session import dispose_engine, get_session, init_engine
from slogate.policies.repository import DecisionRepository
from slogate.slos.cache import BudgetCache, RedisBudgetCache, build_cache
from slogate.slos.calculator import BudgetCalculator
from slogate.slos.gates import DeployGate
from slogate.slos.recorder import SliRecorder
from slogate.slos.storage import SLORepository

T = TypeVar("T")


@dataclass
class Services:
    """Recorder, calculator and gate sharing one session and cache."""

    session: AsyncSession
    repository: SLORepository
    recorder: SliRecorder
    calculator: BudgetCalculator
    gate: DeployGate


@asynccontextmanager
async def get_cli_session(settings: Settings | None = None) -> AsyncIterator[AsyncSession]:
    """
    Get database session for CLI commands.

    Initializes engine if needed and disposes it when the command is done.
    """
    init_engine(settings or get_settings())

    sessions = get_session()
    session = await sessions.__anext__()
    try:
        yield session
    except SQLAlchemyError as exc:
        raise StorageError(f"Database error: {exc}") from exc
    finally:
        await sessions.aclose()
        await dispose_engine()


@asynccontextmanager
async def open_services(settings: Settings | None = None) -> AsyncIterator[Services]:
    """Wire up the evaluator components for one CLI command."""
    cfg = settings or get_settings()
    cache: BudgetCache = build_cache(cfg.cache_backend, cfg.redis_url, cfg.redis_max_connections)

    try:
        async with get_cli_session(cfg) as session:
            repository = SLORepository(session)
            calculator = BudgetCalculator(repository, cache=cache, settings=cfg)
            yield Services(
                session=session,
                repository=repository,
                recorder=SliRecorder(repository, cache=cache, settings=cfg),
                calculator=calculator,
                gate=DeployGate(calculator, DecisionRepository(session), settings=cfg),
            )
    finally:
        if isinstance(cache, RedisBudgetCache):
            await cache.close()


def run_async(coro: Coroutine[Any, Any, T]) -> T:
    """Helper to run async functions from sync CLI commands."""
    return asyncio.run(coro)
