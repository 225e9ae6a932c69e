"""Root test configuration."""

import logging
from datetime import datetime, timedelta

import pytest
import structlog
from slogate.config import Settings
from slogate.db.models import Base
from slogate.policies.repository import DecisionRepository
from slogate.slos.cache import MemoryBudgetCache
from slogate.slos.calculator import BudgetCalculator
from slogate.slos.gates import DeployGate
from slogate.slos.recorder import SliRecorder
from slogate.slos.storage import SLORepository
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

NOW = datetime(2026, 3, 2, 12, 0, 0)


def pytest_configure(config):
    """Configure structlog for tests to suppress debug/info output."""
    logging.basicConfig(level=logging.WARNING, force=True)
    structlog.configure(
        processors=[
            structlog.stdlib.filter_by_level,
            structlog.processors.add_log_level,
            structlog.processors.format_exc_info,
            structlog.dev.ConsoleRenderer(),
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=False,
    )


class FrozenClock:
    """Callable clock pinned to a time that tests move explicitly."""

    def __init__(self, now: datetime) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now += timedelta(**kwargs)


@pytest.fixture
async def session():
    engine = create_async_engine("sqlite+aiosqlite:///:memory:")

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)

    async with async_session() as session:
        yield session

    await engine.dispose()


@pytest.fixture
def clock():
    return FrozenClock(NOW)


@pytest.fixture
def settings():
    return Settings(
        database_url="sqlite+aiosqlite:///:memory:",
        bucket_seconds=60,
        budget_cache_ttl_seconds=300,
        cache_backend="memory",
    )


@pytest.fixture
def cache():
    return MemoryBudgetCache()


@pytest.fixture
def repository(session):
    return SLORepository(session)


@pytest.fixture
def recorder(repository, cache, clock, settings):
    return SliRecorder(repository, cache=cache, clock=clock, settings=settings)


@pytest.fixture
def calculator(repository, cache, clock, settings):
    return BudgetCalculator(repository, cache=cache, clock=clock, settings=settings)


@pytest.fixture
def gate(calculator, session, settings, clock):
    return DeployGate(calculator, DecisionRepository(session), settings=settings, clock=clock)
