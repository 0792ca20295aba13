"""
Pytest configuration and shared fixtures for BookTone tests.
"""
import asyncio
import os
import tempfile
from pathlib import Path
from typing import Dict, List, Optional, Set

import pytest
from sqlalchemy.orm import sessionmaker

# Must be set before booktone.config is imported anywhere
_TEST_DB_DIR = Path(tempfile.mkdtemp(prefix="booktone-tests-"))
os.environ["TESTING"] = "true"
os.environ["TEST_DATABASE_URL"] = f"sqlite:///{_TEST_DB_DIR / 'api.db'}"
os.environ["RESOURCE_METRICS_ENABLED"] = "false"
os.environ["DEBUG"] = "false"

from booktone.batch import BatchProcessingService, JobStore  # noqa: E402
from booktone.core.exceptions import RecommendationError  # noqa: E402
from booktone.db.session import build_engine, create_tables, drop_tables  # noqa: E402


# ============================================================================
# Fakes
# ============================================================================

class FakeRecommender:
    """
    Stand-in for RecommenderService.generate_for_book.

    Books in ``failing`` raise RecommendationError. Books in ``blocking`` wait
    until ``release`` is set.
    """

    def __init__(
        self,
        tones: Optional[Dict[int, List[str]]] = None,
        failing: Optional[Set[int]] = None,
        blocking: Optional[Set[int]] = None,
    ):
        self.tones = tones or {}
        self.failing = failing or set()
        self.blocking = blocking or set()
        self.release = asyncio.Event()
        self.calls: List[int] = []

    async def __call__(self, book_id: int) -> List[str]:
        self.calls.append(book_id)
        if book_id in self.blocking:
            await self.release.wait()
        if book_id in self.failing:
            raise RecommendationError(book_id, "model unavailable")
        return list(self.tones.get(book_id, ["Poignant", "Dark"]))


class FakeMetrics:
    def __init__(self, fail: bool = False):
        self.fail = fail
        self.samples = []

    async def sample_and_record(self, batch_id: str, book_id: Optional[int] = None) -> None:
        self.samples.append((batch_id, book_id))
        if self.fail:
            raise RuntimeError("psutil unavailable")


async def wait_until(predicate, timeout: float = 3.0, interval: float = 0.01):
    """Poll an async or sync predicate until it returns truthy."""
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while True:
        result = predicate()
        if asyncio.iscoroutine(result):
            result = await result
        if result:
            return result
        if loop.time() > deadline:
            raise AssertionError("condition not met before timeout")
        await asyncio.sleep(interval)


# ============================================================================
# Fixtures: Database
# ============================================================================

@pytest.fixture
def db_engine(tmp_path):
    engine = build_engine(f"sqlite:///{tmp_path / 'booktone.db'}")
    create_tables(bind=engine)
    yield engine
    drop_tables(bind=engine)
    engine.dispose()


@pytest.fixture
def session_factory(db_engine):
    return sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=db_engine)


@pytest.fixture
def store(session_factory) -> JobStore:
    return JobStore(session_factory)


# ============================================================================
# Fixtures: Batch engine
# ============================================================================

@pytest.fixture
def recommender() -> FakeRecommender:
    return FakeRecommender(failing={102})


@pytest.fixture
def metrics() -> FakeMetrics:
    return FakeMetrics()


@pytest.fixture
async def service(store, recommender, metrics):
    service = BatchProcessingService(
        store,
        recommender,
        metrics,
        poll_interval=0.01,
        error_backoff=0.01,
        shutdown_grace=2.0,
    )
    yield service
    await service.stop()
