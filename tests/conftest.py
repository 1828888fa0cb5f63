"""
Pytest Configuration

Shared fixtures for the Otame suite: a temporary catalog store per test, a
controllable clock for retention tests, and the service objects built on
that store.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Generator

import pytest

from Otame.catalog import (
    BulkIngestPipeline,
    CatalogStore,
    GenerationTracker,
)
from Otame.logging_config import ROOT_LOGGER_NAME
from Otame.search import QueryService
from Otame.settings import StoreConfiguration


class FakeClock:
    """Manually advanced UTC clock."""

    def __init__(self, start: datetime) -> None:
        self.current = start

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs: float) -> datetime:
        self.current = self.current + timedelta(**kwargs)
        return self.current


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock(datetime(2024, 1, 1, 12, 0, tzinfo=timezone.utc))


@pytest.fixture
def db_path(tmp_path: Path) -> Path:
    return tmp_path / "otame.sqlite3"


@pytest.fixture
def store(db_path: Path, clock: FakeClock) -> Generator[CatalogStore, None, None]:
    """Bootstrapped store on a fresh database file."""
    catalog = CatalogStore(StoreConfiguration(db_path=db_path), clock=clock)
    catalog.bootstrap()
    try:
        yield catalog
    finally:
        catalog.close()


@pytest.fixture
def tracker(store: CatalogStore) -> GenerationTracker:
    return GenerationTracker(store)


@pytest.fixture
def pipeline(store: CatalogStore, tracker: GenerationTracker) -> BulkIngestPipeline:
    return BulkIngestPipeline(store, tracker)


@pytest.fixture
def service(store: CatalogStore, tracker: GenerationTracker) -> QueryService:
    return QueryService(store, tracker=tracker)


@pytest.fixture(autouse=True)
def _reset_otame_logging() -> Generator[None, None, None]:
    """Drop console handlers installed by CLI invocations during a test."""
    yield
    logger = logging.getLogger(ROOT_LOGGER_NAME)
    for handler in list(logger.handlers):
        if getattr(handler, "_otame_managed", False):
            logger.removeHandler(handler)
    logger.setLevel(logging.NOTSET)
