"""Otame: local title catalog with generation-tracked bulk ingest and ranked search.

Typical use::

    from Otame import CatalogStore, BulkIngestPipeline, QueryService
    from Otame.sources import anidb_titles, open_dump

    with CatalogStore() as store:
        with open_dump("anime-titles.dat.gz") as stream:
            BulkIngestPipeline(store).ingest("anidb", anidb_titles(stream))
        hits = QueryService(store).cascading_search("anidb", "kyojin", limit=5)
"""

from __future__ import annotations

from .cancellation import CancellationToken
from .catalog import (
    DEFAULT_SCHEMA,
    BulkIngestPipeline,
    CatalogSchema,
    CatalogStore,
    GenerationTracker,
    Language,
    Record,
    ScoredRecord,
    TitleFlag,
)
from .errors import (
    ConfigurationError,
    NotFoundError,
    OperationCancelled,
    OtameError,
    SourceError,
    TransactionError,
    ValidationError,
)
from .search import QueryService, Ranker
from .settings import IngestMode, OtameSettings, StoreConfiguration

__version__ = "0.1.0"

__all__ = [
    "BulkIngestPipeline",
    "CancellationToken",
    "CatalogSchema",
    "CatalogStore",
    "ConfigurationError",
    "DEFAULT_SCHEMA",
    "GenerationTracker",
    "IngestMode",
    "Language",
    "NotFoundError",
    "OperationCancelled",
    "OtameError",
    "OtameSettings",
    "QueryService",
    "Ranker",
    "Record",
    "ScoredRecord",
    "SourceError",
    "StoreConfiguration",
    "TitleFlag",
    "TransactionError",
    "ValidationError",
    "__version__",
]
