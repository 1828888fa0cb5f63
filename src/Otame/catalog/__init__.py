"""
Catalog storage for bulk-loaded title dumps.

Provides the SQLite store, the closed dataset/language schema, generation
tracking with deferred reclamation, and the bulk ingest pipeline.
"""

from __future__ import annotations

from .generations import GenerationTracker
from .ingest import BulkIngestPipeline, validate_record
from .models import (
    Generation,
    GenerationState,
    IngestResult,
    LiveRange,
    Record,
    ScoredRecord,
    SweepResult,
    TitleFlag,
)
from .schema import (
    CASCADE_ORDER,
    DEFAULT_SCHEMA,
    CatalogSchema,
    ChildTable,
    DatasetSpec,
    Language,
)
from .store import CatalogStore

__all__ = [
    "BulkIngestPipeline",
    "CASCADE_ORDER",
    "CatalogSchema",
    "CatalogStore",
    "ChildTable",
    "DEFAULT_SCHEMA",
    "DatasetSpec",
    "Generation",
    "GenerationState",
    "GenerationTracker",
    "IngestResult",
    "Language",
    "LiveRange",
    "Record",
    "ScoredRecord",
    "SweepResult",
    "TitleFlag",
    "validate_record",
]
