# === NAVMAP v1 ===
# {
#   "module": "Otame.search.service",
#   "purpose": "Public read API: ranked search, cascading search, and key lookups",
#   "sections": [
#     {"id": "queryservice", "name": "QueryService", "anchor": "class-queryservice", "kind": "class"},
#     {"id": "search", "name": "search", "anchor": "function-search", "kind": "function"},
#     {"id": "cascading-search", "name": "cascading_search", "anchor": "function-cascading-search", "kind": "function"},
#     {"id": "lookups", "name": "get_by_id / get_by_natural_key", "anchor": "LKP", "kind": "api"}
#   ]
# }
# === /NAVMAP ===

"""Query service over a :class:`~Otame.catalog.store.CatalogStore`.

Ranked search is confined to the live range of a dataset, i.e. the ID span
of its most recently created generation.  Key lookups bypass both ranking
and the live range: they can return rows of a dead generation that has not
been reclaimed yet, which is what lets readers keep resolving identifiers
they obtained before a new dataset version was published.

Each public call runs in one snapshot read transaction, so the live range
and the rows it selects always come from the same committed state.
"""

from __future__ import annotations

import logging
import sqlite3
from typing import Dict, List, Optional, Sequence, Tuple, Union

from ..catalog.generations import GenerationTracker
from ..catalog.models import Record, ScoredRecord, TitleFlag
from ..catalog.schema import CatalogSchema, DatasetSpec, Language
from ..catalog.store import CatalogStore, from_db_timestamp
from ..errors import NotFoundError, ValidationError
from .ranking import Ranker
from .router import IndexRouter

logger = logging.getLogger(__name__)

# keeps IN (...) lists below SQLite's default host-parameter limit
_FETCH_CHUNK = 500


def _check_limit(limit: int) -> int:
    if isinstance(limit, bool) or not isinstance(limit, int) or limit <= 0:
        raise ValidationError(f"limit must be a positive integer, got {limit!r}")
    return limit


class QueryService:
    """Ranked and direct access to catalog records.

    Args:
        store: Bootstrapped store to read from.
        schema: Dataset registry; defaults to the store's.
        ranker: Scoring engine; defaults to corpus-frequency ranking.
        tracker: Generation tracker used to resolve live ranges.

    Examples:
        >>> service = QueryService(store)  # doctest: +SKIP
        >>> service.cascading_search("anidb", "kyojin", limit=5)  # doctest: +SKIP
    """

    def __init__(
        self,
        store: CatalogStore,
        schema: Optional[CatalogSchema] = None,
        ranker: Optional[Ranker] = None,
        tracker: Optional[GenerationTracker] = None,
    ) -> None:
        self.store = store
        self.schema = schema or store.schema
        self.ranker = ranker or Ranker()
        self.tracker = tracker or GenerationTracker(store)
        self.router = IndexRouter(store, self.schema, self.ranker)

    # ------------------------------------------------------------------
    # Ranked search
    # ------------------------------------------------------------------

    def search(
        self,
        dataset: str,
        language: Union[Language, str],
        query: str,
        limit: int,
    ) -> List[ScoredRecord]:
        """Return up to ``limit`` records of one language index, best first.

        Raises:
            ValidationError: ``limit`` is not positive or a match-statistics
                blob is malformed.
            ConfigurationError: Unknown dataset or language.
        """

        spec = self.schema.dataset(dataset)
        if not isinstance(language, Language):
            language = Language.parse(language)
        spec.fts_table(language)
        _check_limit(limit)
        with self.store.reader() as conn:
            return self._search(conn, spec, language, query, limit)

    def cascading_search(self, dataset: str, query: str, limit: int) -> List[ScoredRecord]:
        """Search the dataset's languages in cascade order until ``limit`` is met.

        Results are concatenated per language without re-ranking across
        languages.
        """

        spec = self.schema.dataset(dataset)
        _check_limit(limit)
        results: List[ScoredRecord] = []
        with self.store.reader() as conn:
            for language in spec.cascade_languages():
                if len(results) >= limit:
                    break
                results.extend(self._search(conn, spec, language, query, limit - len(results)))
        logger.debug(
            "cascading-search",
            extra={"event": {"dataset": dataset, "results": len(results), "limit": limit}},
        )
        return results[:limit]

    def _search(
        self,
        conn: sqlite3.Connection,
        spec: DatasetSpec,
        language: Language,
        query: str,
        limit: int,
    ) -> List[ScoredRecord]:
        live_range = self.tracker.resolve_live_range(spec.name, conn)
        if live_range is None:
            return []
        # ranked_ids returns final order; only the page is materialized
        ranked = self.router.ranked_ids(conn, spec.name, language, query, live_range)[:limit]
        if not ranked:
            return []
        records = self._fetch(conn, spec, [record_id for record_id, _ in ranked])
        return [
            ScoredRecord(record=records[record_id], score=score)
            for record_id, score in ranked
            if record_id in records
        ]

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    def get_by_id(self, dataset: str, record_id: int) -> Record:
        """Return the record with ``record_id`` regardless of its generation."""

        spec = self.schema.dataset(dataset)
        with self.store.reader() as conn:
            records = self._fetch(conn, spec, [int(record_id)])
        record = records.get(int(record_id))
        if record is None:
            logger.debug("record-not-found", extra={"event": {"dataset": dataset, "id": record_id}})
            raise NotFoundError(dataset, record_id)
        return record

    def get_by_natural_key(self, dataset: str, key: str) -> List[Record]:
        """Return every stored record for ``key``, oldest first."""

        spec = self.schema.dataset(dataset)
        with self.store.reader() as conn:
            rows = conn.execute(
                f"SELECT id FROM {spec.base_table} WHERE natural_key = ? ORDER BY id",
                (key,),
            ).fetchall()
            ids = [int(row[0]) for row in rows]
            records = self._fetch(conn, spec, ids) if ids else {}
        if not records:
            logger.debug("record-not-found", extra={"event": {"dataset": dataset, "key": key}})
            raise NotFoundError(dataset, key)
        return [records[record_id] for record_id in ids if record_id in records]

    # ------------------------------------------------------------------
    # Row mapping
    # ------------------------------------------------------------------

    def _fetch(
        self, conn: sqlite3.Connection, spec: DatasetSpec, ids: Sequence[int]
    ) -> Dict[int, Record]:
        rows: List[sqlite3.Row] = []
        children: Dict[int, Dict[str, List[Tuple[object, ...]]]] = {}
        for start in range(0, len(ids), _FETCH_CHUNK):
            chunk = list(ids[start:start + _FETCH_CHUNK])
            marks = ", ".join("?" for _ in chunk)
            rows.extend(
                conn.execute(
                    f"SELECT id, natural_key, language, title, flags, inserted_at "
                    f"FROM {spec.base_table} WHERE id IN ({marks})",
                    chunk,
                ).fetchall()
            )
            for child in spec.child_tables:
                columns = ", ".join(child.columns)
                for child_row in conn.execute(
                    f"SELECT {spec.parent_column}, {columns} FROM {child.name} "
                    f"WHERE {spec.parent_column} IN ({marks}) ORDER BY id",
                    chunk,
                ):
                    parent = int(child_row[0])
                    children.setdefault(parent, {}).setdefault(child.name, []).append(
                        tuple(child_row[1:])
                    )

        records: Dict[int, Record] = {}
        for row in rows:
            record_id = int(row["id"])
            records[record_id] = Record(
                natural_key=row["natural_key"],
                language=Language.parse(row["language"]),
                text=row["title"],
                flags=TitleFlag(int(row["flags"])),
                children={name: tuple(values) for name, values in children.get(record_id, {}).items()},
                id=record_id,
                inserted_at=from_db_timestamp(row["inserted_at"]),
            )
        return records


__all__ = ["QueryService"]
