# === NAVMAP v1 ===
# {
#   "module": "Otame.search.router",
#   "purpose": "Route a ranked query to the per-language full-text index of a dataset",
#   "sections": [
#     {"id": "indexrouter", "name": "IndexRouter", "anchor": "class-indexrouter", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Per-language index routing.

Every ``(dataset, language)`` pair has its own FTS table.  The router picks
the table from the registry, runs one MATCH query restricted to the live ID
range, and scores each matched document through the :class:`Ranker`.
"""

from __future__ import annotations

import logging
import sqlite3
import threading
from collections import Counter
from typing import Dict, List, Optional, Tuple

from ..catalog.models import LiveRange
from ..catalog.schema import DEFAULT_SCHEMA, CatalogSchema, Language
from ..catalog.store import CatalogStore
from ..errors import ValidationError
from .ranking import Ranker
from .tokenization import build_match_expression

logger = logging.getLogger(__name__)


class IndexRouter:
    """Issue ranked MATCH queries against the per-language indexes.

    Attributes:
        queries_issued: Total number of queries sent to an index.
        queries_by_index: Query count per ``(dataset, language)`` pair.
    """

    def __init__(
        self,
        store: Optional[CatalogStore] = None,
        schema: Optional[CatalogSchema] = None,
        ranker: Optional[Ranker] = None,
    ) -> None:
        self.store = store
        if schema is None:
            schema = store.schema if store is not None else DEFAULT_SCHEMA
        self.schema = schema
        self.ranker = ranker or Ranker()
        self._sql: Dict[Tuple[str, Language], str] = {}
        self._lock = threading.Lock()
        self.queries_issued = 0
        self.queries_by_index: Counter = Counter()

    def _statement(self, dataset: str, language: Language) -> str:
        key = (dataset, language)
        sql = self._sql.get(key)
        if sql is None:
            fts = self.schema.dataset(dataset).fts_table(language)
            sql = (
                f"SELECT docid, matchinfo({fts}, 'pcx') AS info FROM {fts} "
                f"WHERE {fts} MATCH ? AND docid BETWEEN ? AND ?"
            )
            self._sql[key] = sql
        return sql

    def ranked_ids(
        self,
        conn: sqlite3.Connection,
        dataset: str,
        language: Language,
        query: str,
        live_range: LiveRange,
    ) -> List[Tuple[int, float]]:
        """Return ``(id, score)`` pairs, best first, ties by ascending id.

        Raises:
            ConfigurationError: ``dataset`` has no index for ``language``.
            ValidationError: A match-statistics blob is malformed or the
                index rejected the query.
        """

        sql = self._statement(dataset, language)
        expression = build_match_expression(query)
        if not expression:
            return []

        with self._lock:
            self.queries_issued += 1
            self.queries_by_index[(dataset, language)] += 1

        try:
            rows = conn.execute(
                sql, (expression, live_range.first_id, live_range.last_id)
            ).fetchall()
        except sqlite3.OperationalError as exc:
            raise ValidationError(f"{dataset}/{language.value}: query rejected: {exc}") from exc

        scored = [(int(row[0]), self.ranker.score(row[1])) for row in rows]
        scored.sort(key=lambda pair: (-pair[1], pair[0]))
        logger.debug(
            "index-query",
            extra={"event": {"dataset": dataset, "language": language.value,
                             "matches": len(scored)}},
        )
        return scored


__all__ = ["IndexRouter"]
