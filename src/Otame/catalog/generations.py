# === NAVMAP v1 ===
# {
#   "module": "Otame.catalog.generations",
#   "purpose": "Record ingest generations, resolve the live ID range, and reclaim expired generations",
#   "sections": [
#     {"id": "generationtracker", "name": "GenerationTracker", "anchor": "class-generationtracker", "kind": "class"},
#     {"id": "record-generation", "name": "record_generation", "anchor": "function-record-generation", "kind": "function"},
#     {"id": "resolve-live-range", "name": "resolve_live_range", "anchor": "function-resolve-live-range", "kind": "function"},
#     {"id": "kill-older-generations", "name": "kill_older_generations", "anchor": "function-kill-older-generations", "kind": "function"},
#     {"id": "sweep-expired", "name": "sweep_expired", "anchor": "function-sweep-expired", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Generation bookkeeping for catalog datasets.

Each bulk ingest produces one *generation*: the contiguous span of record IDs
it inserted.  Generations move through three states::

    alive ──(newer ingest)──▶ dead ──(sweep after retention)──▶ reclaimed

Ranked search only ever looks at the most recently created generation of a
dataset (alive or not), so publishing a new dataset version is a single
commit of its rows together with its generation row.  Rows of superseded
generations stay on disk until :meth:`GenerationTracker.sweep_expired`
deletes them; the sweep is the only code path that moves a generation to
``reclaimed`` and it never touches the newest generation of a dataset.
"""

from __future__ import annotations

import contextlib
import logging
import sqlite3
import time
from datetime import datetime, timedelta
from typing import Dict, Iterator, List, Optional

from ..cancellation import CancellationToken, check_cancelled
from ..errors import ValidationError
from .models import Generation, LiveRange, SweepResult
from .schema import DatasetSpec
from .store import CatalogStore, from_db_timestamp, to_db_timestamp

logger = logging.getLogger(__name__)

_GENERATION_COLUMNS = "id, dataset, first_id, last_id, created_at, dead, dead_at, reclaimed_at"


def _row_to_generation(row: sqlite3.Row) -> Generation:
    return Generation(
        id=int(row["id"]),
        dataset=row["dataset"],
        first_id=int(row["first_id"]),
        last_id=int(row["last_id"]),
        created_at=from_db_timestamp(row["created_at"]),  # type: ignore[arg-type]
        dead=bool(row["dead"]),
        dead_at=from_db_timestamp(row["dead_at"]),
        reclaimed_at=from_db_timestamp(row["reclaimed_at"]),
    )


class GenerationTracker:
    """Generation metadata facade over a :class:`CatalogStore`.

    Write methods take the connection of an open store transaction so the
    generation row commits together with the rows it describes.  Read
    methods accept an optional connection and otherwise use a snapshot
    reader.
    """

    def __init__(self, store: CatalogStore) -> None:
        self.store = store

    @contextlib.contextmanager
    def _read(self, conn: Optional[sqlite3.Connection]) -> Iterator[sqlite3.Connection]:
        if conn is not None:
            yield conn
        else:
            with self.store.reader() as reader:
                yield reader

    # ------------------------------------------------------------------
    # Writes (inside the caller's transaction)
    # ------------------------------------------------------------------

    def record_generation(
        self,
        conn: sqlite3.Connection,
        dataset: str,
        first_id: int,
        last_id: int,
    ) -> Generation:
        """Insert the generation row for a finished ingest."""

        self.store.schema.dataset(dataset)
        if first_id > last_id:
            raise ValidationError(f"generation range is inverted: {first_id} > {last_id}")
        created_at = self.store.now()
        cursor = conn.execute(
            """
            INSERT INTO generations (dataset, created_at, first_id, last_id, dead)
            VALUES (?, ?, ?, ?, 0)
            """,
            (dataset, to_db_timestamp(created_at), first_id, last_id),
        )
        generation = Generation(
            id=int(cursor.lastrowid),
            dataset=dataset,
            first_id=first_id,
            last_id=last_id,
            created_at=created_at,
        )
        logger.debug(
            "generation-recorded",
            extra={"event": {"dataset": dataset, "generation": generation.id,
                             "first_id": first_id, "last_id": last_id}},
        )
        return generation

    def kill_older_generations(
        self,
        conn: sqlite3.Connection,
        dataset: str,
        keep_id: Optional[int] = None,
    ) -> int:
        """Mark every alive generation of ``dataset`` dead, except ``keep_id``.

        Metadata only; no rows are deleted.  Returns the number of
        generations that changed state.
        """

        self.store.schema.dataset(dataset)
        cursor = conn.execute(
            """
            UPDATE generations SET dead = 1, dead_at = ?
            WHERE dataset = ? AND dead = 0 AND id IS NOT ?
            """,
            (to_db_timestamp(self.store.now()), dataset, keep_id),
        )
        killed = cursor.rowcount
        if killed:
            logger.info(
                "generations-killed",
                extra={"event": {"dataset": dataset, "killed": killed, "kept": keep_id}},
            )
        return killed

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------

    def latest_generation(
        self, dataset: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[Generation]:
        """Return the most recently created generation of ``dataset``."""

        self.store.schema.dataset(dataset)
        with self._read(conn) as reader:
            row = reader.execute(
                f"""
                SELECT {_GENERATION_COLUMNS} FROM generations
                WHERE dataset = ? ORDER BY id DESC LIMIT 1
                """,
                (dataset,),
            ).fetchone()
        return _row_to_generation(row) if row else None

    def resolve_live_range(
        self, dataset: str, conn: Optional[sqlite3.Connection] = None
    ) -> Optional[LiveRange]:
        """Return the ID range ranked search is restricted to.

        This is the range of the most recently created generation, alive or
        not.  Before any generation was recorded the physical min/max ID of
        the base table is used; ``None`` means the dataset holds nothing.
        """

        spec = self.store.schema.dataset(dataset)
        with self._read(conn) as reader:
            row = reader.execute(
                "SELECT first_id, last_id FROM generations WHERE dataset = ? "
                "ORDER BY id DESC LIMIT 1",
                (dataset,),
            ).fetchone()
            if row is not None:
                return LiveRange(int(row["first_id"]), int(row["last_id"]))
            row = reader.execute(
                f"SELECT MIN(id) AS first_id, MAX(id) AS last_id FROM {spec.base_table}"
            ).fetchone()
        if row is None or row["first_id"] is None:
            return None
        return LiveRange(int(row["first_id"]), int(row["last_id"]))

    def list_generations(self, dataset: Optional[str] = None) -> List[Generation]:
        """List generations newest first, optionally for one dataset."""

        with self.store.reader() as reader:
            if dataset is not None:
                self.store.schema.dataset(dataset)
                rows = reader.execute(
                    f"SELECT {_GENERATION_COLUMNS} FROM generations "
                    "WHERE dataset = ? ORDER BY id DESC",
                    (dataset,),
                ).fetchall()
            else:
                rows = reader.execute(
                    f"SELECT {_GENERATION_COLUMNS} FROM generations ORDER BY id DESC"
                ).fetchall()
        return [_row_to_generation(row) for row in rows]

    # ------------------------------------------------------------------
    # Sweep
    # ------------------------------------------------------------------

    def sweep_expired(
        self,
        retention: timedelta,
        *,
        now: Optional[datetime] = None,
        cancel_token: Optional[CancellationToken] = None,
    ) -> SweepResult:
        """Delete rows of generations dead for longer than ``retention``.

        Runs in one transaction.  The newest generation of each dataset is
        exempt whatever its age or state, which also covers a generation an
        ingest is writing right now.  Already reclaimed generations are
        skipped, so running the sweep twice in a row changes nothing the
        second time.
        """

        if retention < timedelta(0):
            raise ValidationError("retention must be non-negative")
        start_ms = time.time() * 1000
        cutoff = to_db_timestamp((now or self.store.now()) - retention)

        reclaimed: List[int] = []
        rows_deleted = 0
        with self.store.transaction(cancel_token, operation="sweep") as conn:
            candidates = conn.execute(
                f"""
                SELECT {_GENERATION_COLUMNS} FROM generations AS g
                WHERE g.dead = 1
                  AND g.reclaimed_at IS NULL
                  AND COALESCE(g.dead_at, g.created_at) <= ?
                  AND g.id < (SELECT MAX(id) FROM generations WHERE dataset = g.dataset)
                ORDER BY g.dataset, g.id
                """,
                (cutoff,),
            ).fetchall()

            by_dataset: Dict[str, List[Generation]] = {}
            for row in candidates:
                generation = _row_to_generation(row)
                by_dataset.setdefault(generation.dataset, []).append(generation)

            stamp = to_db_timestamp(self.store.now())
            for dataset, generations in by_dataset.items():
                if dataset not in self.store.schema.datasets:
                    logger.warning(
                        "sweep-unknown-dataset",
                        extra={"event": {"dataset": dataset, "generations": len(generations)}},
                    )
                    continue
                spec = self.store.schema.dataset(dataset)
                for generation in generations:
                    check_cancelled(cancel_token, "sweep")
                    rows_deleted += self._delete_generation_rows(conn, spec, generation)
                    conn.execute(
                        "UPDATE generations SET reclaimed_at = ? WHERE id = ?",
                        (stamp, generation.id),
                    )
                    reclaimed.append(generation.id)

        duration_ms = (time.time() * 1000) - start_ms
        logger.info(
            "sweep-complete",
            extra={"event": {"reclaimed": len(reclaimed), "rows_deleted": rows_deleted,
                             "duration_ms": round(duration_ms, 3)}},
        )
        return SweepResult(
            generations_reclaimed=len(reclaimed),
            rows_deleted=rows_deleted,
            reclaimed_ids=tuple(reclaimed),
            duration_ms=duration_ms,
        )

    @staticmethod
    def _delete_generation_rows(
        conn: sqlite3.Connection, spec: DatasetSpec, generation: Generation
    ) -> int:
        # children first: they reference the base rows
        for child in spec.child_tables:
            conn.execute(
                f"DELETE FROM {child.name} WHERE {spec.parent_column} BETWEEN ? AND ?",
                (generation.first_id, generation.last_id),
            )
        cursor = conn.execute(
            f"DELETE FROM {spec.base_table} WHERE id BETWEEN ? AND ?",
            (generation.first_id, generation.last_id),
        )
        return max(cursor.rowcount, 0)


__all__ = ["GenerationTracker"]
