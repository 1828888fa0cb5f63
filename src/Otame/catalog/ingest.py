# === NAVMAP v1 ===
# {
#   "module": "Otame.catalog.ingest",
#   "purpose": "Consume a record iterator inside one transaction and publish the resulting generation",
#   "sections": [
#     {"id": "bulkingestpipeline", "name": "BulkIngestPipeline", "anchor": "class-bulkingestpipeline", "kind": "class"},
#     {"id": "validate-record", "name": "validate_record", "anchor": "function-validate-record", "kind": "function"}
#   ]
# }
# === /NAVMAP ===

"""Bulk ingest of catalog dumps.

An ingest writes one dataset version in a single store transaction:

``replace``
    Delete every child and base row of the dataset, mark the previous
    generations dead, insert the new records, record the new generation.
``append``
    Insert the new records, record the new generation, then mark every older
    generation dead.  The old rows stay on disk, reachable by key lookup
    only, until a sweep reclaims them.

Empty input records no generation.  ``replace`` still deletes the old rows
and marks their generations dead; ``append`` changes nothing.

The record source is fatal on error: anything raised while pulling the next
record aborts the transaction and surfaces as :class:`SourceError` (errors
that already belong to the package pass through unchanged).
"""

from __future__ import annotations

import logging
import sqlite3
import time
from dataclasses import dataclass
from typing import Dict, Iterable, Iterator, Optional, Tuple, Union

from ..cancellation import CancellationToken, check_cancelled
from ..errors import ConfigurationError, OtameError, SourceError, ValidationError
from ..settings import IngestConfig, IngestMode
from .generations import GenerationTracker
from .models import IngestResult, Record
from .schema import DatasetSpec, Language
from .store import CatalogStore, to_db_timestamp

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class _Statements:
    """Prepared SQL text for one dataset."""

    insert_base: str
    insert_children: Dict[str, str]
    delete_children: Tuple[str, ...]
    delete_base: str

    @classmethod
    def for_dataset(cls, spec: DatasetSpec) -> "_Statements":
        insert_children = {}
        for child in spec.child_tables:
            columns = ", ".join((spec.parent_column, *child.columns))
            marks = ", ".join("?" for _ in range(len(child.columns) + 1))
            insert_children[child.name] = (
                f"INSERT INTO {child.name} ({columns}) VALUES ({marks})"
            )
        return cls(
            insert_base=(
                f"INSERT INTO {spec.base_table} "
                "(natural_key, language, title, flags, inserted_at) VALUES (?, ?, ?, ?, ?)"
            ),
            insert_children=insert_children,
            delete_children=tuple(f"DELETE FROM {child.name}" for child in spec.child_tables),
            delete_base=f"DELETE FROM {spec.base_table}",
        )


def _coerce_mode(mode: Union[IngestMode, str, None], default: IngestMode) -> IngestMode:
    if mode is None:
        return default
    try:
        return IngestMode(mode)
    except ValueError:
        raise ConfigurationError(f"unknown ingest mode: {mode!r}") from None


def validate_record(spec: DatasetSpec, record: object) -> Record:
    """Check that ``record`` can be stored in ``spec``'s tables."""

    if not isinstance(record, Record):
        raise ValidationError(f"expected Record, got {type(record).__name__}")
    if not isinstance(record.natural_key, str) or not record.natural_key.strip():
        raise ValidationError(f"{spec.name}: record has an empty natural key")
    if not isinstance(record.text, str) or not record.text.strip():
        raise ValidationError(f"{spec.name}/{record.natural_key}: record has no searchable text")
    if not isinstance(record.language, Language) or record.language not in spec.languages:
        raise ValidationError(
            f"{spec.name}/{record.natural_key}: language {record.language!r} is not indexed"
        )
    for name, rows in record.children.items():
        try:
            child = spec.child(name)
        except OtameError as exc:
            raise ValidationError(f"{spec.name}/{record.natural_key}: {exc}") from None
        for row in rows:
            if len(row) != len(child.columns):
                raise ValidationError(
                    f"{spec.name}/{record.natural_key}: {name} row has {len(row)} values, "
                    f"expected {len(child.columns)}"
                )
    return record


class BulkIngestPipeline:
    """Write record iterators into a :class:`CatalogStore` as generations."""

    def __init__(
        self,
        store: CatalogStore,
        tracker: Optional[GenerationTracker] = None,
        config: Optional[IngestConfig] = None,
    ) -> None:
        self.store = store
        self.tracker = tracker or GenerationTracker(store)
        self.config = config or IngestConfig()
        self._statements: Dict[str, _Statements] = {}

    def _statements_for(self, spec: DatasetSpec) -> _Statements:
        statements = self._statements.get(spec.name)
        if statements is None:
            statements = _Statements.for_dataset(spec)
            self._statements[spec.name] = statements
        return statements

    def ingest(
        self,
        dataset: str,
        records: Iterable[Record],
        mode: Union[IngestMode, str, None] = None,
        *,
        cancel_token: Optional[CancellationToken] = None,
    ) -> IngestResult:
        """Insert ``records`` into ``dataset`` and return the assigned ID range.

        Args:
            dataset: Registered dataset name.
            records: Finite iterable of records; consumed exactly once.
            mode: ``replace`` or ``append``; defaults to the configured mode.
            cancel_token: Checked between records.

        Returns:
            IngestResult with the first/last assigned IDs (``None`` for
            empty input) and the new generation id.

        Raises:
            SourceError: The record source failed mid-stream.
            ValidationError: A record does not fit the dataset.
            TransactionError: SQLite rejected a write.
            OperationCancelled: ``cancel_token`` fired.
        """

        spec = self.store.schema.dataset(dataset)
        mode = _coerce_mode(mode, self.config.mode)
        statements = self._statements_for(spec)
        start_ms = time.time() * 1000

        logger.info("ingest-begin", extra={"event": {"dataset": dataset, "mode": mode.value}})

        count = 0
        killed = 0
        first_id: Optional[int] = None
        last_id: Optional[int] = None
        generation_id: Optional[int] = None
        with self.store.transaction(cancel_token, operation=f"ingest {dataset}") as conn:
            inserted_at = to_db_timestamp(self.store.now())
            if mode is IngestMode.REPLACE:
                deleted = self._delete_all(conn, statements)
                killed = self.tracker.kill_older_generations(conn, dataset)
                logger.info(
                    "ingest-replace-cleared",
                    extra={"event": {"dataset": dataset, "rows_deleted": deleted}},
                )

            for record in self._pull(records):
                check_cancelled(cancel_token, f"ingest {dataset}")
                validate_record(spec, record)
                row_id = self._insert(conn, statements, record, inserted_at)
                if first_id is None:
                    first_id = row_id
                elif last_id is not None and row_id <= last_id:
                    raise ValidationError(
                        f"{dataset}: assigned id {row_id} does not follow {last_id}"
                    )
                last_id = row_id
                count += 1
                if count % self.config.progress_every == 0:
                    logger.info(
                        "ingest-progress",
                        extra={"event": {"dataset": dataset, "records": count}},
                    )

            if first_id is not None and last_id is not None:
                generation = self.tracker.record_generation(conn, dataset, first_id, last_id)
                generation_id = generation.id
                if mode is IngestMode.APPEND:
                    killed = self.tracker.kill_older_generations(
                        conn, dataset, keep_id=generation.id
                    )

        duration_ms = (time.time() * 1000) - start_ms
        logger.info(
            "ingest-commit",
            extra={"event": {"dataset": dataset, "mode": mode.value, "records": count,
                             "first_id": first_id, "last_id": last_id,
                             "generation": generation_id, "killed": killed,
                             "duration_ms": round(duration_ms, 3)}},
        )
        return IngestResult(
            dataset=dataset,
            mode=mode,
            count=count,
            first_id=first_id,
            last_id=last_id,
            generation_id=generation_id,
            killed=killed,
            duration_ms=duration_ms,
        )

    @staticmethod
    def _pull(records: Iterable[Record]) -> Iterator[Record]:
        """Yield records, turning foreign source failures into SourceError."""

        try:
            iterator = iter(records)
        except TypeError as exc:
            raise SourceError(f"record source is not iterable: {exc}") from exc
        while True:
            try:
                record = next(iterator)
            except StopIteration:
                return
            except OtameError:
                raise
            except Exception as exc:
                raise SourceError(f"record source failed: {exc}") from exc
            yield record

    @staticmethod
    def _delete_all(conn: sqlite3.Connection, statements: _Statements) -> int:
        for delete_child in statements.delete_children:
            conn.execute(delete_child)
        return max(conn.execute(statements.delete_base).rowcount, 0)

    @staticmethod
    def _insert(
        conn: sqlite3.Connection,
        statements: _Statements,
        record: Record,
        inserted_at: str,
    ) -> int:
        # parent first so children can reference the assigned id
        cursor = conn.execute(
            statements.insert_base,
            (record.natural_key, record.language.value, record.text, int(record.flags),
             inserted_at),
        )
        row_id = int(cursor.lastrowid)
        for name, rows in record.children.items():
            conn.executemany(
                statements.insert_children[name],
                [(row_id, *row) for row in rows],
            )
        return row_id


__all__ = ["BulkIngestPipeline", "validate_record"]
