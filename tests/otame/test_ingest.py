"""Tests for the bulk ingest pipeline."""

from __future__ import annotations

import logging

import pytest

from Otame.cancellation import CancellationToken
from Otame.catalog import (
    BulkIngestPipeline,
    CatalogStore,
    GenerationState,
    Language,
    Record,
    TitleFlag,
    validate_record,
)
from Otame.errors import (
    ConfigurationError,
    NotFoundError,
    OperationCancelled,
    SourceError,
    ValidationError,
)
from Otame.settings import IngestConfig, IngestMode, StoreConfiguration


def _titles(keys, language=Language.ENGLISH, word="title"):
    return [Record(natural_key=str(key), language=language, text=f"{word} {key}") for key in keys]


def _failing_source(records, exc):
    yield from records
    raise exc


class TestReplaceMode:
    """Replace ingest semantics."""

    def test_assigns_contiguous_ids(self, pipeline, store):
        result = pipeline.ingest("anidb", _titles(range(5)))

        assert result.mode is IngestMode.REPLACE
        assert result.count == 5
        assert result.last_id - result.first_id == 4
        assert result.generation_id is not None
        assert result.killed == 0
        assert store.row_count("anidb") == 5

    def test_replace_drops_previous_rows(self, pipeline, service, store):
        pipeline.ingest("anidb", _titles(["1", "2", "3"]))
        pipeline.ingest("anidb", _titles(["7", "8"]), mode="replace")

        assert store.row_count("anidb") == 2
        with pytest.raises(NotFoundError):
            service.get_by_natural_key("anidb", "1")

    def test_replace_kills_prior_generation(self, pipeline, tracker):
        first = pipeline.ingest("anidb", _titles(range(3)))
        second = pipeline.ingest("anidb", _titles(range(3)))

        assert second.killed == 1
        states = {g.id: g.state for g in tracker.list_generations("anidb")}
        assert states[first.generation_id] is GenerationState.DEAD
        assert states[second.generation_id] is GenerationState.ALIVE

    def test_replace_leaves_other_datasets_alone(self, pipeline, store):
        pipeline.ingest("vndb", _titles(range(3), language=Language.JAPANESE))
        pipeline.ingest("anidb", _titles(range(2)))
        pipeline.ingest("anidb", _titles(range(1)))

        assert store.row_count("vndb") == 3
        assert store.row_count("anidb") == 1

    def test_empty_replace_clears_rows_without_new_generation(self, pipeline, tracker, store, service):
        first = pipeline.ingest("anidb", _titles(range(3)))

        result = pipeline.ingest("anidb", [], mode="replace")

        assert result.count == 0
        assert (result.first_id, result.last_id, result.generation_id) == (None, None, None)
        assert result.killed == 1
        assert store.row_count("anidb") == 0
        assert [g.id for g in tracker.list_generations("anidb")] == [first.generation_id]
        assert service.search("anidb", "en", "title", limit=10) == []

    def test_empty_replace_on_fresh_dataset(self, pipeline, tracker):
        pipeline.ingest("anidb", [])

        assert tracker.list_generations("anidb") == []
        assert tracker.resolve_live_range("anidb") is None


class TestAppendMode:
    """Append ingest semantics."""

    def test_old_rows_stay_reachable_by_lookup_only(self, pipeline, service, store):
        pipeline.ingest("anidb", _titles(["1", "2"], word="gundam"), mode="append")
        pipeline.ingest("anidb", _titles(["3"], word="gundam"), mode="append")

        assert store.row_count("anidb") == 3
        assert service.get_by_natural_key("anidb", "1")[0].text == "gundam 1"
        hits = service.search("anidb", Language.ENGLISH, "gundam", limit=10)
        assert [hit.record.natural_key for hit in hits] == ["3"]

    def test_append_kills_everything_but_the_new_generation(self, pipeline, tracker):
        first = pipeline.ingest("anidb", _titles(range(2)), mode="append")
        second = pipeline.ingest("anidb", _titles(range(2)), mode="append")
        third = pipeline.ingest("anidb", _titles(range(2)), mode=IngestMode.APPEND)

        assert third.killed == 1
        states = {g.id: g.state for g in tracker.list_generations("anidb")}
        assert states == {
            first.generation_id: GenerationState.DEAD,
            second.generation_id: GenerationState.DEAD,
            third.generation_id: GenerationState.ALIVE,
        }

    def test_empty_append_changes_nothing(self, pipeline, tracker, store):
        first = pipeline.ingest("anidb", _titles(range(3)), mode="append")

        result = pipeline.ingest("anidb", iter(()), mode="append")

        assert result.generation_id is None
        assert result.killed == 0
        assert store.row_count("anidb") == 3
        assert tracker.latest_generation("anidb").id == first.generation_id
        assert tracker.latest_generation("anidb").state is GenerationState.ALIVE

    def test_default_mode_comes_from_config(self, store, tracker):
        pipeline = BulkIngestPipeline(store, tracker, IngestConfig(mode=IngestMode.APPEND))
        pipeline.ingest("anidb", _titles(range(2)))
        result = pipeline.ingest("anidb", _titles(range(2)))

        assert result.mode is IngestMode.APPEND
        assert store.row_count("anidb") == 4


class TestAtomicity:
    """Failures leave the store exactly as it was."""

    def test_source_failure_rolls_back(self, pipeline, tracker, store):
        before = pipeline.ingest("anidb", _titles(range(3)))

        with pytest.raises(SourceError) as excinfo:
            pipeline.ingest("anidb", _failing_source(_titles(range(10, 15)), IOError("truncated")))

        assert isinstance(excinfo.value.__cause__, OSError)
        assert store.row_count("anidb") == 3
        assert tracker.latest_generation("anidb").id == before.generation_id
        assert tracker.latest_generation("anidb").state is GenerationState.ALIVE

    def test_package_errors_from_source_pass_through(self, pipeline):
        with pytest.raises(SourceError, match="line 7"):
            pipeline.ingest("anidb", _failing_source([], SourceError("bad", line=7)))

    def test_invalid_record_rolls_back(self, pipeline, store, tracker):
        records = _titles(range(3)) + [Record(natural_key="x", language=Language.ENGLISH, text="  ")]

        with pytest.raises(ValidationError):
            pipeline.ingest("anidb", records)

        assert store.row_count("anidb") == 0
        assert tracker.list_generations() == []

    def test_cancellation_between_records(self, pipeline, store, tracker):
        token = CancellationToken()

        def source():
            for index, record in enumerate(_titles(range(10))):
                if index == 4:
                    token.cancel("operator request")
                yield record

        with pytest.raises(OperationCancelled):
            pipeline.ingest("anidb", source(), cancel_token=token)

        assert store.row_count("anidb") == 0
        assert tracker.list_generations() == []

    def test_non_iterable_source(self, pipeline):
        with pytest.raises(SourceError):
            pipeline.ingest("anidb", 42)

    def test_unknown_mode(self, pipeline):
        with pytest.raises(ConfigurationError):
            pipeline.ingest("anidb", [], mode="upsert")

    def test_unknown_dataset(self, pipeline):
        with pytest.raises(ConfigurationError):
            pipeline.ingest("mal", _titles(range(1)))

    def test_readonly_store_refuses_writes(self, db_path, store):
        readonly = CatalogStore(StoreConfiguration(db_path=db_path, readonly=True))
        readonly.bootstrap()
        try:
            with pytest.raises(ConfigurationError):
                BulkIngestPipeline(readonly).ingest("anidb", _titles(range(1)))
        finally:
            readonly.close()


class TestChildRows:
    """Records with dependent child-table rows."""

    def test_children_are_stored_and_returned(self, pipeline, service):
        record = Record(
            natural_key="v17",
            language=Language.JAPANESE,
            text="ever17",
            flags=TitleFlag.OFFICIAL,
            children={"vndb_latin": [("Ever17",)]},
        )
        pipeline.ingest("vndb", [record])

        (stored,) = service.get_by_natural_key("vndb", "v17")
        assert stored.children == {"vndb_latin": (("Ever17",),)}
        assert stored.flags == TitleFlag.OFFICIAL
        assert stored.inserted_at is not None

    def test_multi_column_children(self, pipeline, service):
        record = Record(
            natural_key="aodb-1",
            language=Language.ENGLISH,
            text="cowboy bebop",
            children={
                "aodb_synonyms": [("Bebop",), ("CB",)],
                "aodb_sources": [("anidb", "https://anidb.net/anime/23", "23")],
            },
        )
        pipeline.ingest("aodb", [record])

        (stored,) = service.get_by_natural_key("aodb", "aodb-1")
        assert stored.children["aodb_synonyms"] == (("Bebop",), ("CB",))
        assert stored.children["aodb_sources"] == (("anidb", "https://anidb.net/anime/23", "23"),)
        assert "aodb_tags" not in stored.children


class TestValidateRecord:
    """Record validation against a dataset spec."""

    @pytest.fixture
    def vndb(self, store):
        return store.schema.dataset("vndb")

    def test_accepts_well_formed_record(self, vndb):
        record = Record(natural_key="v1", language=Language.ROMAJI, text="Taitoru")
        assert validate_record(vndb, record) is record

    @pytest.mark.parametrize(
        "record",
        [
            Record(natural_key="", language=Language.ENGLISH, text="x"),
            Record(natural_key="v1", language=Language.ENGLISH, text=""),
            Record(natural_key="v1", language=Language.ENGLISH, text="x",
                   children={"aodb_tags": [("tag",)]}),
            Record(natural_key="v1", language=Language.ENGLISH, text="x",
                   children={"vndb_latin": [("a", "b")]}),
        ],
        ids=["empty-key", "empty-text", "foreign-child", "child-width"],
    )
    def test_rejects_malformed_records(self, vndb, record):
        with pytest.raises(ValidationError):
            validate_record(vndb, record)

    def test_rejects_language_without_index(self, store):
        aodb = store.schema.dataset("aodb")
        with pytest.raises(ValidationError):
            validate_record(aodb, Record(natural_key="1", language=Language.JAPANESE, text="x"))

    def test_rejects_non_records(self, vndb):
        with pytest.raises(ValidationError):
            validate_record(vndb, ("v1", "en", "title"))


class TestProgressLogging:
    """Ingest log events."""

    def test_progress_and_commit_events(self, store, tracker, caplog):
        pipeline = BulkIngestPipeline(store, tracker, IngestConfig(progress_every=2))

        with caplog.at_level(logging.INFO, logger="Otame"):
            pipeline.ingest("anidb", _titles(range(5)))

        messages = [record.getMessage() for record in caplog.records]
        assert messages.count("ingest-progress") == 2
        commit = next(r for r in caplog.records if r.getMessage() == "ingest-commit")
        assert commit.event["records"] == 5
        assert commit.event["dataset"] == "anidb"
