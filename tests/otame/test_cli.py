"""Tests for the otame command line."""

from __future__ import annotations

import pytest
from typer.testing import CliRunner

from Otame.cli import app

runner = CliRunner()

ANIDB_DUMP = """\
# <aid>|<type>|<language>|<title>
1|1|x-jat|Seikai no Monshou
1|4|en|Crest of the Stars
23|1|x-jat|Cowboy Bebop
23|4|en|Cowboy Bebop
"""

VNDB_DUMP = "v17\tja\tt\tエバー17\tEver17\n"

AODB_DUMP = (
    '{"data": [{"sources": ["https://anidb.net/anime/23"], "title": "Cowboy Bebop", '
    '"synonyms": ["Bebop"], "tags": ["space"]}]}'
)


@pytest.fixture
def dump(tmp_path):
    path = tmp_path / "anime-titles.dat"
    path.write_text(ANIDB_DUMP, encoding="utf-8")
    return path


def invoke(db_path, *args):
    return runner.invoke(app, ["--db", str(db_path), "--log-level", "WARNING", *args])


class TestIngestCommand:
    """otame ingest."""

    def test_ingest_anidb(self, db_path, dump):
        result = invoke(db_path, "ingest", "anidb", str(dump))

        assert result.exit_code == 0, result.output
        assert "ingested 4 records as generation 1" in result.output
        assert db_path.exists()

    def test_ingest_vndb(self, db_path, tmp_path):
        path = tmp_path / "vn_titles"
        path.write_text(VNDB_DUMP, encoding="utf-8")

        result = invoke(db_path, "ingest", "vndb", str(path), "--format", "vndb")

        assert result.exit_code == 0, result.output
        assert "ingested 2 records" in result.output

    def test_format_defaults_to_dataset(self, db_path, tmp_path):
        path = tmp_path / "vn_titles"
        path.write_text(VNDB_DUMP, encoding="utf-8")

        result = invoke(db_path, "ingest", "vndb", str(path))

        assert result.exit_code == 0, result.output
        assert "ingested 2 records" in result.output

    def test_ingest_aodb(self, db_path, tmp_path):
        path = tmp_path / "anime-offline-database-minified.json"
        path.write_text(AODB_DUMP, encoding="utf-8")

        result = invoke(db_path, "ingest", "aodb", str(path))

        assert result.exit_code == 0, result.output
        assert "ingested 1 records" in result.output

    def test_dataset_without_matching_format_needs_format(self, db_path, dump):
        result = invoke(db_path, "ingest", "mal", str(dump))

        assert result.exit_code == 1
        assert "pass --format" in result.output

    def test_append_retires_previous_generation(self, db_path, dump):
        invoke(db_path, "ingest", "anidb", str(dump))
        result = invoke(db_path, "ingest", "anidb", str(dump), "--mode", "append")

        assert result.exit_code == 0, result.output
        assert "1 generation(s) retired" in result.output

    def test_missing_file(self, db_path, tmp_path):
        result = invoke(db_path, "ingest", "anidb", str(tmp_path / "missing.dat"))

        assert result.exit_code == 1
        assert "✗ Error" in result.output

    def test_unknown_format(self, db_path, dump):
        result = invoke(db_path, "ingest", "anidb", str(dump), "--format", "mal")

        assert result.exit_code == 1
        assert "unknown dump format" in result.output

    def test_unknown_dataset(self, db_path, dump):
        result = invoke(db_path, "ingest", "mal", str(dump), "--format", "anidb")

        assert result.exit_code == 1
        assert "unknown dataset" in result.output

    def test_malformed_dump(self, db_path, tmp_path):
        path = tmp_path / "broken.dat"
        path.write_text("1|1|x-jat|Fine\n2|1\n", encoding="utf-8")

        result = invoke(db_path, "ingest", "anidb", str(path))

        assert result.exit_code == 1
        assert "line 2" in result.output


class TestSearchCommands:
    """otame search / lookup / generations."""

    @pytest.fixture(autouse=True)
    def _loaded(self, db_path, dump):
        assert invoke(db_path, "ingest", "anidb", str(dump)).exit_code == 0

    def test_cascading_search(self, db_path):
        result = invoke(db_path, "search", "anidb", "bebop")

        assert result.exit_code == 0, result.output
        lines = [line for line in result.output.splitlines() if "Cowboy Bebop" in line]
        assert len(lines) == 2
        assert "(en," in lines[0] and "(x-jat," in lines[1]

    def test_single_language_search(self, db_path):
        result = invoke(db_path, "search", "anidb", "bebop", "--language", "x-jat")

        assert result.exit_code == 0, result.output
        assert "(x-jat, PRIMARY) Cowboy Bebop" in result.output
        assert "(en," not in result.output

    def test_no_results(self, db_path):
        result = invoke(db_path, "search", "anidb", "trigun")

        assert result.exit_code == 0
        assert "No results" in result.output

    def test_invalid_limit(self, db_path):
        result = invoke(db_path, "search", "anidb", "bebop", "--limit", "0")

        assert result.exit_code == 1
        assert "limit must be a positive integer" in result.output

    def test_lookup_by_key(self, db_path):
        result = invoke(db_path, "lookup", "anidb", "1")

        assert result.exit_code == 0, result.output
        assert "2 record(s) for 1 in anidb" in result.output
        assert "Crest of the Stars" in result.output

    def test_lookup_by_id(self, db_path):
        result = invoke(db_path, "lookup", "anidb", "3", "--id")

        assert result.exit_code == 0, result.output
        assert "[3] 23" in result.output

    def test_lookup_missing(self, db_path):
        result = invoke(db_path, "lookup", "anidb", "999")

        assert result.exit_code == 1
        assert "no anidb record for '999'" in result.output

    def test_generations(self, db_path):
        result = invoke(db_path, "generations", "anidb")

        assert result.exit_code == 0, result.output
        assert "alive" in result.output
        assert "ids 1..4" in result.output

    def test_generations_empty_dataset(self, db_path):
        result = invoke(db_path, "generations", "vndb")

        assert result.exit_code == 0
        assert "No generations recorded" in result.output


class TestSweepCommand:
    """otame sweep."""

    def test_sweep_reclaims_retired_rows(self, db_path, dump):
        invoke(db_path, "ingest", "anidb", str(dump), "--mode", "append")
        invoke(db_path, "ingest", "anidb", str(dump), "--mode", "append")

        result = invoke(db_path, "sweep", "--retention-hours", "0")

        assert result.exit_code == 0, result.output
        assert "reclaimed 1 generation(s), 4 row(s) deleted" in result.output
        assert "reclaimed" in invoke(db_path, "generations").output

    def test_sweep_with_nothing_to_do(self, db_path):
        result = invoke(db_path, "sweep")

        assert result.exit_code == 0, result.output
        assert "reclaimed 0 generation(s)" in result.output

    def test_negative_retention(self, db_path):
        result = invoke(db_path, "sweep", "--retention-hours", "-1")

        assert result.exit_code == 1
        assert "✗ Error" in result.output


class TestGlobalOptions:
    """Options handled by the app callback."""

    def test_invalid_log_level(self, db_path):
        result = runner.invoke(app, ["--db", str(db_path), "--log-level", "LOUD", "generations"])

        assert result.exit_code == 1
        assert "✗ Error" in result.output

    def test_db_from_environment(self, db_path, dump, monkeypatch):
        monkeypatch.setenv("OTAME_DB_PATH", str(db_path))

        result = runner.invoke(app, ["ingest", "anidb", str(dump)])

        assert result.exit_code == 0, result.output
        assert db_path.exists()
