# === NAVMAP v1 ===
# {
#   "module": "Otame.catalog.schema",
#   "purpose": "Closed set of datasets and languages plus the SQLite DDL derived from it",
#   "sections": [
#     {"id": "language", "name": "Language", "anchor": "class-language", "kind": "class"},
#     {"id": "childtable", "name": "ChildTable", "anchor": "class-childtable", "kind": "class"},
#     {"id": "datasetspec", "name": "DatasetSpec", "anchor": "class-datasetspec", "kind": "class"},
#     {"id": "catalogschema", "name": "CatalogSchema", "anchor": "class-catalogschema", "kind": "class"},
#     {"id": "default-schema", "name": "DEFAULT_SCHEMA", "anchor": "DEF", "kind": "constant"}
#   ]
# }
# === /NAVMAP ===

"""Dataset and language registry for the catalog store.

Every table name that appears in SQL text is derived from the specs in this
module.  Dataset and child-table identifiers are validated once, when the
:class:`CatalogSchema` is built at startup; afterwards callers only ever pass
a dataset *name* that is looked up in the registry, so no caller-supplied
string is interpolated into a statement.

Layout per dataset ``d`` with languages ``L`` and child tables ``C``::

    d                     base table, one row per record
    <child> for child in C  rows referencing d.id through d_id
    d_fts_<l> for l in L    FTS4 index over d.title, docid = d.id
    d_fts_<l>_ai / _ad      triggers keeping the index in sync

Shared tables: ``generations`` (ingest batches) and ``schema_version``.

Every index uses the ``unicode61`` tokenizer, which splits on whitespace and
punctuation only.  Japanese titles are usually written without spaces, so an
unsegmented title such as ``進撃の巨人`` is a single token: it matches a
query for the whole title but not one for ``進撃``.  Titles whose words are
separated (``機動戦士 ガンダム``) match word by word.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Mapping, Tuple

from ..errors import ConfigurationError

SCHEMA_VERSION = "1"

_IDENTIFIER = re.compile(r"^[a-z][a-z0-9_]*$")

_RESERVED_NAMES = frozenset({"generations", "schema_version", "sqlite_sequence"})


class Language(str, Enum):
    """Language tags that get a dedicated full-text index."""

    JAPANESE = "ja"
    ENGLISH = "en"
    ROMAJI = "x-jat"

    @property
    def table_suffix(self) -> str:
        """SQL-safe suffix used in index and trigger names."""
        return self.value.replace("-", "_")

    @classmethod
    def parse(cls, tag: str) -> "Language":
        """Return the member for ``tag`` or raise :class:`ConfigurationError`."""
        try:
            return cls(tag)
        except ValueError:
            raise ConfigurationError(f"unsupported language tag: {tag!r}") from None


# Most specific script first, then the dominant international language,
# then the romanized fallback.
CASCADE_ORDER: Tuple[Language, ...] = (Language.JAPANESE, Language.ENGLISH, Language.ROMAJI)


def _check_identifier(kind: str, name: str) -> str:
    if not _IDENTIFIER.match(name):
        raise ConfigurationError(f"invalid {kind} identifier: {name!r}")
    if name in _RESERVED_NAMES:
        raise ConfigurationError(f"{kind} identifier {name!r} is reserved")
    return name


@dataclass(frozen=True)
class ChildTable:
    """A table holding rows that depend on one base record."""

    name: str
    columns: Tuple[str, ...]

    def __post_init__(self) -> None:
        _check_identifier("child table", self.name)
        if not self.columns:
            raise ConfigurationError(f"child table {self.name!r} declares no columns")
        for column in self.columns:
            _check_identifier("column", column)
            if column in {"id"}:
                raise ConfigurationError(f"column name {column!r} is reserved")


@dataclass(frozen=True)
class DatasetSpec:
    """One logical record collection: base table, children, and indexes."""

    name: str
    languages: Tuple[Language, ...]
    child_tables: Tuple[ChildTable, ...] = field(default_factory=tuple)

    def __post_init__(self) -> None:
        _check_identifier("dataset", self.name)
        if not self.languages:
            raise ConfigurationError(f"dataset {self.name!r} declares no languages")
        if len(set(self.languages)) != len(self.languages):
            raise ConfigurationError(f"dataset {self.name!r} repeats a language")
        seen = set()
        for child in self.child_tables:
            if child.name in seen or child.name == self.name:
                raise ConfigurationError(f"duplicate table {child.name!r} in {self.name!r}")
            seen.add(child.name)

    @property
    def base_table(self) -> str:
        return self.name

    @property
    def parent_column(self) -> str:
        """Column in every child table that references ``base_table.id``."""
        return f"{self.name}_id"

    def fts_table(self, language: Language) -> str:
        """Name of the full-text index for ``language``."""
        if language not in self.languages:
            raise ConfigurationError(
                f"dataset {self.name!r} has no {language.value!r} index"
            )
        return f"{self.name}_fts_{language.table_suffix}"

    def child(self, name: str) -> ChildTable:
        for child in self.child_tables:
            if child.name == name:
                return child
        raise ConfigurationError(f"dataset {self.name!r} has no child table {name!r}")

    def cascade_languages(self) -> List[Language]:
        """Languages of this dataset in cascading-search priority order."""
        return [language for language in CASCADE_ORDER if language in self.languages]

    def ddl(self) -> str:
        """Return idempotent DDL creating every table, index, and trigger."""

        base = self.base_table
        statements = [
            f"""
            CREATE TABLE IF NOT EXISTS {base} (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                natural_key TEXT NOT NULL,
                language TEXT NOT NULL,
                title TEXT NOT NULL,
                flags INTEGER NOT NULL DEFAULT 0,
                inserted_at TIMESTAMP NOT NULL
            );
            CREATE INDEX IF NOT EXISTS idx_{base}_natural_key ON {base}(natural_key);
            """
        ]
        for child in self.child_tables:
            columns = ",\n".join(f"    {column} TEXT" for column in child.columns)
            statements.append(
                f"""
                CREATE TABLE IF NOT EXISTS {child.name} (
                    id INTEGER PRIMARY KEY,
                    {self.parent_column} INTEGER NOT NULL,
                {columns},
                    FOREIGN KEY({self.parent_column}) REFERENCES {base}(id)
                );
                CREATE INDEX IF NOT EXISTS idx_{child.name}_parent
                    ON {child.name}({self.parent_column});
                """
            )
        for language in self.languages:
            fts = self.fts_table(language)
            statements.append(
                f"""
                CREATE VIRTUAL TABLE IF NOT EXISTS {fts} USING fts4(title, tokenize=unicode61);
                CREATE TRIGGER IF NOT EXISTS {fts}_ai AFTER INSERT ON {base}
                WHEN new.language = '{language.value}'
                BEGIN
                    INSERT INTO {fts}(docid, title) VALUES (new.id, new.title);
                END;
                CREATE TRIGGER IF NOT EXISTS {fts}_ad AFTER DELETE ON {base}
                WHEN old.language = '{language.value}'
                BEGIN
                    DELETE FROM {fts} WHERE docid = old.id;
                END;
                """
            )
        return "\n".join(statements)


_SHARED_DDL = """
CREATE TABLE IF NOT EXISTS schema_version (
    version TEXT PRIMARY KEY,
    applied_at TIMESTAMP NOT NULL
);

CREATE TABLE IF NOT EXISTS generations (
    id INTEGER PRIMARY KEY AUTOINCREMENT,
    dataset TEXT NOT NULL,
    created_at TIMESTAMP NOT NULL,
    first_id INTEGER NOT NULL,
    last_id INTEGER NOT NULL,
    dead INTEGER NOT NULL DEFAULT 0,
    dead_at TIMESTAMP,
    reclaimed_at TIMESTAMP,
    CHECK (first_id <= last_id)
);

CREATE INDEX IF NOT EXISTS idx_generations_dataset ON generations(dataset, id DESC);
"""


class CatalogSchema:
    """The closed registry of datasets a store knows about."""

    def __init__(self, datasets: Iterable[DatasetSpec]) -> None:
        self._datasets: Dict[str, DatasetSpec] = {}
        tables: Dict[str, str] = {}
        for spec in datasets:
            if spec.name in self._datasets:
                raise ConfigurationError(f"dataset {spec.name!r} registered twice")
            owned = [spec.base_table, *(c.name for c in spec.child_tables)]
            owned += [spec.fts_table(language) for language in spec.languages]
            for table in owned:
                if table in tables:
                    raise ConfigurationError(
                        f"table {table!r} of {spec.name!r} collides with {tables[table]!r}"
                    )
                tables[table] = spec.name
            self._datasets[spec.name] = spec
        if not self._datasets:
            raise ConfigurationError("a catalog schema needs at least one dataset")

    def dataset(self, name: str) -> DatasetSpec:
        """Resolve a caller-supplied dataset name to its spec."""
        try:
            return self._datasets[name]
        except KeyError:
            raise ConfigurationError(f"unknown dataset: {name!r}") from None

    @property
    def datasets(self) -> Mapping[str, DatasetSpec]:
        return dict(self._datasets)

    def names(self) -> List[str]:
        return list(self._datasets)

    def ddl(self) -> str:
        return "\n".join([_SHARED_DDL, *(spec.ddl() for spec in self._datasets.values())])


DEFAULT_SCHEMA = CatalogSchema(
    [
        DatasetSpec(
            name="anidb",
            languages=(Language.JAPANESE, Language.ENGLISH, Language.ROMAJI),
        ),
        DatasetSpec(
            name="vndb",
            languages=(Language.JAPANESE, Language.ENGLISH, Language.ROMAJI),
            child_tables=(ChildTable("vndb_latin", ("latin",)),),
        ),
        DatasetSpec(
            name="aodb",
            languages=(Language.ENGLISH, Language.ROMAJI),
            child_tables=(
                ChildTable("aodb_synonyms", ("synonym",)),
                ChildTable("aodb_relations", ("relation",)),
                ChildTable("aodb_tags", ("tag",)),
                ChildTable("aodb_sources", ("source_name", "source_url", "source_id")),
                ChildTable(
                    "aodb_details",
                    ("type", "episodes", "status", "season", "season_year", "picture", "thumbnail"),
                ),
            ),
        ),
    ]
)


__all__ = [
    "SCHEMA_VERSION",
    "Language",
    "CASCADE_ORDER",
    "ChildTable",
    "DatasetSpec",
    "CatalogSchema",
    "DEFAULT_SCHEMA",
]
