"""anime-offline-database decoding.

The dump is a single JSON document (the minified release is one line)::

    {"data": [
        {"sources": ["https://anidb.net/anime/23", ...],
         "title": "Cowboy Bebop", "type": "TV", "episodes": 26,
         "status": "FINISHED", "animeSeason": {"season": "SPRING", "year": 1998},
         "picture": "...", "thumbnail": "...",
         "synonyms": [...], "relations": [...], "tags": [...]},
        ...
    ]}

Each entry becomes one ``x-jat`` record keyed by its first source URL.
Synonyms, relations, tags and sources are stored as child rows; every source
URL is split into the provider host name and the last path segment, which is
the provider's own id.  Entries without any source cannot be keyed and are
skipped.
"""

from __future__ import annotations

import json
from typing import Any, Dict, Iterator, List, Optional, TextIO, Tuple
from urllib.parse import urlsplit

from ..catalog.models import Record
from ..catalog.schema import Language
from ..errors import SourceError

SYNONYMS_TABLE = "aodb_synonyms"
RELATIONS_TABLE = "aodb_relations"
TAGS_TABLE = "aodb_tags"
SOURCES_TABLE = "aodb_sources"
DETAILS_TABLE = "aodb_details"


def split_source(url: str) -> Tuple[str, str, str]:
    """Return ``(source_name, source_url, source_id)`` for a provider URL.

    Examples:
        >>> split_source("https://anidb.net/anime/23")
        ('anidb.net', 'https://anidb.net/anime/23', '23')
    """

    parts = urlsplit(url)
    if not parts.hostname:
        raise ValueError(f"source is not an absolute URL: {url!r}")
    return parts.hostname, url, parts.path.rsplit("/", 1)[-1]


def _strings(entry: Dict[str, Any], key: str) -> List[str]:
    values = entry.get(key) or []
    if not isinstance(values, list) or not all(isinstance(value, str) for value in values):
        raise ValueError(f"{key!r} must be a list of strings")
    return values


def _text(value: Any) -> Optional[str]:
    return None if value is None else str(value)


def _unmarshal(entry: Any) -> Optional[Record]:
    if not isinstance(entry, dict):
        raise ValueError("entry must be a JSON object")
    title = entry.get("title")
    if not isinstance(title, str) or not title.strip():
        raise ValueError("entry has no title")
    sources = _strings(entry, "sources")
    if not sources:
        return None

    season = entry.get("animeSeason") or {}
    if not isinstance(season, dict):
        raise ValueError("'animeSeason' must be an object")
    details = (
        _text(entry.get("type")),
        _text(entry.get("episodes")),
        _text(entry.get("status")),
        _text(season.get("season")),
        _text(season.get("year")),
        _text(entry.get("picture")),
        _text(entry.get("thumbnail")),
    )
    children = {
        SYNONYMS_TABLE: [(synonym,) for synonym in _strings(entry, "synonyms")],
        RELATIONS_TABLE: [(relation,) for relation in _strings(entry, "relations")],
        TAGS_TABLE: [(tag,) for tag in _strings(entry, "tags")],
        SOURCES_TABLE: [split_source(url) for url in sources],
        DETAILS_TABLE: [details],
    }
    return Record(
        natural_key=sources[0],
        language=Language.ROMAJI,
        text=title,
        children={name: rows for name, rows in children.items() if rows},
    )


def aodb_titles(stream: TextIO) -> Iterator[Record]:
    """Yield one record per anime-offline-database entry."""

    try:
        document = json.load(stream)
    except json.JSONDecodeError as exc:
        raise SourceError(f"invalid JSON: {exc.msg}", line=exc.lineno) from exc
    entries = document.get("data") if isinstance(document, dict) else None
    if not isinstance(entries, list):
        raise SourceError("expected a top-level object with a 'data' list")

    for index, entry in enumerate(entries):
        try:
            record = _unmarshal(entry)
        except ValueError as exc:
            raise SourceError(f"entry {index}: {exc}") from exc
        if record is not None:
            yield record


__all__ = ["aodb_titles", "split_source"]
