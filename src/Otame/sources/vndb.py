"""VNDB ``db/vn_titles`` decoding.

Tab separated, no header, ``\\N`` for NULL::

    <id>  <lang>  <official t|f>  <title>  <latin>

A romanization in the ``latin`` column is stored as a ``vndb_latin`` child
row of the original title and, since the title itself is not in Latin
script, also indexed on its own as an ``x-jat`` record.
"""

from __future__ import annotations

from typing import Iterable, Iterator, List

from ..catalog.models import Record, TitleFlag
from ..catalog.schema import Language
from .decoders import DelimitedLineDecoder

NULL = "\\N"
LATIN_TABLE = "vndb_latin"

_OFFICIAL = {"t": True, "f": False}


def _unmarshal(columns: List[str]) -> List[Record]:
    vn_id, language, official, title, latin = columns
    if official not in _OFFICIAL:
        raise ValueError(f"official must be 't' or 'f', got {official!r}")
    try:
        tag = Language(language)
    except ValueError:
        return []
    if not title.strip():
        return []

    flags = TitleFlag.OFFICIAL if _OFFICIAL[official] else TitleFlag.NONE
    has_latin = latin != NULL and bool(latin.strip())
    children = {LATIN_TABLE: [(latin,)]} if has_latin else {}
    records = [Record(natural_key=vn_id, language=tag, text=title, flags=flags, children=children)]
    if has_latin and tag is not Language.ROMAJI:
        records.append(Record(natural_key=vn_id, language=Language.ROMAJI, text=latin, flags=flags))
    return records


def vndb_titles(stream: Iterable[str]) -> Iterator[Record]:
    """Yield records for every indexed VNDB title line."""

    for records in DelimitedLineDecoder(stream, "\t", 5, _unmarshal):
        yield from records


__all__ = ["vndb_titles"]
