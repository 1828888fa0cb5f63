"""AniDB ``anime-titles.dat`` decoding.

Format (``#`` starts a comment)::

    <aid>|<type>|<language>|<title>

Title types: ``1`` primary, ``2`` synonym, ``3`` short, ``4`` official.
Only languages that have a search index are kept.
"""

from __future__ import annotations

from typing import Iterable, Iterator, List, Optional

from ..catalog.models import Record, TitleFlag
from ..catalog.schema import Language
from .decoders import DelimitedLineDecoder

ANIDB_TITLE_TYPES = {
    "1": TitleFlag.PRIMARY,
    "2": TitleFlag.SYNONYM,
    "3": TitleFlag.SHORT,
    "4": TitleFlag.OFFICIAL,
}


def _unmarshal(columns: List[str]) -> Optional[Record]:
    aid, title_type, language, title = columns
    if not aid.strip().isdigit():
        raise ValueError(f"invalid aid {aid!r}")
    flag = ANIDB_TITLE_TYPES.get(title_type)
    if flag is None:
        raise ValueError(f"unknown title type {title_type!r}")
    try:
        tag = Language(language)
    except ValueError:
        return None
    if not title.strip():
        return None
    return Record(natural_key=aid.strip(), language=tag, text=title, flags=flag)


def anidb_titles(stream: Iterable[str]) -> Iterator[Record]:
    """Yield one record per indexed AniDB title line."""

    return iter(DelimitedLineDecoder(stream, "|", 4, _unmarshal, comment_prefix="#"))


__all__ = ["ANIDB_TITLE_TYPES", "anidb_titles"]
