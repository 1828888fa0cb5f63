"""Record sources decoding upstream title dumps."""

from __future__ import annotations

from .anidb import anidb_titles
from .aodb import aodb_titles, split_source
from .decoders import DelimitedLineDecoder, open_dump
from .vndb import vndb_titles

DUMP_FORMATS = {
    "anidb": anidb_titles,
    "vndb": vndb_titles,
    "aodb": aodb_titles,
}

__all__ = [
    "DUMP_FORMATS",
    "DelimitedLineDecoder",
    "anidb_titles",
    "aodb_titles",
    "open_dump",
    "split_source",
    "vndb_titles",
]
