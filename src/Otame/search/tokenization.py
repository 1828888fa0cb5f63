"""Query tokenization and full-text MATCH expression building."""
from __future__ import annotations

import re
from typing import List

_TOKEN_PATTERN = re.compile(r"[\w']+")


def tokenize(text: str) -> List[str]:
    """Tokenize text into lowercase word tokens."""

    return [token.lower() for token in _TOKEN_PATTERN.findall(text or "")]


def build_match_expression(query: str) -> str:
    """Quote every query token as its own phrase.

    The result is passed as a bound parameter, and quoting keeps FTS query
    operators typed by users (``OR``, ``NEAR``, ``-``, ``*``) from being
    interpreted.  Returns an empty string when the query has no tokens.

    Examples:
        >>> build_match_expression("Shingeki no  Kyojin!")
        '"shingeki" "no" "kyojin"'
    """

    return " ".join('"' + token.replace('"', '""') + '"' for token in tokenize(query))
