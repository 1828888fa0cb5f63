"""Ranked full-text search over the catalog store."""

from __future__ import annotations

from .matchinfo import MatchInfo, PhraseHits
from .ranking import RankFunc, Ranker, corpus_frequency_rank
from .router import IndexRouter
from .service import QueryService
from .tokenization import build_match_expression, tokenize

__all__ = [
    "IndexRouter",
    "MatchInfo",
    "PhraseHits",
    "QueryService",
    "RankFunc",
    "Ranker",
    "build_match_expression",
    "corpus_frequency_rank",
    "tokenize",
]
