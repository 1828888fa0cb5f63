"""Relevance scoring over decoded match statistics."""

from __future__ import annotations

from typing import Callable, Union

from ..errors import ValidationError
from .matchinfo import MatchInfo

__all__ = ("RankFunc", "corpus_frequency_rank", "Ranker")

RankFunc = Callable[[MatchInfo], float]


def corpus_frequency_rank(info: MatchInfo) -> float:
    """Sum ``hits_in_document / hits_in_corpus`` over every matching phrase/column.

    Globally rarer terms contribute more per local hit.

    Examples:
        >>> import struct
        >>> corpus_frequency_rank(MatchInfo.decode(struct.pack("<ii3i", 1, 1, 3, 10, 0)))
        0.3
    """
    rank = 0.0
    for phrase, column, hits in info:
        if hits.hits_in_document > 0:
            if hits.hits_in_corpus <= 0:
                raise ValidationError(
                    f"phrase {phrase} column {column}: {hits.hits_in_document} document hits "
                    f"but {hits.hits_in_corpus} corpus hits"
                )
            rank += hits.hits_in_document / hits.hits_in_corpus
    return rank


class Ranker:
    """Decode a match-statistics blob and score it with a pluggable policy.

    Attributes:
        rank_func: Scoring policy applied to each decoded blob.

    Examples:
        >>> import struct
        >>> Ranker().score(struct.pack("<ii3i", 1, 1, 1, 2, 0))
        0.5
    """

    def __init__(self, rank_func: RankFunc = corpus_frequency_rank) -> None:
        self.rank_func = rank_func

    def score(self, blob: Union[bytes, bytearray, memoryview]) -> float:
        """Return the relevance of one matched document (higher ranks first)."""

        return float(self.rank_func(MatchInfo.decode(blob)))
