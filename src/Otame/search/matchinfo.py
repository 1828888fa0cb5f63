# === NAVMAP v1 ===
# {
#   "module": "Otame.search.matchinfo",
#   "purpose": "Decode the FTS match-statistics blob into per phrase/column hit counts",
#   "sections": [
#     {"id": "phrasehits", "name": "PhraseHits", "anchor": "class-phrasehits", "kind": "class"},
#     {"id": "matchinfo", "name": "MatchInfo", "anchor": "class-matchinfo", "kind": "class"}
#   ]
# }
# === /NAVMAP ===

"""Match-statistics blob decoding.

The full-text index returns, for every matched document, a blob produced by
``matchinfo(<table>, 'pcx')``::

    Offset      Type        Description
    0           int32 LE    phrase count P
    4           int32 LE    column count C
    8 + 12*k    int32 LE*3  [hits_in_document, hits_in_corpus, reserved]
                            for k = phrase * C + column (phrase-major)

The layout is decoded with explicit little-endian ``struct`` formats so the
result does not depend on the host.  The declared size ``8 + 12*P*C`` is
checked before any triple is read; a short blob raises
:class:`~Otame.errors.ValidationError` instead of being truncated.
"""

from __future__ import annotations

import struct
from dataclasses import dataclass
from typing import Iterator, NamedTuple, Tuple, Union

from ..errors import ValidationError

_HEADER = struct.Struct("<ii")
_TRIPLE_SIZE = 12


class PhraseHits(NamedTuple):
    """Hit counts of one phrase in one column."""

    hits_in_document: int
    hits_in_corpus: int
    reserved: int


@dataclass(frozen=True)
class MatchInfo:
    """Decoded match statistics for one (query, document) pair.

    Examples:
        >>> blob = struct.pack("<ii3i", 1, 1, 3, 10, 2)
        >>> MatchInfo.decode(blob).phrase_info(0, 0)
        PhraseHits(hits_in_document=3, hits_in_corpus=10, reserved=2)
    """

    phrase_count: int
    column_count: int
    values: Tuple[int, ...]

    @staticmethod
    def expected_size(phrase_count: int, column_count: int) -> int:
        return _HEADER.size + _TRIPLE_SIZE * phrase_count * column_count

    @classmethod
    def decode(cls, blob: Union[bytes, bytearray, memoryview]) -> "MatchInfo":
        """Parse ``blob``; raise :class:`ValidationError` if it is malformed."""

        if not isinstance(blob, (bytes, bytearray, memoryview)):
            raise ValidationError(f"match statistics must be bytes, got {type(blob).__name__}")
        data = bytes(blob)
        if len(data) < _HEADER.size:
            raise ValidationError(
                f"match statistics blob is {len(data)} bytes; header needs {_HEADER.size}"
            )
        phrase_count, column_count = _HEADER.unpack_from(data, 0)
        if phrase_count < 0 or column_count < 0:
            raise ValidationError(
                f"match statistics declare negative counts: P={phrase_count} C={column_count}"
            )
        expected = cls.expected_size(phrase_count, column_count)
        if len(data) < expected:
            raise ValidationError(
                f"match statistics blob is {len(data)} bytes; P={phrase_count} C={column_count} "
                f"requires {expected}"
            )
        n_values = 3 * phrase_count * column_count
        values = struct.unpack_from(f"<{n_values}i", data, _HEADER.size)
        return cls(phrase_count=phrase_count, column_count=column_count, values=values)

    def phrase_info(self, phrase: int, column: int) -> PhraseHits:
        """Return the hit counts of ``phrase`` in ``column``."""

        if not 0 <= phrase < self.phrase_count or not 0 <= column < self.column_count:
            raise ValidationError(
                f"phrase/column ({phrase}, {column}) outside "
                f"{self.phrase_count}x{self.column_count} match statistics"
            )
        offset = (phrase * self.column_count + column) * 3
        return PhraseHits(*self.values[offset:offset + 3])

    def __iter__(self) -> Iterator[Tuple[int, int, PhraseHits]]:
        """Yield ``(phrase, column, hits)`` in phrase-major order."""

        for phrase in range(self.phrase_count):
            for column in range(self.column_count):
                yield phrase, column, self.phrase_info(phrase, column)


__all__ = ["MatchInfo", "PhraseHits"]
