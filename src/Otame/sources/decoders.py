"""Line-oriented dump decoding.

Title dumps are plain text with one entry per line and a fixed number of
separator-delimited columns.  :class:`DelimitedLineDecoder` turns such a
stream into an iterator of decoded objects; decoding errors carry the
physical line number so a broken dump can be located quickly.
"""

from __future__ import annotations

import gzip
import io
from pathlib import Path
from typing import Callable, Generic, Iterable, Iterator, List, Optional, TextIO, TypeVar

from ..errors import OtameError, SourceError

T = TypeVar("T")

Unmarshal = Callable[[List[str]], Optional[T]]


class DelimitedLineDecoder(Generic[T]):
    """Decode separator-delimited lines with ``unmarshal``.

    Blank lines and lines starting with ``comment_prefix`` (after leading
    whitespace) are skipped.  Each other line is split into at most
    ``n_cols`` fields, so the last column may itself contain the separator.
    ``unmarshal`` returning ``None`` skips the line.

    Examples:
        >>> lines = io.StringIO("# header\\n1|a\\n\\n2|b|c\\n")
        >>> list(DelimitedLineDecoder(lines, "|", 2, tuple, comment_prefix="#"))
        [('1', 'a'), ('2', 'b|c')]
    """

    def __init__(
        self,
        stream: Iterable[str],
        separator: str,
        n_cols: int,
        unmarshal: Unmarshal,
        comment_prefix: Optional[str] = None,
    ) -> None:
        if not separator:
            raise ValueError("separator must be non-empty")
        if n_cols <= 0:
            raise ValueError("n_cols must be positive")
        self._stream = stream
        self.separator = separator
        self.n_cols = n_cols
        self.unmarshal = unmarshal
        self.comment_prefix = comment_prefix or None
        self.line = 0

    def _columns(self) -> Iterator[List[str]]:
        for raw in self._stream:
            self.line += 1
            text = raw.rstrip("\r\n")
            if not text:
                continue
            if self.comment_prefix and text.lstrip().startswith(self.comment_prefix):
                continue
            columns = text.split(self.separator, self.n_cols - 1)
            if len(columns) != self.n_cols:
                raise SourceError(
                    f"expected {self.n_cols} columns, found {len(columns)}: {text!r}",
                    line=self.line,
                )
            yield columns

    def __iter__(self) -> Iterator[T]:
        for columns in self._columns():
            try:
                value = self.unmarshal(columns)
            except OtameError as exc:
                raise SourceError(str(exc), line=self.line) from exc
            except (ValueError, LookupError, TypeError) as exc:
                raise SourceError(f"cannot decode {columns!r}: {exc}", line=self.line) from exc
            if value is not None:
                yield value


def open_dump(path: Path) -> TextIO:
    """Open a dump file as UTF-8 text, transparently gunzipping ``*.gz``."""

    path = Path(path)
    if path.suffix == ".gz":
        return io.TextIOWrapper(gzip.open(path, "rb"), encoding="utf-8")
    return path.open("r", encoding="utf-8")


__all__ = ["DelimitedLineDecoder", "open_dump"]
