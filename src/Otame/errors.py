"""Exception hierarchy shared across ingest, generation tracking, and search.

The catalog spans record decoding, transactional bulk writes, retention
sweeps, and ranked full-text queries.  This module groups the failure modes
into a small hierarchy so caller code can react to high-level categories (for
example, a broken upstream dump vs. a rejected write) while still being able
to catch :class:`OtameError` for everything raised by the package.
"""

from __future__ import annotations

from typing import Optional

__all__ = [
    "OtameError",
    "ConfigurationError",
    "SourceError",
    "ValidationError",
    "TransactionError",
    "NotFoundError",
    "OperationCancelled",
]


class OtameError(RuntimeError):
    """Base exception for catalog ingest, sweep, and search failures."""


class ConfigurationError(OtameError):
    """Raised for unknown datasets or languages and invalid schema identifiers."""


class SourceError(OtameError):
    """Raised when a record iterator fails mid-stream."""

    def __init__(self, message: str, *, line: Optional[int] = None) -> None:
        super().__init__(message if line is None else f"line {line}: {message}")
        self.line = line


class ValidationError(OtameError):
    """Raised for malformed records or malformed match-statistics blobs."""


class TransactionError(OtameError):
    """Raised when the underlying store rejects a write."""


class NotFoundError(OtameError, LookupError):
    """Raised when a point lookup finds no row."""

    def __init__(self, dataset: str, key: object) -> None:
        super().__init__(f"no {dataset} record for {key!r}")
        self.dataset = dataset
        self.key = key


class OperationCancelled(OtameError):
    """Raised when a cancellation token fires during an ingest or sweep."""
