# === NAVMAP v1 ===
# {
#   "module": "Otame.cancellation",
#   "purpose": "Provide the cooperative cancellation token accepted by ingest and sweep",
#   "sections": [
#     {"id": "token", "name": "CancellationToken", "anchor": "TOK", "kind": "api"}
#   ]
# }
# === /NAVMAP ===
"""Cooperative cancellation for long-running catalog writes.

Bulk ingests and retention sweeps run inside a single store transaction that
may last for minutes on a full dump.  :class:`CancellationToken` lets another
thread (a signal handler, a supervisor) request that the transaction stop.
The writer checks the token between records or generations and raises
:class:`~Otame.errors.OperationCancelled`, which rolls the transaction back
and leaves the previously committed state untouched.
"""

from __future__ import annotations

import threading
from typing import Optional

from .errors import OperationCancelled


class CancellationToken:
    """Thread-safe cancellation token for cooperative task cancellation.

    Examples:
        >>> token = CancellationToken()
        >>> token.is_cancelled()
        False
        >>> token.cancel()
        >>> token.is_cancelled()
        True
    """

    def __init__(self) -> None:
        """Initialize a new cancellation token."""
        self._is_cancelled = threading.Event()
        self._reason: Optional[str] = None
        self._lock = threading.Lock()

    def cancel(self, reason: Optional[str] = None) -> None:
        """Signal that cancellation has been requested."""
        with self._lock:
            if not self._is_cancelled.is_set():
                self._reason = reason
            self._is_cancelled.set()

    def is_cancelled(self) -> bool:
        """Return ``True`` once cancellation has been requested."""
        return self._is_cancelled.is_set()

    @property
    def reason(self) -> Optional[str]:
        """Reason supplied by the first :meth:`cancel` call, if any."""
        return self._reason

    def raise_if_cancelled(self, operation: str) -> None:
        """Raise :class:`OperationCancelled` when the token has fired.

        Args:
            operation: Short label for the interrupted work, used in the message.
        """
        if self._is_cancelled.is_set():
            suffix = f" ({self._reason})" if self._reason else ""
            raise OperationCancelled(f"{operation} cancelled{suffix}")


def check_cancelled(token: Optional[CancellationToken], operation: str) -> None:
    """Raise :class:`OperationCancelled` if ``token`` is set and has fired."""

    if token is not None:
        token.raise_if_cancelled(operation)
