"""Cooperative cancellation for reconciliation passes."""

import threading
from typing import Optional

from bucketrepl.exceptions import CancelledError


class Context:
    """Cancellation token threaded through every remote call.

    Cancelling a context never undoes calls that were already issued; it
    only prevents the next call from starting.

    Example:
        ctx = Context()
        worker = threading.Thread(target=client.put, args=("src", rules, ctx))
        worker.start()
        ctx.cancel("shutting down")
    """

    def __init__(self) -> None:
        self._event = threading.Event()
        self._reason: Optional[str] = None

    def cancel(self, reason: str = "operation cancelled") -> None:
        """Cancel the context."""
        self._reason = reason
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def check(self) -> None:
        """Raise CancelledError if the context was cancelled."""
        if self._event.is_set():
            raise CancelledError(self._reason or "operation cancelled")


def background() -> Context:
    """Return a fresh context that nothing else holds, so it is never cancelled."""
    return Context()
