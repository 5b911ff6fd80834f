"""
Poll-cycle context shared by every task of one collection cycle.

A single PollContext governs the whole cycle: cancelling it (or letting its
deadline pass) makes every subsequent upstream call raise CollectionCancelled.
"""

import threading
import time
from typing import Optional

from vsan_collector.exceptions import CollectionCancelled


class PollContext:
    """Cancellation token with an optional deadline"""

    def __init__(self, timeout: Optional[float] = None):
        self._event = threading.Event()
        self._deadline = time.monotonic() + timeout if timeout else None

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        if self._deadline is not None and time.monotonic() >= self._deadline:
            self._event.set()
            return True
        return False

    def remaining(self) -> Optional[float]:
        """Seconds left before the deadline, or None when there is no deadline."""
        if self._deadline is None:
            return None
        return max(0.0, self._deadline - time.monotonic())

    def request_timeout(self, default: float) -> float:
        """
        Timeout to use for one HTTP request so it never outlives the cycle.

        Args:
            default: Timeout used when the context has no deadline

        Returns:
            The smaller of default and the remaining time
        """
        remaining = self.remaining()
        if remaining is None:
            return default
        return max(0.001, min(default, remaining))

    def check(self) -> None:
        """Raise CollectionCancelled if the cycle has been cancelled or timed out."""
        if self.cancelled:
            raise CollectionCancelled("poll cycle cancelled")
