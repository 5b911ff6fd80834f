import logging
import threading
from datetime import datetime, timedelta
from typing import Dict, Optional, Tuple

from vsan_collector.metrics_config import WATERMARK_KEY_PREFIX


class WatermarkStore:
    """
    Process-wide store of the last observed sample time per polling stream.

    Provides:
    - Thread-safe get/put shared by all cluster tasks
    - Advance-only updates so a late or skewed cycle never moves a stream back
    - In-memory only; nothing survives a restart
    """

    def __init__(self):
        self._marks: Dict[str, datetime] = {}
        self._lock = threading.Lock()
        self.logger = logging.getLogger(__name__)

    def get(self, key: str) -> Optional[datetime]:
        """
        Get the watermark for a stream

        Args:
            key: Stream key (see watermark_key)

        Returns:
            Last observed sample time, or None on the first poll of the stream
        """
        with self._lock:
            return self._marks.get(key)

    def put(self, key: str, timestamp: datetime) -> None:
        """Store a watermark unconditionally"""
        with self._lock:
            self._marks[key] = timestamp

    def advance(self, key: str, timestamp: datetime) -> datetime:
        """
        Move a watermark forward.

        Args:
            key: Stream key
            timestamp: Latest sample time observed this cycle

        Returns:
            The stored watermark after the call (unchanged if timestamp is older)
        """
        with self._lock:
            current = self._marks.get(key)
            if current is not None and timestamp <= current:
                self.logger.debug(f"Watermark {key} not advanced: {timestamp} <= {current}")
                return current
            self._marks[key] = timestamp
            return timestamp

    def clear(self, key: Optional[str] = None) -> None:
        with self._lock:
            if key is None:
                self._marks = {}
            else:
                self._marks.pop(key, None)

    def __len__(self) -> int:
        with self._lock:
            return len(self._marks)


def watermark_key(cluster) -> str:
    """Per-cluster stream key for performance series."""
    return f"{WATERMARK_KEY_PREFIX}:{cluster.cluster_id}"


def query_window(store: WatermarkStore, key: str, now: datetime,
                 sampling_period: int, lookback_factor: int) -> Tuple[datetime, datetime]:
    """
    Pick the [start, end] window for the next performance query.

    A missing watermark means first poll: look back lookback_factor sampling
    periods from now.
    """
    start = store.get(key)
    if start is None:
        start = now - timedelta(seconds=lookback_factor * sampling_period)
    return start, now
