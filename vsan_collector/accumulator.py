"""
Thread-safe sink for the measurements and errors of one poll cycle.

Cluster tasks submit concurrently; the main loop drains once per cycle and
hands the measurements to the configured writer.
"""

import logging
import threading
from collections import defaultdict
from datetime import datetime
from typing import Dict, List, Mapping, Optional

from vsan_collector.schema.records import FieldValue, Measurement

LOG = logging.getLogger(__name__)


class MetricAccumulator:
    """Collects measurements grouped by measurement name"""

    def __init__(self):
        self._lock = threading.Lock()
        self._measurements: Dict[str, List[Measurement]] = defaultdict(list)
        self._errors: List[Exception] = []

    def add_fields(self, name: str, fields: Mapping[str, FieldValue],
                   tags: Optional[Mapping[str, str]] = None,
                   timestamp: Optional[datetime] = None) -> None:
        """
        Record one measurement.

        Args:
            name: Measurement name
            fields: Field values; an empty mapping is ignored
            tags: Tag values, copied
            timestamp: Sample time, None for ingestion time
        """
        if not fields:
            return
        measurement = Measurement(name=name, fields=dict(fields), tags=dict(tags or {}), timestamp=timestamp)
        with self._lock:
            self._measurements[name].append(measurement)

    def add_error(self, err: Exception) -> None:
        LOG.error(f"{err}")
        with self._lock:
            self._errors.append(err)

    def drain(self) -> Dict[str, List[Measurement]]:
        """Return and clear everything recorded since the last drain."""
        with self._lock:
            drained = dict(self._measurements)
            self._measurements = defaultdict(list)
        return drained

    def drain_errors(self) -> List[Exception]:
        with self._lock:
            errors = self._errors
            self._errors = []
        return errors

    def count(self) -> int:
        with self._lock:
            return sum(len(v) for v in self._measurements.values())
