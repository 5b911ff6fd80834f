"""
Writer that fans out to several destinations.
"""

import logging
from typing import Dict, List

from vsan_collector.schema.records import Measurement
from vsan_collector.writer.base import Writer

LOG = logging.getLogger(__name__)

class MultiWriter(Writer):
    """Writes the same measurements to every wrapped writer."""

    def __init__(self, writers: List[Writer]):
        self.writers = list(writers)
        LOG.info(f"MultiWriter initialized with {len(self.writers)} writers: "
                 f"{[type(w).__name__ for w in self.writers]}")

    def write(self, measurements: Dict[str, List[Measurement]], loop_iteration: int = 1) -> bool:
        """Write to all writers; one failing writer does not stop the others."""
        success = True
        for writer in self.writers:
            if not writer.write(measurements, loop_iteration):
                LOG.error(f"{type(writer).__name__} failed to write iteration {loop_iteration}")
                success = False
        return success

    def close(self, timeout_seconds: int = 90) -> None:
        for writer in self.writers:
            writer.close(timeout_seconds=timeout_seconds)
