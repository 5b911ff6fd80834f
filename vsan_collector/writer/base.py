"""
Base writer interface for the vSAN Perf Collector.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, List

from vsan_collector.schema.records import Measurement

# Initialize logger
LOG = logging.getLogger(__name__)

class Writer(ABC):
    """
    Base class for all writers.
    """

    @abstractmethod
    def write(self, measurements: Dict[str, List[Measurement]], loop_iteration: int = 1) -> bool:
        """
        Write one cycle's measurements to the destination.

        Args:
            measurements: Measurement name -> measurements, as drained from the accumulator
            loop_iteration: Current iteration number

        Returns:
            True if write was successful, False otherwise
        """
        pass

    def close(self, timeout_seconds: int = 90) -> None:
        """
        Optional method to close the writer and clean up resources.
        Default implementation does nothing - override in subclasses that need cleanup.

        Args:
            timeout_seconds: Timeout for cleanup operations
        """
        pass
