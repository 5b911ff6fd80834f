"""
JSON file writer for the vSAN Perf Collector.
"""

import json
import logging
import os
from datetime import datetime
from typing import Any, Dict, List

from vsan_collector.schema.records import Measurement
from vsan_collector.utils import get_json_output_path
from vsan_collector.writer.base import Writer

# Initialize logger
LOG = logging.getLogger(__name__)

class JsonWriter(Writer):
    """
    Writer that outputs each cycle's measurements to JSON files, one file per
    measurement name.
    """

    def __init__(self, output_dir: str):
        """
        Initialize the JSON writer.

        Args:
            output_dir: Directory where JSON files will be written
        """
        self.output_dir = output_dir
        os.makedirs(output_dir, exist_ok=True)
        LOG.info(f"JSON Writer initialized with output directory: {output_dir}")

    @staticmethod
    def to_record(measurement: Measurement) -> Dict[str, Any]:
        timestamp = measurement.timestamp
        return {
            'measurement': measurement.name,
            'tags': dict(measurement.tags),
            'fields': dict(measurement.fields),
            'time': timestamp.isoformat() if isinstance(timestamp, datetime) else None,
        }

    def write(self, measurements: Dict[str, List[Measurement]], loop_iteration: int = 1) -> bool:
        """
        Write measurements to JSON files.

        Args:
            measurements: Measurement name -> measurements
            loop_iteration: Current iteration number, part of the file name

        Returns:
            True if every file was written, False otherwise
        """
        success = True
        for measurement_name, records in measurements.items():
            if not records:
                continue
            path = get_json_output_path(measurement_name, self.output_dir, loop_iteration)
            try:
                with open(path, 'w') as f:
                    json.dump([self.to_record(m) for m in records], f, indent=2)
                LOG.info(f"Wrote {len(records)} {measurement_name} records to {path}")
            except (OSError, TypeError, ValueError) as e:
                LOG.error(f"Failed to write JSON file {path}: {e}")
                success = False
        return success
