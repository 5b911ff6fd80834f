"""
Prometheus exporter writer for the vSAN Perf Collector.
"""

import logging
import re
import threading
from datetime import datetime, timezone
from typing import Dict, List, Optional, Tuple

from prometheus_client import Gauge, CollectorRegistry, start_http_server

from vsan_collector.metrics_config import CLUSTER_TAG_KEYS, PERF_TAG_KEYS, VSAN_PERF_MEASUREMENT
from vsan_collector.schema.records import Measurement
from vsan_collector.writer.base import Writer

# Initialize logger
LOG = logging.getLogger(__name__)

_INVALID_NAME_CHARS = re.compile(r'[^a-zA-Z0-9_]')
_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def metric_name(measurement_name: str, field: str) -> str:
    """Prometheus metric name for one measurement field, e.g. vsphere_cluster_vsan_performance_disk_group_iopsRead."""
    return _INVALID_NAME_CHARS.sub('_', f"{measurement_name}_{field}")


class PrometheusWriter(Writer):
    """
    Writer that exposes the latest value of every vSAN series as a Prometheus gauge.

    Gauges are created on first sight of a field. Every gauge of a measurement
    carries the same label set; tags a series does not have are exported empty.
    """

    def __init__(self, port: int = 8000, registry: Optional[CollectorRegistry] = None):
        """
        Initialize the Prometheus writer.

        Args:
            port: Port to serve Prometheus metrics on (default: 8000)
            registry: Registry to export; a private one is created by default
        """
        self.port = port
        self.server_started = False
        self.server_lock = threading.Lock()

        # Create custom registry to avoid conflicts with default registry
        self.prometheus_registry = registry or CollectorRegistry()
        self.gauges: Dict[str, Gauge] = {}

        LOG.info(f"PrometheusWriter initialized, will serve metrics on port {port}")

    @staticmethod
    def label_names(measurement_name: str) -> List[str]:
        if measurement_name == VSAN_PERF_MEASUREMENT:
            return CLUSTER_TAG_KEYS + PERF_TAG_KEYS
        return list(CLUSTER_TAG_KEYS)

    def _start_prometheus_server(self):
        """Start the Prometheus HTTP server if not already started."""
        with self.server_lock:
            if not self.server_started:
                try:
                    start_http_server(self.port, registry=self.prometheus_registry)
                    self.server_started = True
                    LOG.info(f"Prometheus metrics server started on port {self.port}")
                except OSError as e:
                    LOG.error(f"Failed to start Prometheus server on port {self.port}: {e}")
                    raise

    def _gauge(self, measurement_name: str, field: str) -> Gauge:
        name = metric_name(measurement_name, field)
        gauge = self.gauges.get(name)
        if gauge is None:
            gauge = Gauge(name, f"vSAN {field} ({measurement_name})",
                          self.label_names(measurement_name), registry=self.prometheus_registry)
            self.gauges[name] = gauge
        return gauge

    def _labels(self, measurement: Measurement) -> Tuple[str, ...]:
        return tuple(measurement.tags.get(key, '') for key in self.label_names(measurement.name))

    def write(self, measurements: Dict[str, List[Measurement]], loop_iteration: int = 1) -> bool:
        """
        Update gauges from one cycle's measurements.

        Several samples of the same series arrive per cycle; only the newest
        one is exported.

        Args:
            measurements: Measurement name -> measurements
            loop_iteration: Current iteration number

        Returns:
            bool: True if successful, False otherwise
        """
        if not self.server_started:
            try:
                self._start_prometheus_server()
            except OSError:
                return False

        updated = 0
        for measurement_name, records in measurements.items():
            ordered = sorted(records, key=lambda m: m.timestamp or _EPOCH)
            for measurement in ordered:
                labels = self._labels(measurement)
                for field, value in measurement.fields.items():
                    if value is None:
                        continue
                    self._gauge(measurement_name, field).labels(*labels).set(value)
                    updated += 1
            LOG.debug(f"Updated Prometheus gauges for {measurement_name} from {len(records)} measurements")

        LOG.info(f"Prometheus metrics updated: {updated} samples, {len(self.gauges)} gauges (iteration {loop_iteration})")
        return True
