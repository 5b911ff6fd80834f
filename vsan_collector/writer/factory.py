"""
Writer factory for the vSAN Perf Collector.
"""

import logging
from typing import Dict, List, Optional

from vsan_collector.schema.records import Measurement
from vsan_collector.writer.base import Writer
from vsan_collector.writer.influxdb_writer import InfluxDBWriter
from vsan_collector.writer.json_writer import JsonWriter
from vsan_collector.writer.prometheus_writer import PrometheusWriter
from vsan_collector.writer.multi_writer import MultiWriter

# Initialize logger
LOG = logging.getLogger(__name__)

class StubWriter(Writer):
    """Writer that only logs what it would write."""

    def write(self, measurements: Dict[str, List[Measurement]], loop_iteration: int = 1) -> bool:
        total = sum(len(records) for records in measurements.values())
        LOG.info(f"Stub writer: Would write {total} records in {len(measurements)} measurements")
        return True


class WriterFactory:
    """
    Factory for creating writer instances based on configuration.
    """

    @staticmethod
    def create_writer(settings, output: Optional[str] = None, to_json: Optional[str] = None,
                      do_not_post: bool = False) -> Writer:
        """
        Create a writer for the configured destination.

        Args:
            settings: Settings with InfluxDB and Prometheus parameters
            output: 'influxdb', 'prometheus' or 'both'; defaults to settings.output
            to_json: Output directory for JSON files; takes precedence over output
            do_not_post: Collect but do not write anywhere

        Returns:
            Appropriate Writer instance
        """
        if do_not_post:
            LOG.info("Not posting collected data (--doNotPost)")
            return StubWriter()

        to_json = to_json or settings.to_json
        if to_json:
            LOG.info(f"Creating JSON writer with output directory: {to_json}")
            return JsonWriter(to_json)

        output_choice = output or settings.output

        if output_choice == 'prometheus':
            LOG.info("Creating Prometheus writer")
            return PrometheusWriter(port=settings.prometheus_port)

        if output_choice == 'influxdb':
            influxdb_writer = _create_influxdb_writer(settings)
            if influxdb_writer is None:
                LOG.error("InfluxDB output selected but missing connection parameters")
                return StubWriter()
            return influxdb_writer

        if output_choice == 'both':
            LOG.info("Creating MultiWriter for both InfluxDB and Prometheus output")
            writers: List[Writer] = []
            influxdb_writer = _create_influxdb_writer(settings)
            if influxdb_writer is not None:
                writers.append(influxdb_writer)
            else:
                LOG.error("InfluxDB configuration missing for 'both' output")
            writers.append(PrometheusWriter(port=settings.prometheus_port))
            return MultiWriter(writers)

        LOG.warning(f"No valid output destination configured ({output_choice}), using stub writer")
        return StubWriter()


def _create_influxdb_writer(settings) -> Optional[InfluxDBWriter]:
    if not (settings.influxdb_url and settings.influxdb_database and settings.influxdb_token):
        return None
    LOG.info(f"Creating InfluxDB writer with URL: {settings.influxdb_url}, database: {settings.influxdb_database}")
    config = {
        'influxdb_url': settings.influxdb_url,
        'influxdb_database': settings.influxdb_database,
        'influxdb_token': settings.influxdb_token,
        'tls_ca': settings.tls_ca,
        'tls_validation': settings.tls_validation,
    }
    return InfluxDBWriter(config)
