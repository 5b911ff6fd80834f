"""
InfluxDB writer for the vSAN Perf Collector.
Writes vSAN capacity, health and performance measurements to InfluxDB 3.x.

Note: this file leverages batching_example.py from the https://github.com/InfluxCommunity/influxdb3-python project
License: Apache License, Version 2.0, January 2004 (http://www.apache.org/licenses/)
"""

import logging
import os
import threading
import time
from typing import Any, Dict, List, Optional

import requests
from influxdb_client_3 import InfluxDBClient3, Point, WriteOptions, write_client_options
from influxdb_client_3.exceptions.exceptions import InfluxDBError

from vsan_collector.config import INFLUXDB_WRITE_PRECISION
from vsan_collector.schema.records import Measurement
from vsan_collector.writer.base import Writer

LOG = logging.getLogger(__name__)

class BatchingCallback(object):
    """
    Callback handler for batched InfluxDB writes.

    Tracks write success/failure statistics for the periodic status log.
    """

    def __init__(self):
        self.write_status_msg = None
        self.write_count = 0
        self.error_count = 0
        self.retry_count = 0
        self.start = time.time_ns()

    def success(self, conf, data: str):
        self.write_count += 1
        self.write_status_msg = f"SUCCESS: {self.write_count} batches written"
        LOG.debug(f"Batch write successful: {len(data)} bytes")

    def error(self, conf, data: str, exception: InfluxDBError):
        self.error_count += 1
        self.write_status_msg = f"FAILURE: {exception}"
        LOG.error(f"Batch write failed: {len(data)} bytes, error: {exception}")

    def retry(self, conf, data: str, exception: InfluxDBError):
        self.retry_count += 1
        LOG.warning(f"Batch write retry {self.retry_count}: {len(data)} bytes, error: {exception}")

    def elapsed_ms(self) -> int:
        return (time.time_ns() - self.start) // 1_000_000

    def get_stats(self) -> Dict[str, Any]:
        return {
            'writes': self.write_count,
            'errors': self.error_count,
            'retries': self.retry_count,
            'elapsed_ms': self.elapsed_ms(),
            'status': self.write_status_msg
        }

class InfluxDBWriter(Writer):
    """
    Writer implementation for InfluxDB 3.x.

    Handles:
    - Second-level timestamp precision
    - Measurements without a sample time (capacity, health) stamped with the write time
    - Client-side batching with success/error/retry callbacks
    """

    def __init__(self, config: Dict[str, Any]):
        """Initialize InfluxDB writer with configuration."""
        self.url = config.get('influxdb_url') or os.getenv('INFLUXDB_URL', 'https://influxdb:8181')
        self.token = config.get('influxdb_token') or os.getenv('INFLUXDB_TOKEN', '')
        self.database = config.get('influxdb_database') or os.getenv('INFLUXDB_DATABASE', 'vsan')
        self.tls_ca = config.get('tls_ca', None)
        self.tls_validation = config.get('tls_validation', 'strict')
        self.create_database = config.get('create_database', True)

        # One batch per collection cycle is typical: a few hundred series every 5 minutes
        self.batch_size = config.get('batch_size', 500)
        self.flush_interval = config.get('flush_interval', 60_000)

        self.batch_callback = BatchingCallback()

        self.client = None
        self._initialize_client()
        LOG.info(f"InfluxDBWriter initialized: {self.url} -> {self.database}")

    def _ca_cert_path(self) -> Optional[str]:
        ca_cert_path = self.tls_ca or os.getenv('INFLUXDB3_TLS_CA')
        if ca_cert_path and os.path.exists(ca_cert_path):
            return ca_cert_path
        if ca_cert_path:
            LOG.warning(f"CA certificate path specified but file not found: {ca_cert_path}")
        return None

    def _initialize_client(self):
        """Initialize the InfluxDB client with proper TLS configuration."""
        # InfluxDB always requires strict TLS validation - ignore user's tls_validation setting
        if self.tls_validation == 'none':
            LOG.warning("TLS validation 'none' not supported for InfluxDB - InfluxDB requires strict TLS validation")

        write_options = WriteOptions(
            batch_size=self.batch_size,
            flush_interval=self.flush_interval,
            jitter_interval=2_000,       # 2 seconds
            retry_interval=5_000,        # 5 seconds
            max_retries=5,
            max_retry_delay=30_000,      # 30 seconds
            max_close_wait=120_000,      # 2 minutes
            exponential_base=2
        )
        wco = write_client_options(
            success_callback=self.batch_callback.success,
            error_callback=self.batch_callback.error,
            retry_callback=self.batch_callback.retry,
            write_options=write_options
        )

        client_kwargs = {
            'host': self.url,
            'database': self.database,
            'token': self.token,
            'enable_gzip': True,
            'write_client_options': wco,
            'verify_ssl': True,
            'timeout': 60000  # milliseconds
        }
        ca_cert_path = self._ca_cert_path()
        if ca_cert_path:
            LOG.info(f"Using custom CA certificate: {ca_cert_path}")
            client_kwargs['ssl_ca_cert'] = ca_cert_path

        try:
            self.client = InfluxDBClient3(**client_kwargs)
        except Exception as e:
            LOG.error(f"Failed to create InfluxDB client: {e}")
            raise
        LOG.info(f"InfluxDB client created successfully with strict TLS validation to {self.url}")

        if self.create_database:
            self._ensure_database_exists()

    def _ensure_database_exists(self):
        """Ensure the target database exists, creating it if necessary."""
        headers = {
            'Authorization': f'Bearer {self.token}',
            'Accept': 'application/json'
        }
        verify_tls = self._ca_cert_path() or True
        try:
            response = requests.get(f"{self.url}/api/v3/configure/database?format=json",
                                    headers=headers, timeout=10, verify=verify_tls)
            if response.status_code != 200:
                LOG.warning(f"Failed to check database existence: HTTP {response.status_code}")
                return

            databases_data = response.json()
            # Either [{"iox::database": "name"}, ...] or a plain list of names
            if isinstance(databases_data, list) and databases_data and isinstance(databases_data[0], dict):
                databases = [db.get("iox::database") for db in databases_data]
            elif isinstance(databases_data, list):
                databases = databases_data
            elif isinstance(databases_data, dict):
                databases = databases_data.get('databases', [])
            else:
                databases = []

            if self.database in databases:
                LOG.info(f"Database '{self.database}' already exists")
                return

            LOG.info(f"Database '{self.database}' does not exist, creating it")
            create_response = requests.post(f"{self.url}/api/v3/configure/database",
                                            json={"db": self.database}, headers=headers,
                                            timeout=10, verify=verify_tls)
            if create_response.status_code in (200, 201, 204):
                LOG.info(f"Successfully created database '{self.database}'")
            else:
                LOG.error(f"Failed to create database '{self.database}': HTTP {create_response.status_code}")
        except (requests.exceptions.RequestException, ValueError) as db_error:
            LOG.warning(f"Could not verify database existence (will be created on first write): {db_error}")

    def write(self, measurements: Dict[str, List[Measurement]], loop_iteration: int = 1) -> bool:
        """
        Write measurements to InfluxDB using automatic client-side batching.

        Args:
            measurements: Measurement name -> measurements
            loop_iteration: Current iteration number

        Returns:
            bool: True if all points were submitted, False otherwise
        """
        if not self.client:
            LOG.error("InfluxDB client not available")
            return False

        write_time = int(time.time())
        success = True
        written_count = 0

        for measurement_name, records in measurements.items():
            if not records:
                LOG.debug(f"No data for measurement: {measurement_name}")
                continue
            points = [self._to_point(m, write_time) for m in records]
            for point in points:
                try:
                    self.client.write(record=point)
                    written_count += 1
                except (InfluxDBError, OSError, ValueError) as e:
                    LOG.error(f"Failed to write point for {measurement_name}: {e}")
                    success = False
            LOG.info(f"Submitted {len(points)} points for {measurement_name}")

        if written_count > 0:
            LOG.info(f"InfluxDB write submitted: {written_count} total points (iteration {loop_iteration})")
        return success

    @staticmethod
    def _to_point(measurement: Measurement, write_time: int) -> Point:
        point = Point(measurement.name)
        for tag_key, tag_value in measurement.tags.items():
            if tag_value:
                point = point.tag(tag_key, tag_value)
        for field_key, field_value in measurement.fields.items():
            if field_value is not None:
                point = point.field(field_key, field_value)
        if measurement.timestamp is not None:
            timestamp = int(measurement.timestamp.timestamp())
        else:
            timestamp = write_time
        return point.time(timestamp, INFLUXDB_WRITE_PRECISION)

    def get_batch_stats(self) -> Dict[str, Any]:
        return self.batch_callback.get_stats()

    def close(self, timeout_seconds: int = 90) -> None:
        """Close the InfluxDB client, flushing pending batches, with a timeout."""
        if not self.client:
            return

        LOG.info(f"Closing InfluxDB client with {timeout_seconds}s timeout...")
        close_completed = threading.Event()
        client = self.client

        def close_thread():
            try:
                client.close()
            except (InfluxDBError, OSError) as e:
                LOG.warning(f"Error during graceful close: {e}")
            finally:
                close_completed.set()

        closer = threading.Thread(target=close_thread, daemon=True)
        closer.start()
        if close_completed.wait(timeout_seconds):
            LOG.info(f"InfluxDB client closed. Batch stats: {self.get_batch_stats()}")
        else:
            LOG.warning(f"InfluxDB client close timed out after {timeout_seconds}s - pending writes may be lost")
        self.client = None
