#!/usr/bin/env python3

# -----------------------------------------------------------------------------
# Copyright (c) 2025 vSAN Perf Collector contributors
# Licensed under the MIT License. See LICENSE in project root for details.
# -----------------------------------------------------------------------------

"""
Entry point for the vSAN performance collector.
This module orchestrates the collection and writing of vSAN cluster metrics.

The application follows a modular architecture:
- collectors: Query capacity, health and performance data per cluster
- cache: Per-poll entity table and the watermarks that bound each query window
- enrichment: Resolve identity tags (host, disk, NIC) for performance series
- writer: Output measurements to various destinations (InfluxDB, JSON, Prometheus)
"""


import argparse
import sys
import logging
import os
import time
import getpass
from typing import List, Optional

from vsan_collector.accumulator import MetricAccumulator
from vsan_collector.api import VsanRestClient
from vsan_collector.cache.watermark_store import WatermarkStore
from vsan_collector.collectors.cluster_collector import ClusterCollector
from vsan_collector.collectors.dispatcher import Dispatcher
from vsan_collector.config import ConfigError, Settings
from vsan_collector.context import PollContext
from vsan_collector.exceptions import VsanCollectorError
from vsan_collector.filters import MetricFilter
from vsan_collector.schema.records import ClusterDescriptor
from vsan_collector.utils import vcenter_host
from vsan_collector.writer.factory import WriterFactory

LOG_FORMAT = '%(asctime)s - %(levelname)s - %(funcName)s - %(lineno)d - %(message)s'
LOG_DATEFMT = '%Y-%m-%dT%H:%M:%SZ'
MIN_INTERVAL_TIME = 60


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Collect vSAN cluster capacity, health and performance metrics")
    parser.add_argument('--config', type=str, default=None,
        help='Path to YAML config file. Overrides .env and environment variables.')
    parser.add_argument('--vcenter', type=str, default=None,
        help='vCenter host name or URL to collect from. Overrides config file.')
    parser.add_argument('--username', '-u', type=str, default=None,
        help='Username for vCenter API authentication. Can also be specified with -u.')
    parser.add_argument('--password', '-p', type=str, default=None,
        help='Password for vCenter API authentication. Can also be specified with -p. If not provided, will prompt interactively.')
    parser.add_argument('--intervalTime', type=int, default=None,
        help='Collection interval in seconds (minimum 60). Default: 300, the vSAN performance sampling period.')
    parser.add_argument('--influxdbUrl', type=str, default=None,
        help='InfluxDB server URL (overrides config file and .env if set). Example: https://db.example.com:8181')
    parser.add_argument('--influxdbDatabase', type=str, default=None,
        help='InfluxDB database name (overrides config file and .env if set).')
    parser.add_argument('--influxdbToken', type=str, default=None,
        help='InfluxDB authentication token (overrides config file and .env if set).')
    parser.add_argument('--tlsCa', type=str, default=None,
        help='Path to CA certificate for verifying vCenter/InfluxDB TLS connections (if not in system trust store).')
    parser.add_argument('--threads', type=int, default=None,
        help='Number of clusters collected concurrently. Default: 4.')
    parser.add_argument('--tlsValidation', type=str, choices=['strict', 'normal', 'none'], default=None,
        help='TLS validation mode for the vCenter API: strict (require valid CA and SKI/AKI), normal (default Python validation), none (disable all TLS validation, INSECURE, for testing only). Default: strict.')
    parser.add_argument('--logfile', type=str, default=None,
        help='Path to log file. If not provided, logs to console only.')
    parser.add_argument('--loglevel', type=str, choices=['DEBUG', 'INFO', 'WARNING', 'ERROR'], default='INFO',
        help='Log level for both console and file output. Default: INFO')
    parser.add_argument('--maxIterations', type=int, default=0,
        help='Maximum number of collection iterations to run before exiting. Default: 0 (run indefinitely).')
    parser.add_argument('--output', choices=['influxdb', 'prometheus', 'both'], default=None,
        help='Output destination: influxdb (default), prometheus (metrics server), or both.')
    parser.add_argument('--prometheusPort', type=int, default=None,
        help='Port for Prometheus metrics server (default: 8000).')
    parser.add_argument('--toJson', type=str, default=None,
        help='Directory to write collected measurements to as JSON files instead of a database.')
    parser.add_argument('--doNotPost', action='store_true', default=False,
        help='Collect and log, but do not write measurements anywhere.')
    return parser


def configure_logging(loglevel: str, logfile: Optional[str] = None) -> None:
    log_level = getattr(logging, loglevel.upper())

    if logfile:
        logfile_dir = os.path.dirname(logfile) if os.path.dirname(logfile) else '.'
        if os.path.exists(logfile_dir) and os.access(logfile_dir, os.W_OK):
            logging.basicConfig(filename=logfile, level=log_level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
            logging.info('Logging to file: ' + logfile)
        else:
            logging.basicConfig(level=log_level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)
            logging.error(f'Logfile directory {logfile_dir} does not exist or is not writable')
            logging.warning('Falling back to console logging only')
    else:
        logging.basicConfig(level=log_level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)

    # Never allow requests/urllib3 to log below INFO level due to credential exposure in URLs
    requests_level = max(log_level, logging.INFO)
    logging.getLogger("requests").setLevel(level=requests_level)
    logging.getLogger("urllib3").setLevel(level=requests_level)
    logging.getLogger("influxdb_client_3").setLevel(level=log_level)


def resolve_clusters(api, ctx: PollContext, settings: Settings) -> List[ClusterDescriptor]:
    """Statically configured clusters, or every vSAN cluster the vCenter reports."""
    if settings.clusters:
        return list(settings.clusters)
    LOG = logging.getLogger(__name__)
    try:
        clusters = api.query_clusters(ctx)
    except VsanCollectorError as e:
        LOG.error(f"Failed to list clusters: {e}")
        return []
    LOG.info(f"Discovered {len(clusters)} clusters: {[c.cluster_name for c in clusters]}")
    return clusters


def run_cycle(api, dispatcher: Dispatcher, accumulator: MetricAccumulator, writer,
              settings: Settings, loop_iteration: int) -> bool:
    """
    Run one poll cycle and write its measurements.

    Returns:
        True when the writer accepted the measurements
    """
    LOG = logging.getLogger(__name__)
    ctx = PollContext(timeout=settings.poll_timeout or settings.interval_time)

    clusters = resolve_clusters(api, ctx, settings)
    result = dispatcher.collect_all(ctx, clusters)
    if result.skipped:
        LOG.info("vSAN collection skipped this cycle")

    measurements = accumulator.drain()
    # a cluster sub-query error reaches both the accumulator and the dispatch result
    errors = {id(e): e for e in accumulator.drain_errors() + result.errors}
    total = sum(len(records) for records in measurements.values())
    LOG.info(f"Iteration {loop_iteration}: {total} measurements from {result.clusters} clusters, "
             f"{len(errors)} errors")

    if not measurements:
        return True
    success = writer.write(measurements, loop_iteration)
    if success:
        LOG.info("Data successfully written to output destination")
    else:
        LOG.error("Failed to write data to output destination")
    return success


def main(argv=None):
    parser = build_parser()
    CMD = parser.parse_args(argv)

    configure_logging(CMD.loglevel, CMD.logfile)
    LOG = logging.getLogger(__name__)

    # Override with environment variables if they exist (for docker-compose support)
    if os.environ.get('MAX_ITERATIONS'):
        try:
            CMD.maxIterations = int(os.environ['MAX_ITERATIONS'])
            LOG.info(f"Override: Using MAX_ITERATIONS={CMD.maxIterations} from environment variable")
        except ValueError:
            LOG.warning(f"Invalid MAX_ITERATIONS environment variable: {os.environ['MAX_ITERATIONS']}")

    if CMD.maxIterations < 0:
        print("Error: --maxIterations must be a non-negative integer.", file=sys.stderr)
        sys.exit(1)
    elif CMD.maxIterations > 0:
        LOG.info(f"Will run for {CMD.maxIterations} iterations and then exit")

    try:
        settings = Settings(config_file=CMD.config)
        settings.apply_overrides(
            vcenter=CMD.vcenter,
            username=CMD.username,
            password=CMD.password,
            interval_time=CMD.intervalTime,
            influxdb_url=CMD.influxdbUrl,
            influxdb_database=CMD.influxdbDatabase,
            influxdb_token=CMD.influxdbToken,
            tls_ca=CMD.tlsCa,
            tls_validation=CMD.tlsValidation,
            threads=CMD.threads,
            output=CMD.output,
            prometheus_port=CMD.prometheusPort,
            to_json=CMD.toJson,
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)

    if settings.interval_time < MIN_INTERVAL_TIME:
        print(f"Error: --intervalTime must be at least {MIN_INTERVAL_TIME} seconds.", file=sys.stderr)
        sys.exit(1)
    if not settings.vcenter:
        print("Error: no vCenter configured (--vcenter, config file or VCENTER).", file=sys.stderr)
        sys.exit(1)
    LOG.debug(f"Effective settings: {settings.as_dict()}")

    password = settings.password
    if not password and sys.stdin.isatty():
        try:
            password = getpass.getpass(f"Enter password for vCenter user '{settings.username}': ")
        except KeyboardInterrupt:
            print("\nPassword input cancelled.")
            sys.exit(1)
        if not password:
            print("Error: Password cannot be empty.")
            sys.exit(1)

    api = VsanRestClient(settings.vcenter, settings.username, password,
                         tls_ca=settings.tls_ca, tls_validation=settings.tls_validation,
                         timeout=settings.request_timeout, pool_size=max(settings.threads, 1) * 2)
    accumulator = MetricAccumulator()
    watermarks = WatermarkStore()
    vcenter = vcenter_host(settings.vcenter)

    def collector_factory():
        return ClusterCollector(api, accumulator, watermarks, vcenter,
                                sampling_period=settings.sampling_period,
                                lookback_factor=settings.lookback_factor)

    dispatcher = Dispatcher(api, collector_factory,
                            metric_filter=MetricFilter(settings.vsan_metric_include, settings.vsan_metric_exclude),
                            max_workers=settings.threads)
    writer = WriterFactory.create_writer(settings, do_not_post=CMD.doNotPost)

    loop_iteration = 1
    try:
        while True:
            time_start = time.time()
            LOG.info(f"Starting collection iteration {loop_iteration}")
            run_cycle(api, dispatcher, accumulator, writer, settings, loop_iteration)

            elapsed = time.time() - time_start
            if elapsed >= settings.interval_time:
                LOG.warning(f"Collection took {elapsed:.2f}s but interval is {settings.interval_time}s - "
                            f"consider increasing --intervalTime or adding more --threads")
            else:
                LOG.info(f"Collection completed in {elapsed:.2f}s")

            if CMD.maxIterations > 0 and loop_iteration >= CMD.maxIterations:
                LOG.info(f"Completed final iteration ({CMD.maxIterations}). Exiting gracefully.")
                break

            if elapsed < settings.interval_time:
                LOG.info(f"Sleeping for {settings.interval_time - elapsed:.2f} seconds until next collection")
                time.sleep(settings.interval_time - elapsed)
            loop_iteration += 1
    except KeyboardInterrupt:
        LOG.info("Interrupted by user. Exiting gracefully.")
    finally:
        LOG.info("Closing writer and flushing remaining data...")
        writer.close(timeout_seconds=90)
        api.close()


if __name__ == "__main__":
    main()
