"""
Per-cycle dispatch of cluster collection tasks.
"""

import concurrent.futures
import logging
from dataclasses import dataclass, field
from typing import Callable, List, Optional, Tuple

from vsan_collector.exceptions import VsanCollectorError
from vsan_collector.filters import MetricFilter
from vsan_collector.metrics_config import MIN_VSAN_API_VERSION

LOG = logging.getLogger(__name__)


def parse_version(version: str) -> Tuple[int, int]:
    """
    Return (major, minor) of a dotted version string.

    Components that are missing or not numeric count as 0.
    """
    parts = version.strip().split('.') if version else []
    numbers = []
    for part in parts[:2]:
        try:
            numbers.append(int(part))
        except ValueError:
            LOG.warning(f"Unparsable API version component '{part}' in '{version}', treating it as 0")
            numbers.append(0)
    while len(numbers) < 2:
        numbers.append(0)
    return numbers[0], numbers[1]


def version_supported(version: str) -> bool:
    """True when the API version is at least the first one exposing vSAN (5.5)."""
    return parse_version(version) >= MIN_VSAN_API_VERSION


@dataclass
class DispatchResult:
    """Outcome of one collect_all call"""
    skipped: bool = False
    clusters: int = 0
    errors: List[Exception] = field(default_factory=list)


class Dispatcher:
    """
    Runs one collection task per cluster on a thread pool.

    The supported metric kinds are fetched once per cycle and shared by all
    cluster tasks. collect_all returns only when every task has finished.
    """

    def __init__(self, api, collector_factory: Callable[[], object],
                 metric_filter: Optional[MetricFilter] = None, max_workers: int = 4):
        self.api = api
        self.collector_factory = collector_factory
        self.metric_filter = metric_filter or MetricFilter()
        self.max_workers = max_workers

    def fetch_metric_kinds(self, ctx) -> List[str]:
        """Supported performance entity kinds that pass the metric filter."""
        try:
            supported = self.api.query_supported_metric_kinds(ctx)
        except VsanCollectorError as e:
            LOG.error(f"Fail to get supported entities: {e}. Skipping vsan performance data.")
            return []
        kinds = self.metric_filter.apply(supported)
        LOG.debug(f"vSAN metric kinds: {kinds}")
        return kinds

    def collect_all(self, ctx, clusters) -> DispatchResult:
        """
        Collect every cluster for this cycle.

        Args:
            ctx: PollContext governing the whole cycle
            clusters: ClusterDescriptors to collect

        Returns:
            DispatchResult; per-cluster failures are recorded, never raised
        """
        result = DispatchResult()
        try:
            version = self.api.query_api_version(ctx)
        except VsanCollectorError as e:
            LOG.error(f"Failed to query API version: {e}. Skipping vsan collection")
            result.skipped = True
            result.errors.append(e)
            return result

        if not version_supported(version):
            LOG.info(f"Minimum API version for vSAN is {MIN_VSAN_API_VERSION[0]}.{MIN_VSAN_API_VERSION[1]}, "
                     f"found {version}. Skipping vsan collection")
            result.skipped = True
            return result

        metric_kinds = self.fetch_metric_kinds(ctx)
        clusters = list(clusters)
        result.clusters = len(clusters)
        if not clusters:
            LOG.info("No vSAN clusters to collect")
            return result

        workers = max(1, min(self.max_workers, len(clusters)))
        with concurrent.futures.ThreadPoolExecutor(max_workers=workers) as executor:
            futures = {
                executor.submit(self._collect_cluster, ctx, cluster, metric_kinds): cluster
                for cluster in clusters
            }
            for future in concurrent.futures.as_completed(futures):
                cluster = futures[future]
                try:
                    errors = future.result()
                except Exception as e:
                    LOG.error(f"Collection of cluster {cluster.cluster_name} failed: {e}", exc_info=True)
                    result.errors.append(e)
                    continue
                if errors:
                    LOG.warning(f"Cluster {cluster.cluster_name} collected with {len(errors)} errors")
                    result.errors.extend(errors)
                else:
                    LOG.debug(f"Cluster {cluster.cluster_name} collected")

        return result

    def _collect_cluster(self, ctx, cluster, metric_kinds: List[str]) -> List[Exception]:
        collector = self.collector_factory()
        return collector.collect(ctx, cluster, metric_kinds)
