import logging
from datetime import datetime
from typing import Callable, Dict, List, Optional

from vsan_collector.cache.entity_table import EntityTable, build_entity_table
from vsan_collector.cache.watermark_store import WatermarkStore, query_window, watermark_key
from vsan_collector.enrichment.tag_resolver import TagResolver, populate_cluster_tags
from vsan_collector.exceptions import CollectionCancelled, QueryError, VsanCollectorError
from vsan_collector.metrics_config import (
    DEFAULT_LOOKBACK_FACTOR, DEFAULT_SAMPLING_PERIOD, FREE_CAPACITY_FIELD, TOTAL_CAPACITY_FIELD,
    HEALTH_FIELD, HEALTH_STATUS_UNKNOWN, HEALTH_STATUS_VALUES,
    VSAN_CAPACITY_MEASUREMENT, VSAN_HEALTH_MEASUREMENT, VSAN_PERF_MEASUREMENT,
)
from vsan_collector.read.series_parser import SeriesParser, field_name
from vsan_collector.utils import utc_now


def health_status_value(status: Optional[str]) -> int:
    """Map an overall health status to its numeric field value."""
    return HEALTH_STATUS_VALUES.get(status, HEALTH_STATUS_UNKNOWN)


class ClusterCollector:
    """
    Collects capacity, health and performance data of one cluster per call.

    Sub-queries are independent: a failing entity table only costs the
    performance series their identity tags, and a failing capacity or health
    query is reported without stopping the others.
    """

    def __init__(self, api, accumulator, watermarks: WatermarkStore, vcenter: str,
                 resolver: Optional[TagResolver] = None, parser: Optional[SeriesParser] = None,
                 sampling_period: int = DEFAULT_SAMPLING_PERIOD,
                 lookback_factor: int = DEFAULT_LOOKBACK_FACTOR,
                 clock: Callable[[], datetime] = utc_now):
        self.api = api
        self.accumulator = accumulator
        self.watermarks = watermarks
        self.vcenter = vcenter
        self.resolver = resolver or TagResolver()
        self.parser = parser or SeriesParser()
        self.sampling_period = sampling_period
        self.lookback_factor = lookback_factor
        self.clock = clock
        self.logger = logging.getLogger(__name__)

    def collect(self, ctx, cluster, metric_kinds: List[str],
                table: Optional[EntityTable] = None) -> List[Exception]:
        """
        Run every sub-query for one cluster.

        Args:
            ctx: PollContext of the current cycle
            cluster: ClusterDescriptor to collect
            metric_kinds: Performance entity kinds to query (already filtered)
            table: Entity table to use; queried when None

        Returns:
            The wrapped errors also sent to the accumulator's error channel
        """
        errors: List[Exception] = []
        base_tags = populate_cluster_tags({}, cluster, self.vcenter)

        if table is None:
            try:
                table = build_entity_table(self.api, ctx, cluster)
            except VsanCollectorError as e:
                self.logger.error(f"Error while querying entity table of {cluster.cluster_name}: {e}. Skipping")
                table = EntityTable.empty()

        sub_queries = [
            ("While querying vsan disk usage", lambda: self.collect_capacity(ctx, cluster, base_tags)),
            ("While querying vsan health summary", lambda: self.collect_health(ctx, cluster, base_tags)),
        ]
        if metric_kinds:
            sub_queries.append(("While querying vsan performance data",
                                lambda: self.collect_performance(ctx, cluster, metric_kinds, table, base_tags)))

        for context, query in sub_queries:
            try:
                query()
            except VsanCollectorError as e:
                wrapped = QueryError(f"{context} of {cluster.cluster_name}: {e}", cluster=cluster)
                wrapped.__cause__ = e
                self.accumulator.add_error(wrapped)
                errors.append(wrapped)

        return errors

    def collect_capacity(self, ctx, cluster, base_tags: Dict[str, str]) -> None:
        usage = self.api.query_space_usage(ctx, cluster)
        fields = {
            FREE_CAPACITY_FIELD: usage.free_capacity_b,
            TOTAL_CAPACITY_FIELD: usage.total_capacity_b,
        }
        self.accumulator.add_fields(VSAN_CAPACITY_MEASUREMENT, fields, base_tags)

    def collect_health(self, ctx, cluster, base_tags: Dict[str, str]) -> None:
        summary = self.api.query_health_summary(ctx, cluster)
        value = health_status_value(summary.overall_health)
        if value == HEALTH_STATUS_UNKNOWN:
            self.logger.debug(f"Unknown overall health '{summary.overall_health}' for {cluster.cluster_name}")
        self.accumulator.add_fields(VSAN_HEALTH_MEASUREMENT, {HEALTH_FIELD: value}, base_tags)

    def collect_performance(self, ctx, cluster, metric_kinds: List[str],
                            table: EntityTable, base_tags: Dict[str, str]) -> Optional[datetime]:
        """
        Query every metric kind over the cluster's current window and emit one
        measurement per entity, metric and sample time.

        Points at or before the stored watermark were emitted by an earlier
        cycle and are skipped. The watermark moves to the latest sample seen
        only once all kinds are done. A cancelled cycle leaves it untouched so
        the window is re-queried next time.

        Returns:
            The stored watermark after the call, None if nothing was stored
        """
        key = watermark_key(cluster)
        prior = self.watermarks.get(key)
        start, end = query_window(self.watermarks, key, self.clock(),
                                  self.sampling_period, self.lookback_factor)
        self.logger.debug(f"Query vsan performance of {cluster.cluster_name} for {start} ~ {end}")

        latest: Optional[datetime] = None
        for metric_kind in metric_kinds:
            ctx.check()
            try:
                series_list = self.api.query_performance(ctx, cluster, metric_kind, start, end)
            except CollectionCancelled:
                raise
            except VsanCollectorError as e:
                self.logger.error(f"Error while querying {metric_kind} performance data of "
                                  f"{cluster.cluster_name}. Is vsan performance enabled? Error: {e}")
                continue

            for raw in series_list:
                parsed = self.parser.parse(raw)
                tags = self.resolver.resolve(parsed.entity_kind, parsed.instance_key, table, base_tags)
                for point in parsed.points:
                    # already delivered by an earlier cycle
                    if prior is not None and point.timestamp <= prior:
                        continue
                    fields = {field_name(parsed.entity_kind, point.metric_label): point.value}
                    self.accumulator.add_fields(VSAN_PERF_MEASUREMENT, fields, tags, point.timestamp)
                if parsed.latest is not None and (latest is None or parsed.latest > latest):
                    latest = parsed.latest
                self.logger.debug(f"Fetched {len(parsed.points)} points for {raw.entity_ref_id}")

        ctx.check()
        if latest is None:
            self.logger.debug(f"No performance samples for {cluster.cluster_name}, watermark unchanged")
            return self.watermarks.get(key)
        return self.watermarks.advance(key, latest)
