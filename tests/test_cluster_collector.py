"""Tests for the per-cluster collector."""

from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Dict, List

import pytest

from tests.fakes import CAPACITY_DISK_UUID, HOST_UUID, NOW, FakeVsanApi, raw_series
from vsan_collector.accumulator import MetricAccumulator
from vsan_collector.cache.watermark_store import WatermarkStore
from vsan_collector.collectors.cluster_collector import ClusterCollector, health_status_value
from vsan_collector.context import PollContext
from vsan_collector.exceptions import CollectionCancelled, QueryError, TransportError
from vsan_collector.metrics_config import (
    VSAN_CAPACITY_MEASUREMENT, VSAN_HEALTH_MEASUREMENT, VSAN_PERF_MEASUREMENT,
)
from vsan_collector.schema.records import ClusterDescriptor

T0 = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
T1 = datetime(2024, 1, 1, 0, 5, 0, tzinfo=timezone.utc)
SAMPLES = "2024-01-01 00:00:00,2024-01-01 00:05:00"

CLUSTER_TAGS = {
    "vcenter": "vcenter.lab.local",
    "dcname": "dc-east",
    "clustername": "vsan-prod",
    "moid": "domain-c8",
    "source": "vsan-prod",
}


def performance_data() -> Dict[str, List]:
    return {
        "capacity-disk": [raw_series(f"capacity-disk:{CAPACITY_DISK_UUID}", SAMPLES, {"iopsRead": "10,20"})],
        "host-domclient": [raw_series(f"host-domclient:{HOST_UUID}", SAMPLES, {"latencyAvg": "1.5,2.5"})],
    }


def make_collector(api: FakeVsanApi, accumulator: MetricAccumulator,
                   watermarks: WatermarkStore) -> ClusterCollector:
    return ClusterCollector(api, accumulator, watermarks, "vcenter.lab.local",
                            sampling_period=300, lookback_factor=3, clock=lambda: NOW)


class TestCapacityAndHealth:
    """Tests for capacity and health measurements."""

    def test_capacity_and_health_emitted(self, ctx: PollContext, cluster: ClusterDescriptor,
                                         accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        api = FakeVsanApi(free_capacity=400, total_capacity=1000, health="yellow")

        errors = make_collector(api, accumulator, watermarks).collect(ctx, cluster, [])

        drained = accumulator.drain()
        assert errors == []
        capacity = drained[VSAN_CAPACITY_MEASUREMENT][0]
        assert capacity.fields == {"FreeCapacityB": 400, "TotalCapacityB": 1000}
        assert capacity.tags == CLUSTER_TAGS
        assert capacity.timestamp is None
        health = drained[VSAN_HEALTH_MEASUREMENT][0]
        assert health.fields == {"OverallHealth": 1}
        assert health.tags == CLUSTER_TAGS

    @pytest.mark.parametrize("status,expected", [
        ("red", 2), ("yellow", 1), ("green", 0), ("purple", -1), (None, -1),
    ])
    def test_health_mapping(self, status, expected: int) -> None:
        assert health_status_value(status) == expected

    def test_capacity_failure_reported(self, ctx: PollContext, cluster: ClusterDescriptor,
                                       accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        api = FakeVsanApi(failures={"query_space_usage": TransportError("connection reset")})

        errors = make_collector(api, accumulator, watermarks).collect(ctx, cluster, [])

        assert len(errors) == 1
        assert isinstance(errors[0], QueryError)
        assert "While querying vsan disk usage" in str(errors[0])
        assert isinstance(errors[0].__cause__, TransportError)
        assert accumulator.drain_errors() == errors
        assert VSAN_HEALTH_MEASUREMENT in accumulator.drain()

    def test_zero_hosts_still_collects(self, ctx: PollContext, cluster: ClusterDescriptor,
                                       accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        api = FakeVsanApi(hosts=[], metric_kinds=["capacity-disk", "cluster-domclient"], performance={
            "capacity-disk": [raw_series(f"capacity-disk:{CAPACITY_DISK_UUID}", SAMPLES, {"iopsRead": "1,2"})],
            "cluster-domclient": [raw_series("cluster-domclient:52c4", SAMPLES, {"iops": "3,4"})],
        })

        errors = make_collector(api, accumulator, watermarks).collect(
            ctx, cluster, ["capacity-disk", "cluster-domclient"])

        drained = accumulator.drain()
        assert errors == []
        assert VSAN_CAPACITY_MEASUREMENT in drained
        assert VSAN_HEALTH_MEASUREMENT in drained
        perf = drained[VSAN_PERF_MEASUREMENT]
        disk_tags = [m.tags for m in perf if "capacity-disk_iopsRead" in m.fields]
        cluster_tags = [m.tags for m in perf if "cluster-domclient_iops" in m.fields]
        assert disk_tags and all(tags == dict(CLUSTER_TAGS, uuid=CAPACITY_DISK_UUID) for tags in disk_tags)
        assert cluster_tags and all(tags == dict(CLUSTER_TAGS, uuid="52c4") for tags in cluster_tags)

    def test_zero_hosts_keeps_disks_apart(self, ctx: PollContext, cluster: ClusterDescriptor,
                                          accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        api = FakeVsanApi(hosts=[], performance={"capacity-disk": [
            raw_series("capacity-disk:disk-A", "2024-01-01 00:05:00", {"iopsRead": "1"}),
            raw_series("capacity-disk:disk-B", "2024-01-01 00:05:00", {"iopsRead": "2"}),
        ]})

        make_collector(api, accumulator, watermarks).collect(ctx, cluster, ["capacity-disk"])

        perf = accumulator.drain()[VSAN_PERF_MEASUREMENT]
        assert [m.tags.get("uuid") for m in perf] == ["disk-A", "disk-B"]

    def test_entity_table_failure_is_not_fatal(self, ctx: PollContext, cluster: ClusterDescriptor,
                                               accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        api = FakeVsanApi(failures={"query_cluster_hosts": TransportError("timeout")})

        errors = make_collector(api, accumulator, watermarks).collect(ctx, cluster, [])

        assert errors == []
        drained = accumulator.drain()
        assert VSAN_CAPACITY_MEASUREMENT in drained
        assert VSAN_HEALTH_MEASUREMENT in drained


class TestPerformance:
    """Tests for performance collection and watermarks."""

    @pytest.fixture
    def api(self) -> FakeVsanApi:
        return FakeVsanApi(metric_kinds=["capacity-disk", "host-domclient"], performance=performance_data())

    def test_points_emitted_with_tags(self, api: FakeVsanApi, ctx: PollContext, cluster: ClusterDescriptor,
                                      accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        make_collector(api, accumulator, watermarks).collect(ctx, cluster, ["capacity-disk", "host-domclient"])

        perf = accumulator.drain()[VSAN_PERF_MEASUREMENT]
        disk = [m for m in perf if "capacity-disk_iopsRead" in m.fields]
        assert [(m.timestamp, m.fields["capacity-disk_iopsRead"]) for m in disk] == [(T0, 10.0), (T1, 20.0)]
        assert disk[0].tags["deviceName"] == "naa.5000c500a1b2c3d4"
        assert disk[0].tags["hostname"] == "esx01.lab.local"
        assert disk[0].tags["clustername"] == "vsan-prod"
        host = [m for m in perf if "host-domclient_latencyAvg" in m.fields]
        assert [m.fields["host-domclient_latencyAvg"] for m in host] == [1.5, 2.5]
        assert host[0].tags["hostname"] == "esx01.lab.local"

    def test_first_poll_window(self, api: FakeVsanApi, ctx: PollContext, cluster: ClusterDescriptor,
                               accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        make_collector(api, accumulator, watermarks).collect(ctx, cluster, ["capacity-disk"])

        perf_calls = [call for call in api.calls if call[0] == "query_performance"]
        assert perf_calls == [("query_performance", "domain-c8", "capacity-disk", NOW - timedelta(minutes=15), NOW)]

    def test_watermark_advanced_to_latest(self, api: FakeVsanApi, ctx: PollContext, cluster: ClusterDescriptor,
                                          accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        make_collector(api, accumulator, watermarks).collect(ctx, cluster, ["capacity-disk", "host-domclient"])

        assert watermarks.get("vsan-perf:domain-c8") == T1

    def test_second_poll_starts_at_watermark(self, api: FakeVsanApi, ctx: PollContext,
                                             cluster: ClusterDescriptor, accumulator: MetricAccumulator,
                                             watermarks: WatermarkStore) -> None:
        collector = make_collector(api, accumulator, watermarks)
        collector.collect(ctx, cluster, ["capacity-disk"])
        collector.collect(ctx, cluster, ["capacity-disk"])

        starts = [call[3] for call in api.calls if call[0] == "query_performance"]
        assert starts[1] == T1

    def test_second_poll_skips_delivered_points(self, api: FakeVsanApi, ctx: PollContext,
                                                cluster: ClusterDescriptor, accumulator: MetricAccumulator,
                                                watermarks: WatermarkStore) -> None:
        collector = make_collector(api, accumulator, watermarks)
        collector.collect(ctx, cluster, ["capacity-disk"])
        first = accumulator.drain()[VSAN_PERF_MEASUREMENT]
        assert [m.timestamp for m in first] == [T0, T1]

        later = T1 + timedelta(minutes=5)
        api.performance["capacity-disk"].append(raw_series(
            f"capacity-disk:{CAPACITY_DISK_UUID}", "2024-01-01 00:05:00,2024-01-01 00:10:00",
            {"iopsRead": "20,30"}))
        collector.collect(ctx, cluster, ["capacity-disk"])

        second = accumulator.drain()[VSAN_PERF_MEASUREMENT]
        assert [(m.timestamp, m.fields["capacity-disk_iopsRead"]) for m in second] == [(later, 30.0)]
        assert watermarks.get("vsan-perf:domain-c8") == later

    def test_watermark_never_regresses(self, api: FakeVsanApi, ctx: PollContext, cluster: ClusterDescriptor,
                                       accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        later = T1 + timedelta(hours=1)
        watermarks.put("vsan-perf:domain-c8", later)

        make_collector(api, accumulator, watermarks).collect(ctx, cluster, ["capacity-disk"])

        assert watermarks.get("vsan-perf:domain-c8") == later

    def test_no_samples_keeps_watermark(self, ctx: PollContext, cluster: ClusterDescriptor,
                                        accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        api = FakeVsanApi(performance={"capacity-disk": [
            raw_series(f"capacity-disk:{CAPACITY_DISK_UUID}", "bad-token", {"iopsRead": "1"}),
        ]})

        make_collector(api, accumulator, watermarks).collect(ctx, cluster, ["capacity-disk"])

        assert watermarks.get("vsan-perf:domain-c8") is None
        assert VSAN_PERF_MEASUREMENT not in accumulator.drain()

    def test_failing_kind_does_not_stop_others(self, ctx: PollContext, cluster: ClusterDescriptor,
                                               accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        api = FakeVsanApi(performance=performance_data(),
                          failures={"query_performance:capacity-disk": TransportError("perf service disabled")})

        errors = make_collector(api, accumulator, watermarks).collect(
            ctx, cluster, ["capacity-disk", "host-domclient"])

        assert errors == []
        perf = accumulator.drain()[VSAN_PERF_MEASUREMENT]
        assert all("host-domclient_latencyAvg" in m.fields for m in perf)
        assert len(perf) == 2
        assert watermarks.get("vsan-perf:domain-c8") == T1

    def test_cancelled_cycle_leaves_watermark(self, api: FakeVsanApi, cluster: ClusterDescriptor,
                                              accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        ctx = PollContext()
        ctx.cancel()

        errors = make_collector(api, accumulator, watermarks).collect(ctx, cluster, ["capacity-disk"])

        assert watermarks.get("vsan-perf:domain-c8") is None
        assert errors
        assert all(isinstance(e.__cause__, CollectionCancelled) for e in errors)

    def test_watermarks_are_per_cluster(self, api: FakeVsanApi, ctx: PollContext, cluster: ClusterDescriptor,
                                        accumulator: MetricAccumulator, watermarks: WatermarkStore) -> None:
        other = ClusterDescriptor(cluster_id="domain-c9", cluster_name="vsan-dr", datacenter_name="dc-west")

        make_collector(api, accumulator, watermarks).collect(ctx, cluster, ["capacity-disk"])

        assert watermarks.get("vsan-perf:domain-c8") == T1
        assert watermarks.get(f"vsan-perf:{other.cluster_id}") is None

    def test_no_metric_kinds_skips_performance(self, api: FakeVsanApi, ctx: PollContext,
                                               cluster: ClusterDescriptor, accumulator: MetricAccumulator,
                                               watermarks: WatermarkStore) -> None:
        make_collector(api, accumulator, watermarks).collect(ctx, cluster, [])

        assert "query_performance" not in api.call_names()
