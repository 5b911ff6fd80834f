"""Shared fixtures for vSAN collector tests."""

from __future__ import annotations

import pytest

from tests.fakes import entity_table_payload
from vsan_collector.accumulator import MetricAccumulator
from vsan_collector.cache.entity_table import EntityTable
from vsan_collector.cache.watermark_store import WatermarkStore
from vsan_collector.context import PollContext
from vsan_collector.schema.records import ClusterDescriptor


@pytest.fixture
def cluster() -> ClusterDescriptor:
    return ClusterDescriptor(cluster_id="domain-c8", cluster_name="vsan-prod", datacenter_name="dc-east")


@pytest.fixture
def ctx() -> PollContext:
    return PollContext()


@pytest.fixture
def table() -> EntityTable:
    return EntityTable.from_payload(entity_table_payload())


@pytest.fixture
def accumulator() -> MetricAccumulator:
    return MetricAccumulator()


@pytest.fixture
def watermarks() -> WatermarkStore:
    return WatermarkStore()
