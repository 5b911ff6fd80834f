"""Tests for the output writers."""

from __future__ import annotations

import json
import time
from datetime import datetime, timezone
from pathlib import Path
from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest
from prometheus_client import CollectorRegistry

from vsan_collector.metrics_config import (
    VSAN_CAPACITY_MEASUREMENT, VSAN_HEALTH_MEASUREMENT, VSAN_PERF_MEASUREMENT,
)
from vsan_collector.schema.records import Measurement
from vsan_collector.writer import influxdb_writer, prometheus_writer
from vsan_collector.writer.factory import StubWriter, WriterFactory
from vsan_collector.writer.influxdb_writer import InfluxDBWriter
from vsan_collector.writer.json_writer import JsonWriter
from vsan_collector.writer.multi_writer import MultiWriter
from vsan_collector.writer.prometheus_writer import PrometheusWriter, metric_name

T0 = datetime(2024, 1, 1, 0, 0, 0, tzinfo=timezone.utc)
T1 = datetime(2024, 1, 1, 0, 5, 0, tzinfo=timezone.utc)

TAGS = {
    "vcenter": "vcenter.lab.local",
    "dcname": "dc-east",
    "clustername": "vsan-prod",
    "moid": "domain-c8",
    "source": "vsan-prod",
}


def cycle_measurements():
    perf_tags = dict(TAGS, deviceName="naa.5000c500a1b2c3d4", hostname="esx01.lab.local")
    return {
        VSAN_CAPACITY_MEASUREMENT: [
            Measurement(VSAN_CAPACITY_MEASUREMENT, {"FreeCapacityB": 400, "TotalCapacityB": 1000}, TAGS),
        ],
        VSAN_HEALTH_MEASUREMENT: [
            Measurement(VSAN_HEALTH_MEASUREMENT, {"OverallHealth": 0}, TAGS),
        ],
        VSAN_PERF_MEASUREMENT: [
            Measurement(VSAN_PERF_MEASUREMENT, {"capacity-disk_iopsRead": 20.0}, perf_tags, T1),
            Measurement(VSAN_PERF_MEASUREMENT, {"capacity-disk_iopsRead": 10.0}, perf_tags, T0),
        ],
    }


def make_settings(**overrides) -> SimpleNamespace:
    values = dict(influxdb_url=None, influxdb_database="vsan", influxdb_token=None,
                  tls_ca=None, tls_validation="strict", output="influxdb",
                  prometheus_port=8000, to_json=None)
    values.update(overrides)
    return SimpleNamespace(**values)


class TestJsonWriter:
    """Tests for JsonWriter."""

    def test_one_file_per_measurement(self, tmp_path: Path) -> None:
        writer = JsonWriter(str(tmp_path))

        assert writer.write(cycle_measurements(), loop_iteration=3)

        files = sorted(p.name for p in tmp_path.iterdir())
        assert len(files) == 3
        assert all(name.endswith("_0003.json") for name in files)

    def test_record_contents(self, tmp_path: Path) -> None:
        writer = JsonWriter(str(tmp_path))
        writer.write(cycle_measurements())

        perf_file = next(tmp_path.glob(f"{VSAN_PERF_MEASUREMENT}_*.json"))
        records = json.loads(perf_file.read_text())

        assert records[0]["fields"] == {"capacity-disk_iopsRead": 20.0}
        assert records[0]["tags"]["deviceName"] == "naa.5000c500a1b2c3d4"
        assert records[0]["time"] == T1.isoformat()

    def test_untimed_record(self) -> None:
        record = JsonWriter.to_record(Measurement(VSAN_HEALTH_MEASUREMENT, {"OverallHealth": 2}, TAGS))

        assert record["time"] is None


class TestPrometheusWriter:
    """Tests for PrometheusWriter."""

    @pytest.fixture
    def registry(self) -> CollectorRegistry:
        return CollectorRegistry()

    @pytest.fixture
    def server(self, monkeypatch: pytest.MonkeyPatch) -> MagicMock:
        started = MagicMock()
        monkeypatch.setattr(prometheus_writer, "start_http_server", started)
        return started

    def test_metric_name(self) -> None:
        assert metric_name(VSAN_PERF_MEASUREMENT, "capacity-disk_iopsRead") == \
            "vsphere_cluster_vsan_performance_capacity_disk_iopsRead"

    def test_latest_sample_wins(self, registry: CollectorRegistry, server: MagicMock) -> None:
        writer = PrometheusWriter(port=9999, registry=registry)

        assert writer.write(cycle_measurements())

        server.assert_called_once_with(9999, registry=registry)
        labels = dict(TAGS, deviceName="naa.5000c500a1b2c3d4", ssdUuid="", hostname="esx01.lab.local",
                      stackName="", vnic="", pnic="", worldName="", uuid="")
        value = registry.get_sample_value("vsphere_cluster_vsan_performance_capacity_disk_iopsRead", labels)
        assert value == pytest.approx(20.0)

    def test_untimed_gauges(self, registry: CollectorRegistry, server: MagicMock) -> None:
        writer = PrometheusWriter(registry=registry)
        writer.write(cycle_measurements())

        assert registry.get_sample_value("vsphere_cluster_vsan_capacity_FreeCapacityB", TAGS) == 400
        assert registry.get_sample_value("vsphere_cluster_vsan_health_OverallHealth", TAGS) == 0

    def test_server_started_once(self, registry: CollectorRegistry, server: MagicMock) -> None:
        writer = PrometheusWriter(registry=registry)

        writer.write(cycle_measurements())
        writer.write(cycle_measurements())

        assert server.call_count == 1

    def test_server_failure(self, registry: CollectorRegistry, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(prometheus_writer, "start_http_server",
                            MagicMock(side_effect=OSError("address in use")))

        assert not PrometheusWriter(registry=registry).write(cycle_measurements())


class TestInfluxDBWriter:
    """Tests for InfluxDBWriter with the client mocked out."""

    @pytest.fixture
    def client(self, monkeypatch: pytest.MonkeyPatch) -> MagicMock:
        client = MagicMock()
        monkeypatch.setattr(influxdb_writer, "InfluxDBClient3", MagicMock(return_value=client))
        return client

    @pytest.fixture
    def writer(self, client: MagicMock) -> InfluxDBWriter:
        return InfluxDBWriter({
            "influxdb_url": "https://influx.lab.local:8181",
            "influxdb_token": "token",
            "influxdb_database": "vsan",
            "create_database": False,
        })

    def written_lines(self, client: MagicMock):
        return [call.kwargs["record"].to_line_protocol() for call in client.write.call_args_list]

    def test_points_written(self, writer: InfluxDBWriter, client: MagicMock) -> None:
        assert writer.write(cycle_measurements())

        lines = self.written_lines(client)
        assert len(lines) == 4
        perf = [line for line in lines if line.startswith(VSAN_PERF_MEASUREMENT)]
        assert len(perf) == 2
        assert any(line.endswith(f" {int(T1.timestamp())}") for line in perf)
        assert all("clustername=vsan-prod" in line for line in lines)

    def test_untimed_points_use_write_time(self, writer: InfluxDBWriter, client: MagicMock) -> None:
        before = int(time.time())
        writer.write({VSAN_HEALTH_MEASUREMENT: cycle_measurements()[VSAN_HEALTH_MEASUREMENT]})
        after = int(time.time())

        line = self.written_lines(client)[0]
        stamp = int(line.rsplit(" ", 1)[1])
        assert before <= stamp <= after

    def test_write_failure_reported(self, writer: InfluxDBWriter, client: MagicMock) -> None:
        client.write.side_effect = OSError("connection refused")

        assert not writer.write(cycle_measurements())

    def test_close(self, writer: InfluxDBWriter, client: MagicMock) -> None:
        writer.close(timeout_seconds=5)

        client.close.assert_called_once()
        assert writer.client is None


class TestMultiWriter:
    """Tests for MultiWriter fan-out."""

    def test_all_writers_called(self) -> None:
        first, second = MagicMock(), MagicMock()
        first.write.return_value = False
        second.write.return_value = True

        result = MultiWriter([first, second]).write(cycle_measurements(), loop_iteration=2)

        assert result is False
        second.write.assert_called_once()

    def test_close_all(self) -> None:
        first, second = MagicMock(), MagicMock()

        MultiWriter([first, second]).close(timeout_seconds=1)

        first.close.assert_called_once_with(timeout_seconds=1)
        second.close.assert_called_once_with(timeout_seconds=1)


class TestWriterFactory:
    """Tests for WriterFactory.create_writer."""

    def test_do_not_post(self) -> None:
        assert isinstance(WriterFactory.create_writer(make_settings(), do_not_post=True), StubWriter)

    def test_json(self, tmp_path: Path) -> None:
        writer = WriterFactory.create_writer(make_settings(), to_json=str(tmp_path))

        assert isinstance(writer, JsonWriter)

    def test_missing_influxdb_settings(self) -> None:
        assert isinstance(WriterFactory.create_writer(make_settings()), StubWriter)

    def test_prometheus(self) -> None:
        writer = WriterFactory.create_writer(make_settings(output="prometheus", prometheus_port=9100))

        assert isinstance(writer, PrometheusWriter)
        assert writer.port == 9100

    def test_both(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setattr(influxdb_writer, "InfluxDBClient3", MagicMock())
        monkeypatch.setattr(InfluxDBWriter, "_ensure_database_exists", lambda self: None)
        settings = make_settings(output="both", influxdb_url="https://influx:8181", influxdb_token="t")

        writer = WriterFactory.create_writer(settings)

        assert isinstance(writer, MultiWriter)
        assert [type(w) for w in writer.writers] == [InfluxDBWriter, PrometheusWriter]
