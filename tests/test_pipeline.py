"""End-to-end tests for discovery, fan-out, merge and drain."""

from __future__ import annotations

import os
import threading

import pytest

from fakes import FakeArchive, FakeArchiveInfo, FakeResponse, FakeSession, fake_opener
from whisper_migrator.config.schema import MigratorConfig
from whisper_migrator.errors import ExtractionError, NoMatch
from whisper_migrator.pipeline import Migrator, discover_files
from whisper_migrator.sinks import BatcherError, InfluxBatchSink, WriteError


def build_config(**influx_overrides) -> MigratorConfig:
    influx = {
        "addresses": ["http://influx.example:8086"],
        "database": "graphite",
        "batch_size": 3,
        "write_concurrency": 2,
        "retry": {"base_delay": "0s", "max_attempts": 2},
    }
    influx.update(influx_overrides)
    return MigratorConfig.from_mapping(
        {
            "migration": {"max_concurrent_files": 2, "queue_size": 4, "merge_queue_size": 4},
            "rules": [
                {
                    "pattern": r"servers\.(?P<host>[^.]+)\.(?P<metric>\w+)$",
                    "measurement": "?metric",
                    "tags": [{"key": "host", "value": "?host"}],
                    "field": "value",
                }
            ],
            "influx": influx,
        }
    )


def touch_tree(root, names):
    for name in names:
        path = root / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(b"")


def build_sink(config, session) -> InfluxBatchSink:
    sink = InfluxBatchSink(config.influx, session=session)
    sink._sleep = lambda delay: None
    return sink


def test_discover_files_walks_recursively(tmp_path):
    touch_tree(tmp_path, ["a/b/cpu.wsp", "a/mem.wsp", "a/notes.txt", "c/d/e/disk.wsp"])

    found = discover_files(str(tmp_path))

    assert [os.path.relpath(p, tmp_path) for p in found] == ["a/mem.wsp", "a/b/cpu.wsp", "c/d/e/disk.wsp"]


def test_discover_missing_root_is_empty(tmp_path):
    assert discover_files(str(tmp_path / "nope")) == []


def test_discover_other_errors_are_fatal(tmp_path, monkeypatch):
    def broken_walk(root, onerror=None):
        onerror(PermissionError(13, "denied", root))
        return iter(())

    monkeypatch.setattr("whisper_migrator.pipeline.os.walk", broken_walk)

    with pytest.raises(PermissionError):
        discover_files(str(tmp_path))


def test_end_to_end_counts_every_non_sentinel_point(tmp_path):
    touch_tree(
        tmp_path,
        ["servers/web01/cpu.wsp", "servers/web02/cpu.wsp", "servers/web01/mem.wsp", "other/thing.wsp"],
    )
    layout = {
        "cpu.wsp": FakeArchive([]),
        "mem.wsp": OSError("unreadable"),
        "thing.wsp": FakeArchive([]),
    }

    def opener(path):
        if path.endswith("web01/cpu.wsp"):
            return FakeArchive(
                [
                    FakeArchiveInfo(3600, [(60, 1.0), (0, 0.0), (120, 2.0)]),
                    FakeArchiveInfo(86400, [(3600, 3.0), (0, 0.0)]),
                ]
            )
        if path.endswith("web02/cpu.wsp"):
            return FakeArchive([FakeArchiveInfo(3600, [(60 * i, float(i)) for i in range(1, 8)])])
        return fake_opener(layout)(path)

    config = build_config()
    session = FakeSession(default=FakeResponse(204))
    migrator = Migrator(config, sink=build_sink(config, session), opener=opener)

    summary = migrator.run(str(tmp_path))

    assert summary.files_discovered == 4
    assert summary.points_extracted == 3 + 7
    assert summary.points_written == 10
    assert summary.files_skipped == 1
    assert summary.files_failed == 1
    assert sorted(type(err).__name__ for err in summary.errors) == ["ExtractionError", "NoMatch"]
    written = [line for body in session.bodies() for line in body]
    assert len(written) == 10
    assert any(line.startswith("cpu,host=web02 value=7.0 420") for line in written)
    assert isinstance([e for e in summary.errors if isinstance(e, NoMatch)][0], NoMatch)
    assert [e for e in summary.errors if isinstance(e, ExtractionError)][0].path.endswith("mem.wsp")


def test_write_failures_are_collected_not_raised(tmp_path):
    touch_tree(tmp_path, ["servers/web01/cpu.wsp"])
    opener = fake_opener({"cpu.wsp": FakeArchive([FakeArchiveInfo(3600, [(60, 1.0), (120, 2.0)])])})
    config = build_config()
    session = FakeSession(default=FakeResponse(500, "boom"))
    migrator = Migrator(config, sink=build_sink(config, session), opener=opener)

    summary = migrator.run(str(tmp_path))

    assert summary.points_extracted == 2
    assert summary.points_written == 0
    assert summary.batches_failed == 1
    assert [type(err) for err in summary.errors] == [WriteError]
    assert len(session.calls) == 2


def test_file_extraction_concurrency_is_bounded(tmp_path):
    names = [f"servers/web{i:02d}/cpu.wsp" for i in range(8)]
    touch_tree(tmp_path, names)
    lock = threading.Lock()
    state = {"open": 0, "peak": 0}

    def on_close():
        with lock:
            state["open"] -= 1

    def opener(path):
        with lock:
            state["open"] += 1
            state["peak"] = max(state["peak"], state["open"])
        samples = [(60 * i, float(i)) for i in range(1, 50)]
        return FakeArchive([FakeArchiveInfo(3600, samples)], on_close=on_close)

    config = build_config()
    session = FakeSession(default=FakeResponse(204))
    summary = Migrator(config, sink=build_sink(config, session), opener=opener).run(str(tmp_path))

    assert summary.points_extracted == 8 * 49
    assert summary.points_written == 8 * 49
    assert 1 <= state["peak"] <= config.migration.max_concurrent_files


def test_disabled_sink_end_to_end(tmp_path):
    touch_tree(tmp_path, ["servers/web01/cpu.wsp"])
    opener = fake_opener({"cpu.wsp": FakeArchive([FakeArchiveInfo(3600, [(60 * i, 1.0) for i in range(1, 101)])])})
    config = build_config(enabled=False)
    session = FakeSession(default=FakeResponse(204))

    summary = Migrator(config, sink=build_sink(config, session), opener=opener).run(str(tmp_path))

    assert summary.points_extracted == 100
    assert summary.points_written == 0
    assert summary.batches_written == 0
    assert summary.errors == []
    assert session.calls == []


def test_missing_root_runs_empty(tmp_path):
    config = build_config()
    session = FakeSession(default=FakeResponse(204))

    summary = Migrator(config, sink=build_sink(config, session)).run(str(tmp_path / "absent"))

    assert summary.files_discovered == 0
    assert summary.points_extracted == 0
    assert session.calls == []


def test_batcher_failure_is_reported_and_the_run_completes(tmp_path):
    touch_tree(tmp_path, ["servers/web01/cpu.wsp"])
    samples = [(60 * (i + 1), float(i)) for i in range(20)]
    opener = fake_opener({"cpu.wsp": FakeArchive([FakeArchiveInfo(3600, samples)])})
    config = build_config()
    session = FakeSession(default=FakeResponse(204))
    sink = build_sink(config, session)
    route = sink._route
    routed = []

    def failing_route(batches, point):
        routed.append(point)
        if len(routed) == 5:
            raise RuntimeError("batch map corrupted")
        route(batches, point)

    sink._route = failing_route
    migrator = Migrator(config, sink=sink, opener=opener)

    summary = migrator.run(str(tmp_path))

    assert summary.points_extracted == 20
    assert summary.points_written == 3
    assert [type(err) for err in summary.errors] == [BatcherError]
    assert "batch map corrupted" in str(summary.errors[0])
