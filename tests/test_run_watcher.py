from __future__ import annotations

import threading
import time

import pytest

from nodescope.core.models import RunReport, RunState
from nodescope.errors import ControlReadError, FatalRunError
from nodescope.runs.control import FileControlSource
from nodescope.runs.handoff import RunHandoff
from nodescope.runs.loop import consume_runs
from nodescope.runs.watcher import RunWatcher


class _FakeSource:
    def __init__(self, *values) -> None:
        self.values = list(values)
        self.reads = 0
        self._lock = threading.Lock()

    def read(self) -> str:
        with self._lock:
            self.reads += 1
            value = self.values[0] if len(self.values) == 1 else self.values.pop(0)
        if isinstance(value, Exception):
            raise value
        return value


def _wait_until(predicate, timeout: float = 5.0) -> bool:
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


def test_poll_once_reports_only_changes() -> None:
    watcher = RunWatcher(_FakeSource("r1", "r1", " r2 ", "r2"), RunHandoff())

    assert watcher.poll_once() == "r1"
    assert watcher.poll_once() is None
    assert watcher.poll_once() == "r2"
    assert watcher.poll_once() is None
    assert watcher.last_observed == "r2"


def test_read_failure_is_skipped_and_keeps_last_value() -> None:
    watcher = RunWatcher(_FakeSource("r1", ControlReadError("api down"), "r1", "r2"), RunHandoff())

    assert watcher.poll_once() == "r1"
    assert watcher.poll_once() is None
    assert watcher.last_observed == "r1"
    assert watcher.poll_once() is None
    assert watcher.poll_once() == "r2"


def test_cleared_value_is_not_delivered_but_rearms() -> None:
    watcher = RunWatcher(_FakeSource("r1", "", "r1"), RunHandoff())

    assert watcher.poll_once() == "r1"
    assert watcher.poll_once() is None
    assert watcher.last_observed == ""
    # Setting the same id again after clearing counts as a change.
    assert watcher.poll_once() == "r1"


def test_watcher_stops_polling_until_trigger_is_taken() -> None:
    source = _FakeSource("r1")
    handoff = RunHandoff()
    watcher = RunWatcher(source, handoff, poll_interval_s=0.01)

    watcher.start()
    try:
        assert _wait_until(lambda: handoff.pending == "r1")
        time.sleep(0.1)
        # Blocked in offer(): no further reads while nobody consumes.
        assert source.reads == 1
        assert handoff.take(timeout=1) == "r1"
        assert _wait_until(lambda: source.reads > 1)
    finally:
        watcher.stop(timeout=2)


def test_stop_releases_blocked_watcher() -> None:
    handoff = RunHandoff()
    watcher = RunWatcher(_FakeSource("r1"), handoff, poll_interval_s=0.01)

    thread = watcher.start()
    assert _wait_until(lambda: handoff.pending == "r1")
    watcher.stop(timeout=5)

    assert not thread.is_alive()
    assert handoff.pending is None


def test_take_refuses_while_previous_run_in_flight() -> None:
    handoff = RunHandoff()
    offered = threading.Thread(target=handoff.offer, args=("r1",), daemon=True)
    offered.start()

    assert handoff.take(timeout=2) == "r1"
    assert handoff.busy
    with pytest.raises(RuntimeError):
        handoff.take(timeout=0)

    handoff.finish()
    assert not handoff.busy
    assert handoff.take(timeout=0.05) is None
    offered.join(timeout=2)


def test_runs_never_overlap_and_no_trigger_is_lost() -> None:
    handoff = RunHandoff()
    stop = threading.Event()
    spans: list = []

    class _SlowOrchestrator:
        def run_once(self, run_id: str) -> RunReport:
            start = time.monotonic()
            time.sleep(0.05)
            spans.append((run_id, start, time.monotonic()))
            return RunReport(run_id=run_id, state=RunState.COMPLETED)

    consumer = threading.Thread(
        target=consume_runs, args=(handoff, _SlowOrchestrator()), kwargs={"stop": stop, "take_timeout_s": 0.01}
    )
    consumer.start()
    try:
        for run_id in ("r1", "r2", "r3"):
            assert handoff.offer(run_id)
        assert _wait_until(lambda: len(spans) == 3)
    finally:
        stop.set()
        consumer.join(timeout=5)

    assert [s[0] for s in spans] == ["r1", "r2", "r3"]
    for (_, _, end), (_, start, _) in zip(spans, spans[1:]):
        assert start >= end


def test_watcher_triggers_run_serially_while_value_changes_mid_run() -> None:
    source = _FakeSource("r1")
    handoff = RunHandoff()
    watcher = RunWatcher(source, handoff, poll_interval_s=0.01)
    stop = threading.Event()
    spans: list = []

    class _SlowOrchestrator:
        def run_once(self, run_id: str) -> RunReport:
            start = time.monotonic()
            if run_id == "r1":
                # The control value changes twice while this run is still executing.
                source.values = ["r2"]
                time.sleep(0.1)
                source.values = ["r3"]
                time.sleep(0.1)
            else:
                time.sleep(0.05)
            spans.append((run_id, start, time.monotonic()))
            return RunReport(run_id=run_id, state=RunState.COMPLETED)

    consumer = threading.Thread(
        target=consume_runs, args=(handoff, _SlowOrchestrator()), kwargs={"stop": stop, "take_timeout_s": 0.01}
    )
    consumer.start()
    watcher.start()
    try:
        assert _wait_until(lambda: bool(spans) and spans[-1][0] == "r3")
    finally:
        watcher.stop(timeout=5)
        stop.set()
        consumer.join(timeout=5)

    run_ids = [s[0] for s in spans]
    assert run_ids[0] == "r1"
    assert run_ids[-1] == "r3"
    assert len(run_ids) == len(set(run_ids))
    for (_, _, end), (_, start, _) in zip(spans, spans[1:]):
        assert start >= end


def test_fatal_run_error_propagates_and_releases_handoff() -> None:
    handoff = RunHandoff()

    class _FatalOrchestrator:
        def run_once(self, run_id: str) -> RunReport:
            raise FatalRunError(run_id, "no credentials")

    offered = threading.Thread(target=handoff.offer, args=("r1",), daemon=True)
    offered.start()

    with pytest.raises(FatalRunError):
        consume_runs(handoff, _FatalOrchestrator(), take_timeout_s=1)

    assert not handoff.busy
    offered.join(timeout=2)


def test_file_control_source(tmp_path) -> None:
    path = tmp_path / "DIAGNOSTIC_RUN_ID"
    source = FileControlSource(str(path))

    assert source.read() == ""
    path.write_text("run-42\n", encoding="utf-8")
    assert source.read() == "run-42"


def test_file_control_source_wraps_os_errors(tmp_path) -> None:
    # A directory is not readable as a file.
    with pytest.raises(ControlReadError):
        FileControlSource(str(tmp_path)).read()


def test_configmap_control_source_wraps_api_errors(monkeypatch) -> None:
    import nodescope.providers.k8s_provider as k8s
    from nodescope.runs.control import ConfigMapControlSource

    def boom(namespace, name, key):
        raise RuntimeError("forbidden")

    monkeypatch.setattr(k8s, "read_config_map_value", boom)
    with pytest.raises(ControlReadError, match="forbidden"):
        ConfigMapControlSource("ns", "cm", "k").read()

    monkeypatch.setattr(k8s, "read_config_map_value", lambda namespace, name, key: None)
    assert ConfigMapControlSource("ns", "cm", "k").read() == ""
