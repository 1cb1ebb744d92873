import dataclasses
import threading
import time

import pytest

from nodescope.core.models import RunReport, RunState


def _config(monkeypatch, **env):
    from nodescope.config import load_agent_config

    defaults = {
        "NODE_NAME": "node-a",
        "DIAGNOSTIC_KUBEOBJECTS_LIST": "kube-system/pod",
        "REQUIRE_CLUSTER_CREDENTIALS": "true",
    }
    defaults.update(env)
    for name in ("S3_BUCKET", "S3_PREFIX", "RUN_ID_SOURCE", "UNIT_TIMEOUT_SECONDS"):
        monkeypatch.delenv(name, raising=False)
    for name, value in defaults.items():
        monkeypatch.setenv(name, value)
    load_agent_config.cache_clear()
    return load_agent_config()


def test_build_units_in_registration_order(monkeypatch) -> None:
    from nodescope.app import build_units

    units = build_units(_config(monkeypatch))

    assert [u.name for u in units] == ["networkconfig", "networkoutbound", "nodelogs", "kubeobjects"]


def test_kube_objects_unit_omitted_when_list_is_empty(monkeypatch) -> None:
    from nodescope.app import build_units

    cfg = _config(monkeypatch)
    cfg = dataclasses.replace(cfg, kube_objects=())

    assert "kubeobjects" not in [u.name for u in build_units(cfg)]


def test_build_exporters_defaults_to_local(monkeypatch, tmp_path) -> None:
    from nodescope.app import build_exporters
    from nodescope.export.local_store import LocalExporter

    (exporter,) = build_exporters(_config(monkeypatch, LOCAL_STORAGE_DIR=str(tmp_path)))

    assert isinstance(exporter, LocalExporter)
    assert exporter.base_dir == str(tmp_path)


def test_build_exporters_uses_s3_when_bucket_set(monkeypatch) -> None:
    import nodescope.export.s3_store as s3_store
    from nodescope.app import build_exporters

    fake_client = object()
    monkeypatch.setattr(s3_store, "_get_s3_client", lambda: fake_client)

    (exporter,) = build_exporters(_config(monkeypatch, S3_BUCKET="diag", S3_PREFIX="c1"))

    assert isinstance(exporter, s3_store.S3Exporter)
    assert exporter.bucket == "diag"
    assert exporter.prefix == "c1"
    assert exporter.client is fake_client


def test_build_orchestrator_wires_prerequisites(monkeypatch, tmp_path) -> None:
    import nodescope.providers.k8s_provider as k8s
    from nodescope.app import build_orchestrator

    orch = build_orchestrator(_config(monkeypatch, LOCAL_STORAGE_DIR=str(tmp_path)))

    assert orch.archive_name == "node-a.zip"
    assert orch.prerequisites == [k8s.ensure_cluster_credentials]
    assert orch.scheduler.default_timeout_s == 600.0


def test_build_control_source(monkeypatch) -> None:
    from nodescope.app import build_control_source
    from nodescope.runs.control import ConfigMapControlSource, FileControlSource

    assert isinstance(build_control_source(_config(monkeypatch)), FileControlSource)
    src = build_control_source(_config(monkeypatch, RUN_ID_SOURCE="configmap", RUN_ID_CONFIGMAP="diag/cfg"))
    assert isinstance(src, ConfigMapControlSource)
    assert (src.namespace, src.name) == ("diag", "cfg")


def test_serve_runs_once_per_control_change(monkeypatch) -> None:
    from nodescope.app import serve

    class _FakeSource:
        def __init__(self) -> None:
            self.value = "r1"

        def read(self) -> str:
            return self.value

    class _FakeOrchestrator:
        units: list = []

        def __init__(self) -> None:
            self.runs: list = []

        def run_once(self, run_id: str) -> RunReport:
            self.runs.append(run_id)
            return RunReport(run_id=run_id, state=RunState.COMPLETED)

    cfg = _config(monkeypatch, POLL_INTERVAL_SECONDS="0.1")
    source = _FakeSource()
    orch = _FakeOrchestrator()
    stop = threading.Event()

    server = threading.Thread(target=serve, args=(cfg,), kwargs={"orchestrator": orch, "source": source, "stop": stop})
    server.start()
    try:
        deadline = time.monotonic() + 5
        while orch.runs != ["r1"] and time.monotonic() < deadline:
            time.sleep(0.01)
        source.value = "r2"
        while orch.runs != ["r1", "r2"] and time.monotonic() < deadline:
            time.sleep(0.01)
    finally:
        stop.set()
        server.join(timeout=5)

    assert not server.is_alive()
    assert orch.runs == ["r1", "r2"]


def test_serve_propagates_fatal_run_error(monkeypatch) -> None:
    from nodescope.app import serve
    from nodescope.errors import FatalRunError

    class _FakeSource:
        def read(self) -> str:
            return "r1"

    class _FatalOrchestrator:
        units: list = []

        def run_once(self, run_id: str) -> RunReport:
            raise FatalRunError(run_id, "export unreachable")

    cfg = _config(monkeypatch, POLL_INTERVAL_SECONDS="0.1")

    with pytest.raises(FatalRunError, match="export unreachable"):
        serve(cfg, orchestrator=_FatalOrchestrator(), source=_FakeSource())
