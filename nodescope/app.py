"""Process wiring: config -> units, exporters, orchestrator, watcher."""

from __future__ import annotations

import functools
import logging
import threading
from typing import Callable, List, Optional

from nodescope.config import AgentConfig
from nodescope.export.base import Exporter
from nodescope.orchestrator import Orchestrator, Prerequisite
from nodescope.providers.network_probe import ProbeSampler
from nodescope.runs.control import ConfigMapControlSource, ControlSource, FileControlSource
from nodescope.runs.handoff import RunHandoff
from nodescope.runs.loop import consume_runs
from nodescope.runs.watcher import RunWatcher
from nodescope.scheduler import TaskScheduler
from nodescope.units.base import DiagnosisUnit
from nodescope.units.kube_objects import KubeObjectsUnit
from nodescope.units.network_config import NetworkConfigUnit
from nodescope.units.network_outbound import NetworkOutboundUnit
from nodescope.units.node_logs import NodeLogsUnit

logger = logging.getLogger(__name__)


def _api_server_resolver(config: AgentConfig) -> Callable[[], str]:
    from nodescope.providers.k8s_provider import get_api_server_fqdn

    return functools.partial(get_api_server_fqdn, config.kubelet_kubeconfig_paths)


def build_units(config: AgentConfig) -> List[DiagnosisUnit]:
    """The fixed unit set for this process, in registration (collection) order."""
    resolver = _api_server_resolver(config)
    units: List[DiagnosisUnit] = [
        NetworkConfigUnit(resolv_conf_path=config.resolv_conf_path, api_server_resolver=resolver),
        NetworkOutboundUnit(
            config.probe_targets,
            sampler=ProbeSampler(timeout_s=config.probe_timeout_s),
            probe_interval_s=config.probe_interval_s,
            probe_count=config.probe_count,
            api_server_resolver=resolver,
            tunnel_port=config.tunnel_port,
        ),
        NodeLogsUnit(config.node_log_paths, max_bytes=config.node_log_max_bytes),
    ]
    if config.kube_objects:
        units.append(KubeObjectsUnit(config.kube_objects))
    return units


def build_exporters(config: AgentConfig) -> List[Exporter]:
    if config.s3_bucket:
        # Production destination
        from nodescope.export.s3_store import S3Exporter

        return [S3Exporter(bucket=config.s3_bucket, prefix=config.s3_prefix)]

    # Local filesystem (development)
    from nodescope.export.local_store import LocalExporter

    return [LocalExporter(base_dir=config.local_storage_dir)]


def build_prerequisites(config: AgentConfig, exporters: List[Exporter]) -> List[Prerequisite]:
    checks: List[Prerequisite] = []
    if config.require_cluster_credentials:
        from nodescope.providers.k8s_provider import ensure_cluster_credentials

        checks.append(ensure_cluster_credentials)
    for exporter in exporters:
        check = getattr(exporter, "check_access", None)
        if callable(check):
            checks.append(check)
    return checks


def build_orchestrator(config: AgentConfig) -> Orchestrator:
    exporters = build_exporters(config)
    return Orchestrator(
        build_units(config),
        exporters,
        scheduler=TaskScheduler(default_timeout_s=config.unit_timeout_s),
        prerequisites=build_prerequisites(config, exporters),
        archive_name=config.archive_name,
    )


def build_control_source(config: AgentConfig) -> ControlSource:
    if config.run_id_source == "configmap":
        return ConfigMapControlSource(
            namespace=config.run_id_configmap_namespace,
            name=config.run_id_configmap_name,
            key=config.run_id_key,
        )
    return FileControlSource(path=config.run_id_file)


def serve(
    config: AgentConfig,
    *,
    orchestrator: Optional[Orchestrator] = None,
    source: Optional[ControlSource] = None,
    stop: Optional[threading.Event] = None,
) -> None:
    """
    Watch the control value and run the orchestrator once per change, until `stop` is set.

    FatalRunError propagates (the caller exits non-zero; a supervisor restarts us).
    """
    orchestrator = orchestrator or build_orchestrator(config)
    handoff = RunHandoff()
    watcher = RunWatcher(source or build_control_source(config), handoff, poll_interval_s=config.poll_interval_s)
    stop = stop or threading.Event()

    logger.info(
        f"Serving on node {config.node_name} "
        f"({len(orchestrator.units)} unit(s): {', '.join(u.name for u in orchestrator.units)})"
    )
    watcher.start()
    try:
        consume_runs(handoff, orchestrator, stop=stop)
    finally:
        watcher.stop(timeout=1.0)
