from __future__ import annotations

import os
import socket
from dataclasses import dataclass
from functools import lru_cache
from typing import List, Optional, Tuple

from nodescope.core.models import ProbeTarget
from nodescope.errors import ConfigError

DEFAULT_PROBE_TARGETS = (
    "InternetConnectivity=google.com:80,"
    "APIServerConnectivity=kubernetes.default.svc.cluster.local:443,"
    "ACRConnectivity=azurecr.io:80,"
    "MCRConnectivity=mcr.microsoft.com:80"
)
DEFAULT_KUBELET_KUBECONFIG_PATHS = "/var/lib/kubelet/kubeconfig,/etc/kubernetes/kubelet.conf"
DEFAULT_KUBE_OBJECTS = "kube-system/pod kube-system/service kube-system/deployment"
DEFAULT_NODE_LOG_PATHS = "/var/log/messages,/var/log/syslog,/var/log/cloud-init.log"


@dataclass(frozen=True)
class KubeObjectRef:
    namespace: str
    kind: str
    name: Optional[str] = None

    def __str__(self) -> str:
        base = f"{self.namespace}/{self.kind}"
        return f"{base}/{self.name}" if self.name else base


@dataclass(frozen=True)
class AgentConfig:
    # Run trigger
    run_id_source: str
    run_id_file: str
    run_id_configmap_namespace: str
    run_id_configmap_name: str
    run_id_key: str
    poll_interval_s: float

    # Scheduling
    unit_timeout_s: Optional[float]  # None disables the per-unit deadline

    # Identity
    node_name: str

    # Network outbound probing
    probe_targets: Tuple[ProbeTarget, ...]
    probe_interval_s: float
    probe_count: int
    probe_timeout_s: float
    tunnel_port: int

    # Host paths
    kubelet_kubeconfig_paths: Tuple[str, ...]
    resolv_conf_path: str
    node_log_paths: Tuple[str, ...]
    node_log_max_bytes: int

    # Cluster objects
    kube_objects: Tuple[KubeObjectRef, ...]
    require_cluster_credentials: bool

    # Export
    s3_bucket: Optional[str]
    s3_prefix: str
    local_storage_dir: str

    @property
    def archive_name(self) -> str:
        return f"{self.node_name}.zip"


def _env_str(name: str, default: str = "") -> str:
    return (os.getenv(name, "") or "").strip() or default


def _env_int(name: str, default: int) -> int:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except Exception:
        return default


def _env_float(name: str, default: float) -> float:
    raw = (os.getenv(name) or "").strip()
    if not raw:
        return default
    try:
        return float(raw)
    except Exception:
        return default


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name) or "").strip().lower()
    if not raw:
        return default
    return raw in ("1", "true", "yes", "y", "on")


def _parse_csv(value: str) -> List[str]:
    items = [x.strip() for x in (value or "").split(",")]
    return [x for x in items if x]


def parse_probe_targets(value: str) -> Tuple[ProbeTarget, ...]:
    """Parse `Label=host:port,Label2=host:port` into probe targets."""
    out: List[ProbeTarget] = []
    seen = set()
    for item in _parse_csv(value):
        label, sep, endpoint = item.partition("=")
        label = label.strip()
        if not sep or not label:
            raise ConfigError(f"Invalid probe target {item!r} (expected Label=host:port)")
        if label in seen:
            raise ConfigError(f"Duplicate probe target label {label!r}")
        seen.add(label)
        try:
            out.append(ProbeTarget(label=label, endpoint=endpoint))
        except ValueError as e:
            raise ConfigError(f"Invalid probe target {item!r}: {e}") from e
    return tuple(out)


def parse_kube_objects(value: str) -> Tuple[KubeObjectRef, ...]:
    """Parse whitespace-separated `namespace/kind[/name]` entries."""
    out: List[KubeObjectRef] = []
    for item in (value or "").split():
        parts = item.split("/")
        if len(parts) not in (2, 3) or not all(parts):
            raise ConfigError(f"Invalid kube object {item!r} (expected namespace/kind[/name])")
        out.append(KubeObjectRef(namespace=parts[0], kind=parts[1].lower(), name=parts[2] if len(parts) == 3 else None))
    return tuple(out)


def _parse_namespaced_name(value: str, *, what: str) -> Tuple[str, str]:
    ns, sep, name = value.partition("/")
    if not sep or not ns or not name:
        raise ConfigError(f"Invalid {what} {value!r} (expected namespace/name)")
    return ns, name


@lru_cache(maxsize=1)
def load_agent_config() -> AgentConfig:
    """
    Load agent configuration from environment variables (once per process).

    Units and exporters receive this object through their constructors; nothing else in
    the package reads the environment.
    """
    source = _env_str("RUN_ID_SOURCE", "file").lower()
    if source not in ("file", "configmap"):
        raise ConfigError(f"RUN_ID_SOURCE must be 'file' or 'configmap', got {source!r}")
    cm_ns, cm_name = _parse_namespaced_name(
        _env_str("RUN_ID_CONFIGMAP", "nodescope/nodescope-config"), what="RUN_ID_CONFIGMAP"
    )

    timeout = _env_float("UNIT_TIMEOUT_SECONDS", 600.0)

    return AgentConfig(
        run_id_source=source,
        run_id_file=_env_str("RUN_ID_FILE", "/config/DIAGNOSTIC_RUN_ID"),
        run_id_configmap_namespace=cm_ns,
        run_id_configmap_name=cm_name,
        run_id_key=_env_str("RUN_ID_KEY", "DIAGNOSTIC_RUN_ID"),
        poll_interval_s=max(0.1, _env_float("POLL_INTERVAL_SECONDS", 10.0)),
        unit_timeout_s=timeout if timeout > 0 else None,
        node_name=_env_str("NODE_NAME") or socket.gethostname(),
        probe_targets=parse_probe_targets(_env_str("PROBE_TARGETS", DEFAULT_PROBE_TARGETS)),
        probe_interval_s=max(1.0, _env_float("PROBE_INTERVAL_SECONDS", 5.0)),
        probe_count=max(1, _env_int("PROBE_COUNT", 3)),
        probe_timeout_s=max(0.1, _env_float("PROBE_TIMEOUT_SECONDS", 5.0)),
        tunnel_port=_env_int("TUNNEL_PORT", 9000),
        kubelet_kubeconfig_paths=tuple(
            _parse_csv(_env_str("KUBELET_KUBECONFIG_PATHS", DEFAULT_KUBELET_KUBECONFIG_PATHS))
        ),
        resolv_conf_path=_env_str("RESOLV_CONF_PATH", "/etc/resolv.conf"),
        node_log_paths=tuple(_parse_csv(_env_str("NODE_LOG_PATHS", DEFAULT_NODE_LOG_PATHS))),
        node_log_max_bytes=max(1024, _env_int("NODE_LOG_MAX_BYTES", 1024 * 1024)),
        kube_objects=parse_kube_objects(_env_str("DIAGNOSTIC_KUBEOBJECTS_LIST", DEFAULT_KUBE_OBJECTS)),
        require_cluster_credentials=_env_bool("REQUIRE_CLUSTER_CREDENTIALS", True),
        s3_bucket=_env_str("S3_BUCKET") or None,
        s3_prefix=_env_str("S3_PREFIX").strip("/"),
        local_storage_dir=_env_str("LOCAL_STORAGE_DIR", "./diagnostics"),
    )
