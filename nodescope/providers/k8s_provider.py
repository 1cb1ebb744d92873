"""Kubernetes access: credentials, kubelet kubeconfig parsing, and read-only object reads."""

from __future__ import annotations

import logging
import threading
from typing import Any, Dict, List, Optional, Sequence, Tuple
from urllib.parse import urlparse

from nodescope.errors import WiringError

logger = logging.getLogger(__name__)

_core_v1_api = None
_apps_v1_api = None
_api_client = None
_config_loaded = False
_init_lock = threading.Lock()

# kind -> (api group, list method, read method)
_KIND_METHODS: Dict[str, Tuple[str, str, str]] = {
    "pod": ("core", "list_namespaced_pod", "read_namespaced_pod"),
    "service": ("core", "list_namespaced_service", "read_namespaced_service"),
    "endpoints": ("core", "list_namespaced_endpoints", "read_namespaced_endpoints"),
    "configmap": ("core", "list_namespaced_config_map", "read_namespaced_config_map"),
    "serviceaccount": ("core", "list_namespaced_service_account", "read_namespaced_service_account"),
    "event": ("core", "list_namespaced_event", "read_namespaced_event"),
    "deployment": ("apps", "list_namespaced_deployment", "read_namespaced_deployment"),
    "daemonset": ("apps", "list_namespaced_daemon_set", "read_namespaced_daemon_set"),
    "replicaset": ("apps", "list_namespaced_replica_set", "read_namespaced_replica_set"),
    "statefulset": ("apps", "list_namespaced_stateful_set", "read_namespaced_stateful_set"),
}

_KIND_ALIASES = {
    "pods": "pod",
    "po": "pod",
    "services": "service",
    "svc": "service",
    "ep": "endpoints",
    "configmaps": "configmap",
    "cm": "configmap",
    "serviceaccounts": "serviceaccount",
    "sa": "serviceaccount",
    "events": "event",
    "ev": "event",
    "deployments": "deployment",
    "deploy": "deployment",
    "daemonsets": "daemonset",
    "ds": "daemonset",
    "replicasets": "replicaset",
    "rs": "replicaset",
    "statefulsets": "statefulset",
    "sts": "statefulset",
}


def _load_config_locked() -> None:
    """Load in-cluster config, falling back to kubeconfig. Caller holds _init_lock."""
    global _config_loaded
    if _config_loaded:
        return
    # Import lazily so host-only units (probes, resolver, logs) work without the client installed.
    try:
        from kubernetes import config
    except Exception as import_err:
        raise WiringError(f"Kubernetes client not available: {import_err}")

    try:
        config.load_incluster_config()
    except config.ConfigException:
        try:
            config.load_kube_config()
        except Exception as e:
            raise WiringError(f"cannot load cluster credentials: {e}") from e
    _config_loaded = True


def ensure_cluster_credentials() -> None:
    """Run prerequisite: cluster credentials must be loadable. Raises WiringError."""
    with _init_lock:
        _load_config_locked()


def _get_core_v1():
    """Return a cached CoreV1Api client (thread-safe lazy init)."""
    global _core_v1_api
    if _core_v1_api is not None:
        return _core_v1_api
    with _init_lock:
        if _core_v1_api is not None:
            return _core_v1_api
        _load_config_locked()
        from kubernetes import client

        _core_v1_api = client.CoreV1Api()
        return _core_v1_api


def _get_apps_v1():
    """Return a cached AppsV1Api client (thread-safe lazy init)."""
    global _apps_v1_api
    if _apps_v1_api is not None:
        return _apps_v1_api
    with _init_lock:
        if _apps_v1_api is not None:
            return _apps_v1_api
        _load_config_locked()
        from kubernetes import client

        _apps_v1_api = client.AppsV1Api()
        return _apps_v1_api


def _get_api_client():
    global _api_client
    if _api_client is not None:
        return _api_client
    with _init_lock:
        if _api_client is not None:
            return _api_client
        _load_config_locked()
        from kubernetes import client

        _api_client = client.ApiClient()
        return _api_client


def _api_status(e: Exception) -> Optional[int]:
    try:
        from kubernetes.client.rest import ApiException  # type: ignore
    except Exception:
        return None
    if isinstance(e, ApiException):
        return getattr(e, "status", None)
    return None


def parse_api_server_fqdn(kubeconfig_text: str) -> str:
    """
    Return the API server host from the first `server:` entry of a kubeconfig.

    Raises ValueError when no server entry exists or the URL carries no host:port.
    """
    for line in (kubeconfig_text or "").splitlines():
        idx = line.find("server: ")
        if idx < 0:
            continue
        url = line[idx + len("server: ") :].strip().strip("\"'")
        parsed = urlparse(url)
        if not parsed.hostname or parsed.port is None:
            raise ValueError(f"cannot split host and port from server url {url!r}")
        return parsed.hostname
    raise ValueError("could not find server definitions in kubeconfig")


def read_kubelet_kubeconfig(paths: Sequence[str]) -> str:
    """Return the content of the first readable kubelet kubeconfig in `paths`."""
    errors: List[str] = []
    for path in paths:
        try:
            with open(path, "r", encoding="utf-8") as f:
                return f.read()
        except OSError as e:
            errors.append(f"{path}: {e}")
    raise FileNotFoundError(f"no readable kubelet kubeconfig ({'; '.join(errors) or 'no paths configured'})")


def get_api_server_fqdn(paths: Sequence[str]) -> str:
    return parse_api_server_fqdn(read_kubelet_kubeconfig(paths))


def read_config_map_value(namespace: str, name: str, key: str) -> Optional[str]:
    """Read one key of a ConfigMap. Returns None when the ConfigMap or key is absent."""
    v1 = _get_core_v1()
    try:
        cm = v1.read_namespaced_config_map(name=name, namespace=namespace)
    except Exception as e:
        if _api_status(e) == 404:
            return None
        raise
    data = getattr(cm, "data", None) or {}
    value = data.get(key)
    return str(value) if value is not None else None


def normalize_kind(kind: str) -> str:
    k = (kind or "").strip().lower()
    k = _KIND_ALIASES.get(k, k)
    if k not in _KIND_METHODS:
        raise ValueError(f"unsupported kind {kind!r} (supported: {', '.join(sorted(_KIND_METHODS))})")
    return k


def read_kube_objects(namespace: str, kind: str, name: Optional[str] = None) -> List[Dict[str, Any]]:
    """
    Read one named object, or list all objects of `kind` in `namespace`.

    Returns plain dicts (API field names, e.g. `apiVersion`) suitable for YAML dumping.
    """
    k = normalize_kind(kind)
    group, list_method, read_method = _KIND_METHODS[k]
    api = _get_core_v1() if group == "core" else _get_apps_v1()
    serializer = _get_api_client()

    if name:
        obj = getattr(api, read_method)(name=name, namespace=namespace)
        return [serializer.sanitize_for_serialization(obj)]

    res = getattr(api, list_method)(namespace=namespace)
    return [serializer.sanitize_for_serialization(item) for item in (getattr(res, "items", None) or [])]
