"""Control value sources polled by the run watcher."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Protocol, runtime_checkable

from nodescope.errors import ControlReadError


@runtime_checkable
class ControlSource(Protocol):
    def read(self) -> str:
        """Return the current control value ("" when unset). Raises ControlReadError."""


@dataclass
class FileControlSource:
    """Run identifier stored in a file (e.g. a mounted ConfigMap key)."""

    path: str

    def read(self) -> str:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return f.read().strip()
        except FileNotFoundError:
            return ""
        except OSError as e:
            raise ControlReadError(f"read {self.path}: {e}") from e


@dataclass
class ConfigMapControlSource:
    """Run identifier stored under `key` in a ConfigMap, read through the API server."""

    namespace: str
    name: str
    key: str

    def read(self) -> str:
        from nodescope.providers.k8s_provider import read_config_map_value

        try:
            value = read_config_map_value(self.namespace, self.name, self.key)
        except Exception as e:
            raise ControlReadError(f"read configmap {self.namespace}/{self.name}[{self.key}]: {e}") from e
        return (value or "").strip()
