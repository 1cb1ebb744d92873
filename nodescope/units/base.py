from __future__ import annotations

import threading
from typing import List, Optional, Protocol, Union, runtime_checkable

from nodescope.core.models import Artifact
from nodescope.errors import ArtifactCollisionError, UnitCancelled


@runtime_checkable
class DiagnosisUnit(Protocol):
    """
    Diagnosis unit contract.

    Units are constructed once per process (configuration holders only) and executed once
    per run. All per-run state lives in the UnitContext passed to `execute`, so nothing
    leaks from one run into the next.

    `execute` writes artifacts through `ctx.add_artifact` as it goes; raising after that
    still leaves the partial artifacts in the run's bundle. Long waits should go through
    `ctx.wait()` (or poll `ctx.cancelled`) so a deadline can stop the unit.
    """

    name: str

    def execute(self, ctx: "UnitContext") -> None: ...


class UnitContext:
    """Per-invocation state for one unit: its artifact namespace and cancel signal."""

    def __init__(self, unit_name: str, run_id: str, *, cancel: Optional[threading.Event] = None) -> None:
        self.unit_name = unit_name
        self.run_id = run_id
        self.cancel = cancel or threading.Event()
        self._lock = threading.Lock()
        self._artifacts: List[Artifact] = []
        self._names: set[str] = set()
        self._sealed = False

    def artifact_name(self, name: str) -> str:
        rel = (name or "").strip().lstrip("/")
        if not rel:
            raise ValueError("artifact name must not be empty")
        return f"{self.unit_name}/{rel}"

    def add_artifact(self, name: str, content: Union[bytes, str]) -> Artifact:
        data = content.encode("utf-8") if isinstance(content, str) else bytes(content)
        artifact = Artifact(name=self.artifact_name(name), content=data)
        with self._lock:
            if self._sealed:
                raise UnitCancelled(f"{self.unit_name}: context sealed, artifact {name!r} dropped")
            if artifact.name in self._names:
                raise ArtifactCollisionError(f"{self.unit_name}: artifact {artifact.name!r} written twice")
            self._names.add(artifact.name)
            self._artifacts.append(artifact)
        return artifact

    @property
    def cancelled(self) -> bool:
        return self.cancel.is_set()

    def check_cancelled(self) -> None:
        if self.cancel.is_set():
            raise UnitCancelled(f"{self.unit_name}: cancelled")

    def wait(self, seconds: float) -> bool:
        """Sleep up to `seconds`; returns True if cancelled meanwhile."""
        return self.cancel.wait(max(0.0, seconds))

    def seal(self) -> List[Artifact]:
        """Stop accepting artifacts and return what was produced so far."""
        with self._lock:
            self._sealed = True
            return list(self._artifacts)

    def snapshot(self) -> List[Artifact]:
        with self._lock:
            return list(self._artifacts)
