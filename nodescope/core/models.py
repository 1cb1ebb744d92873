"""Canonical domain models (single source of truth).

Shared by:
- the probe sampler and incident coalescer
- diagnosis units and the scheduler (artifacts, outcomes)
- the orchestrator and exporters (bundle, run report)
"""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from nodescope.errors import ArtifactCollisionError


class BaseModelStrict(BaseModel):
    model_config = ConfigDict(extra="forbid")


def _utc(v: datetime) -> datetime:
    # Prevent naive/aware mixing bugs in gap arithmetic.
    if isinstance(v, datetime) and v.tzinfo is None:
        return v.replace(tzinfo=timezone.utc)
    return v


class ProbeTarget(BaseModelStrict):
    label: str
    endpoint: str

    @property
    def host(self) -> str:
        return self.endpoint.rsplit(":", 1)[0]

    @property
    def port(self) -> int:
        return int(self.endpoint.rsplit(":", 1)[1])

    @field_validator("endpoint")
    @classmethod
    def _require_port(cls, v: str) -> str:
        host, sep, port = (v or "").strip().rpartition(":")
        if not sep or not host or not port.isdigit():
            raise ValueError(f"endpoint must be host:port, got {v!r}")
        return v.strip()


class ProbeSample(BaseModelStrict):
    """One failed connection attempt. Successful attempts are not recorded."""

    target: str
    endpoint: str = ""
    timestamp: datetime
    connected: bool = False
    error: str = ""

    @field_validator("timestamp")
    @classmethod
    def _truncate_to_second(cls, v: datetime) -> datetime:
        return _utc(v).replace(microsecond=0)


class Incident(BaseModelStrict):
    target: str
    start: datetime
    end: datetime
    error: str

    @field_validator("start", "end")
    @classmethod
    def _ensure_timezone_aware(cls, v: datetime) -> datetime:
        return _utc(v)

    @model_validator(mode="after")
    def _start_not_after_end(self) -> "Incident":
        if self.start > self.end:
            raise ValueError(f"incident start {self.start.isoformat()} is after end {self.end.isoformat()}")
        return self

    @property
    def duration_seconds(self) -> int:
        return int((self.end - self.start).total_seconds())


class Artifact(BaseModelStrict):
    model_config = ConfigDict(extra="forbid", frozen=True)

    name: str
    content: bytes = b""


class ArtifactBundle(BaseModelStrict):
    """Write-once collection of artifacts for one run; read-only after construction."""

    model_config = ConfigDict(extra="forbid", frozen=True)

    run_id: str
    artifacts: Tuple[Artifact, ...] = ()

    @classmethod
    def from_outcomes(cls, run_id: str, outcomes: Iterable["RunOutcome"]) -> "ArtifactBundle":
        seen: Dict[str, str] = {}
        collected: List[Artifact] = []
        for outcome in outcomes:
            for artifact in outcome.artifacts:
                owner = seen.get(artifact.name)
                if owner is not None:
                    raise ArtifactCollisionError(
                        f"artifact {artifact.name!r} produced by both {owner!r} and {outcome.unit!r}"
                    )
                seen[artifact.name] = outcome.unit
                collected.append(artifact)
        return cls(run_id=run_id, artifacts=tuple(collected))

    def names(self) -> List[str]:
        return [a.name for a in self.artifacts]

    def __len__(self) -> int:
        return len(self.artifacts)


UnitStatus = Literal["succeeded", "failed", "timed_out"]


class RunOutcome(BaseModelStrict):
    unit: str
    status: UnitStatus
    error: Optional[str] = None
    artifacts: List[Artifact] = Field(default_factory=list)
    started_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    finished_at: Optional[datetime] = None

    @property
    def ok(self) -> bool:
        return self.status == "succeeded"


class RunState(str, Enum):
    TRIGGERED = "triggered"
    EXECUTING = "executing"
    COLLECTING = "collecting"
    EXPORTING = "exporting"
    COMPLETED = "completed"
    FATAL_ABORTED = "fatal_aborted"


class ExportResult(BaseModelStrict):
    destination: str
    ok: bool
    error: Optional[str] = None


class RunReport(BaseModelStrict):
    run_id: str
    state: RunState = RunState.TRIGGERED
    outcomes: List[RunOutcome] = Field(default_factory=list)
    artifact_count: int = 0
    exports: List[ExportResult] = Field(default_factory=list)
    archive_exports: List[ExportResult] = Field(default_factory=list)
    error: Optional[str] = None

    def summary(self) -> Dict[str, Any]:
        return {
            "run_id": self.run_id,
            "state": self.state.value,
            "units": {o.unit: o.status for o in self.outcomes},
            "artifacts": self.artifact_count,
            "exports": {r.destination: r.ok for r in self.exports},
        }
