"""Exception taxonomy.

Only `FatalRunError` is allowed to escape a run; everything else is recorded at the
unit/export boundary where it happens.
"""

from __future__ import annotations

from typing import Optional


class NodescopeError(Exception):
    """Base class for all agent errors."""


class ConfigError(NodescopeError):
    """Invalid static configuration (raised at startup, never mid-run)."""


class ControlReadError(NodescopeError):
    """The control value could not be read this tick."""


class UnitError(NodescopeError):
    """A diagnosis unit finished with a reportable failure."""


class UnitCancelled(UnitError):
    """A unit observed its cancel signal (deadline expired) and stopped."""


class CoalesceError(UnitError):
    """Probe samples were malformed or out of order."""


class ArtifactCollisionError(NodescopeError):
    """Two artifacts claimed the same name."""


class WiringError(NodescopeError):
    """A run prerequisite (cluster credentials, export connectivity) is missing."""


class ExportError(NodescopeError):
    """An export destination rejected a bundle or archive."""


class FatalRunError(NodescopeError):
    def __init__(self, run_id: str, message: str, *, cause: Optional[BaseException] = None) -> None:
        super().__init__(f"run {run_id}: {message}")
        self.run_id = run_id
        self.cause = cause
