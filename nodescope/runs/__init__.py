"""Run triggering: control sources, the watcher, and the single-slot handoff."""

from nodescope.runs.control import ConfigMapControlSource, ControlSource, FileControlSource
from nodescope.runs.handoff import RunHandoff
from nodescope.runs.loop import consume_runs
from nodescope.runs.watcher import RunWatcher

__all__ = [
    "ControlSource",
    "FileControlSource",
    "ConfigMapControlSource",
    "RunHandoff",
    "RunWatcher",
    "consume_runs",
]
