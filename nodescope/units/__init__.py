"""Diagnosis units.

Each unit is a small configuration holder implementing `name` + `execute(ctx)`.
Units are built once at startup (see `nodescope.app.build_units`) and run once per
triggered run by the TaskScheduler.
"""

from nodescope.units.base import DiagnosisUnit, UnitContext
from nodescope.units.kube_objects import KubeObjectsUnit
from nodescope.units.network_config import NetworkConfigUnit
from nodescope.units.network_outbound import NetworkOutboundUnit
from nodescope.units.node_logs import NodeLogsUnit

__all__ = [
    "DiagnosisUnit",
    "UnitContext",
    "KubeObjectsUnit",
    "NetworkConfigUnit",
    "NetworkOutboundUnit",
    "NodeLogsUnit",
]
