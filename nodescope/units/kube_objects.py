"""Cluster object capture (read-only), one YAML document per object."""

from __future__ import annotations

import logging
from typing import Any, Callable, Dict, List, Optional, Sequence

import yaml

from nodescope.config import KubeObjectRef
from nodescope.errors import UnitError
from nodescope.units.base import UnitContext

logger = logging.getLogger(__name__)

ObjectReader = Callable[[str, str, Optional[str]], List[Dict[str, Any]]]


def _default_reader(namespace: str, kind: str, name: Optional[str]) -> List[Dict[str, Any]]:
    from nodescope.providers.k8s_provider import read_kube_objects

    return read_kube_objects(namespace, kind, name)


def _object_name(obj: Dict[str, Any]) -> str:
    md = obj.get("metadata") if isinstance(obj.get("metadata"), dict) else {}
    return str(md.get("name") or "unnamed")


class KubeObjectsUnit:
    """Writes `<namespace>_<kind>_<name>.yaml` for every configured object."""

    name = "kubeobjects"

    def __init__(
        self,
        objects: Sequence[KubeObjectRef],
        *,
        reader: Optional[ObjectReader] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.objects = list(objects)
        self.reader = reader or _default_reader
        self.timeout_s = timeout_s

    def execute(self, ctx: UnitContext) -> None:
        errors: List[str] = []
        for ref in self.objects:
            ctx.check_cancelled()
            try:
                items = self.reader(ref.namespace, ref.kind, ref.name)
            except Exception as e:
                errors.append(f"{ref}: {e}")
                continue
            if not items:
                logger.info(f"{self.name}: no {ref.kind} objects in {ref.namespace}")
            for obj in items:
                body = yaml.safe_dump(obj, sort_keys=False, default_flow_style=False)
                ctx.add_artifact(f"{ref.namespace}_{ref.kind}_{_object_name(obj)}.yaml", body)

        if errors:
            raise UnitError(f"{len(errors)} object read(s) failed: {'; '.join(errors)}")
