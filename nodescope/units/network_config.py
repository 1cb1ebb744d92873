"""Node network configuration capture (resolver + API server endpoint)."""

from __future__ import annotations

import json
import logging
from typing import Any, Callable, Dict, List, Optional

from nodescope.errors import UnitError
from nodescope.units.base import UnitContext

logger = logging.getLogger(__name__)


def parse_resolv_conf(text: str) -> Dict[str, Any]:
    """Extract nameservers, search domains and options from resolv.conf content."""
    nameservers: List[str] = []
    search: List[str] = []
    options: List[str] = []
    for line in (text or "").splitlines():
        s = line.split("#", 1)[0].split(";", 1)[0].strip()
        if not s:
            continue
        parts = s.split()
        key, values = parts[0], parts[1:]
        if key == "nameserver" and values:
            nameservers.append(values[0])
        elif key in ("search", "domain"):
            # The last search/domain directive wins.
            search = list(values)
        elif key == "options":
            options.extend(values)
    return {"nameservers": nameservers, "search": search, "options": options}


class NetworkConfigUnit:
    """
    Artifacts:
    - `resolv.conf`: raw resolver config as seen on the node
    - `networkconfig.json`: parsed resolver settings and the API server FQDN
    """

    name = "networkconfig"

    def __init__(
        self,
        *,
        resolv_conf_path: str = "/etc/resolv.conf",
        api_server_resolver: Optional[Callable[[], str]] = None,
        timeout_s: Optional[float] = None,
    ) -> None:
        self.resolv_conf_path = resolv_conf_path
        self.api_server_resolver = api_server_resolver
        self.timeout_s = timeout_s

    def execute(self, ctx: UnitContext) -> None:
        errors: List[str] = []
        summary: Dict[str, Any] = {"resolv_conf_path": self.resolv_conf_path}

        try:
            with open(self.resolv_conf_path, "r", encoding="utf-8") as f:
                resolv = f.read()
        except OSError as e:
            errors.append(f"read {self.resolv_conf_path}: {e}")
        else:
            ctx.add_artifact("resolv.conf", resolv)
            summary.update(parse_resolv_conf(resolv))

        ctx.check_cancelled()
        summary["api_server_fqdn"] = None
        if self.api_server_resolver is not None:
            try:
                summary["api_server_fqdn"] = self.api_server_resolver()
            except Exception as e:
                errors.append(f"resolve API server FQDN: {e}")

        summary["errors"] = errors
        ctx.add_artifact("networkconfig.json", json.dumps(summary, indent=2, sort_keys=True))
        if errors:
            raise UnitError("; ".join(errors))
