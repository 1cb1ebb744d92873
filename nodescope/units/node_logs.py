"""Node log capture (tail of each configured file)."""

from __future__ import annotations

import logging
import os
from typing import List, Optional, Sequence

from nodescope.errors import UnitError
from nodescope.units.base import UnitContext

logger = logging.getLogger(__name__)


def read_tail(path: str, max_bytes: int) -> bytes:
    with open(path, "rb") as f:
        f.seek(0, os.SEEK_END)
        size = f.tell()
        f.seek(max(0, size - max_bytes))
        return f.read()


def _artifact_name(path: str) -> str:
    # /var/log/pods/a.log -> var_log_pods_a.log
    return path.strip("/").replace("/", "_") or "root"


class NodeLogsUnit:
    name = "nodelogs"

    def __init__(self, paths: Sequence[str], *, max_bytes: int = 1024 * 1024, timeout_s: Optional[float] = None) -> None:
        self.paths = list(paths)
        self.max_bytes = max_bytes
        self.timeout_s = timeout_s

    def execute(self, ctx: UnitContext) -> None:
        errors: List[str] = []
        captured = 0
        for path in self.paths:
            ctx.check_cancelled()
            if not os.path.exists(path):
                logger.debug(f"{self.name}: {path} not present, skipping")
                continue
            try:
                data = read_tail(path, self.max_bytes)
            except OSError as e:
                errors.append(f"{path}: {e}")
                continue
            ctx.add_artifact(_artifact_name(path), data)
            captured += 1

        logger.info(f"{self.name}: captured {captured} of {len(self.paths)} configured log file(s)")
        if errors:
            raise UnitError(f"unreadable log file(s): {'; '.join(errors)}")
