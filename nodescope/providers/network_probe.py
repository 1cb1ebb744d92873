"""TCP connectivity probe (records failures only)."""

from __future__ import annotations

import logging
import socket
from datetime import datetime, timezone
from typing import Callable, Iterable, List, Optional

from nodescope.core.models import ProbeSample, ProbeTarget

logger = logging.getLogger(__name__)

Connector = Callable[[str, int, float], None]


def _tcp_connect(host: str, port: int, timeout_s: float) -> None:
    conn = socket.create_connection((host, port), timeout=timeout_s)
    conn.close()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ProbeSampler:
    """
    Attempts one TCP connection per target and returns a sample for each failure.

    `connect` and `clock` are seams for tests; production uses a real socket and UTC now.
    """

    def __init__(
        self,
        *,
        timeout_s: float = 5.0,
        connect: Optional[Connector] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ) -> None:
        self.timeout_s = timeout_s
        self._connect = connect or _tcp_connect
        self._clock = clock or _utcnow

    def now(self) -> datetime:
        return self._clock()

    def probe(self, target: ProbeTarget, *, at: Optional[datetime] = None) -> Optional[ProbeSample]:
        """
        Attempt one connection. A failure is stamped with `at` when given (the start of the
        sampling round), else with the time the attempt failed.
        """
        try:
            self._connect(target.host, target.port, self.timeout_s)
        except Exception as e:
            logger.debug(f"Probe {target.label} ({target.endpoint}) failed: {e}")
            return ProbeSample(
                target=target.label,
                endpoint=target.endpoint,
                timestamp=at or self._clock(),
                connected=False,
                error=str(e) or e.__class__.__name__,
            )
        return None

    def probe_all(self, targets: Iterable[ProbeTarget]) -> List[ProbeSample]:
        """One sampling round: every failure carries the round start time."""
        at = self.now()
        out: List[ProbeSample] = []
        for target in targets:
            sample = self.probe(target, at=at)
            if sample is not None:
                out.append(sample)
        return out
