from __future__ import annotations

import logging
import threading
from typing import Optional, Protocol

from nodescope.core.models import RunReport
from nodescope.runs.handoff import RunHandoff

logger = logging.getLogger(__name__)


class RunExecutor(Protocol):
    def run_once(self, run_id: str) -> RunReport: ...


def consume_runs(
    handoff: RunHandoff,
    orchestrator: RunExecutor,
    *,
    stop: Optional[threading.Event] = None,
    take_timeout_s: float = 0.5,
) -> None:
    """
    Consumer side of the trigger handoff: run each accepted trigger to completion.

    The next trigger is only taken after the previous `run_once` returned. FatalRunError
    propagates to the caller (process exit).
    """
    stop = stop or threading.Event()
    while not stop.is_set():
        run_id = handoff.take(timeout=take_timeout_s)
        if run_id is None:
            continue
        logger.info(f"Starting run {run_id}")
        try:
            report = orchestrator.run_once(run_id)
        finally:
            handoff.finish()
        logger.info(f"Completed run {run_id}: {report.summary()}")
