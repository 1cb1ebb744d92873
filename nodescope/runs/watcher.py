from __future__ import annotations

import logging
import threading
from typing import Optional

from nodescope.runs.control import ControlSource
from nodescope.runs.handoff import RunHandoff

logger = logging.getLogger(__name__)


class RunWatcher:
    """
    Polls a control value and turns each change into one run trigger.

    Delivery goes through a RunHandoff and blocks until the run loop accepts it, so while
    a run is in flight the watcher stops polling; when it resumes it only sees the
    latest value.
    """

    def __init__(self, source: ControlSource, handoff: RunHandoff, *, poll_interval_s: float = 10.0) -> None:
        self.source = source
        self.handoff = handoff
        self.poll_interval_s = poll_interval_s
        self._last = ""
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def last_observed(self) -> str:
        return self._last

    def poll_once(self) -> Optional[str]:
        """One tick: return the new run id if the control value changed, else None."""
        try:
            value = (self.source.read() or "").strip()
        except Exception as e:
            logger.warning(f"Run watcher: control read failed (will retry): {e}")
            return None

        if value == self._last:
            return None
        previous, self._last = self._last, value
        if not value:
            logger.info(f"Run watcher: control value cleared (was {previous!r})")
            return None
        logger.info(f"Run watcher: control value changed {previous!r} -> {value!r}")
        return value

    def run(self) -> None:
        logger.info(f"Run watcher started (interval={self.poll_interval_s}s)")
        while not self._stop.is_set():
            run_id = self.poll_once()
            if run_id is not None:
                if not self.handoff.offer(run_id, stop=self._stop):
                    break
            self._stop.wait(self.poll_interval_s)
        logger.info("Run watcher stopped")

    def start(self) -> threading.Thread:
        if self._thread is not None and self._thread.is_alive():
            return self._thread
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="run-watcher", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self, timeout: Optional[float] = None) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
