from __future__ import annotations

import threading
import time
from typing import Optional


class RunHandoff:
    """
    Single-slot rendezvous between the watcher (producer) and the run loop (consumer).

    - `offer()` blocks until the consumer has taken the value.
    - `take()` refuses to run while the previous run is still marked busy.
    - `finish()` clears the busy state once the run returns.

    Together these keep at most one run in flight and never drop a trigger.
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._pending: Optional[str] = None
        self._busy = False
        self._taken = 0

    @property
    def busy(self) -> bool:
        with self._cond:
            return self._busy

    @property
    def pending(self) -> Optional[str]:
        with self._cond:
            return self._pending

    def offer(self, run_id: str, *, stop: Optional[threading.Event] = None, poll_s: float = 0.5) -> bool:
        """Hand `run_id` to the consumer. Returns False if `stop` is set before it is taken."""
        with self._cond:
            while self._pending is not None:
                if stop is not None and stop.is_set():
                    return False
                self._cond.wait(poll_s)

            self._pending = run_id
            ticket = self._taken + 1
            self._cond.notify_all()

            while self._taken < ticket:
                if stop is not None and stop.is_set():
                    # Withdraw our value if the consumer never picked it up.
                    self._pending = None
                    return False
                self._cond.wait(poll_s)
            return True

    def take(self, timeout: Optional[float] = None) -> Optional[str]:
        """Wait for the next trigger and mark the consumer busy. Returns None on timeout."""
        deadline = None if timeout is None else time.monotonic() + timeout
        with self._cond:
            if self._busy:
                raise RuntimeError("take() called while the previous run is still in flight")
            while self._pending is None:
                if deadline is None:
                    self._cond.wait()
                    continue
                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)

            run_id = self._pending
            self._pending = None
            self._taken += 1
            self._busy = True
            self._cond.notify_all()
            return run_id

    def finish(self) -> None:
        with self._cond:
            self._busy = False
            self._cond.notify_all()
