"""Fan-out/fan-in execution of diagnosis units.

Each unit runs on its own daemon thread with its own UnitContext. `run_all` returns only
after every unit has an outcome: finished, failed, or timed out at its deadline.
"""

from __future__ import annotations

import logging
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import List, Optional, Sequence

from nodescope.core.models import RunOutcome
from nodescope.units.base import DiagnosisUnit, UnitContext

logger = logging.getLogger(__name__)


def _now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class _Slot:
    unit: DiagnosisUnit
    ctx: UnitContext
    timeout_s: Optional[float]
    started_at: datetime = field(default_factory=_now)
    done: threading.Event = field(default_factory=threading.Event)
    error: Optional[str] = None
    finished_at: Optional[datetime] = None


def _unit_name(unit: DiagnosisUnit) -> str:
    return str(getattr(unit, "name", "") or unit.__class__.__name__)


class TaskScheduler:
    """
    Runs independent units concurrently and joins on all of them.

    `default_timeout_s` applies to units that don't set their own `timeout_s`;
    None means wait indefinitely.
    """

    def __init__(self, *, default_timeout_s: Optional[float] = 600.0) -> None:
        self.default_timeout_s = default_timeout_s

    def _timeout_for(self, unit: DiagnosisUnit) -> Optional[float]:
        t = getattr(unit, "timeout_s", None)
        if t is None:
            return self.default_timeout_s
        return float(t) if float(t) > 0 else None

    def _execute(self, slot: _Slot) -> None:
        name = slot.ctx.unit_name
        logger.info(f"Unit {name}: start (run={slot.ctx.run_id})")
        returned = False
        try:
            slot.unit.execute(slot.ctx)
            returned = True
        except Exception as e:
            slot.error = f"{e.__class__.__name__}: {e}" if str(e) else e.__class__.__name__
            logger.warning(f"Unit {name}: failed: {slot.error}", exc_info=True)
        finally:
            if not returned and slot.error is None:
                # SystemExit/KeyboardInterrupt raised inside the unit thread.
                slot.error = "unit aborted"
            slot.finished_at = _now()
            slot.done.set()
        if returned:
            logger.info(f"Unit {name}: succeeded ({len(slot.ctx.snapshot())} artifact(s))")

    def run_all(self, units: Sequence[DiagnosisUnit], *, run_id: str = "") -> List[RunOutcome]:
        slots: List[_Slot] = []
        threads: List[threading.Thread] = []
        for unit in units:
            ctx = UnitContext(_unit_name(unit), run_id)
            slot = _Slot(unit=unit, ctx=ctx, timeout_s=self._timeout_for(unit))
            slots.append(slot)
            threads.append(threading.Thread(target=self._execute, args=(slot,), name=f"unit-{ctx.unit_name}", daemon=True))

        launched_at = time.monotonic()
        for slot, thread in zip(slots, threads):
            slot.started_at = _now()
            thread.start()

        # Barrier: every unit ends up with exactly one outcome, in registration order.
        outcomes: List[RunOutcome] = []
        for slot in slots:
            name = slot.ctx.unit_name
            if slot.timeout_s is None:
                slot.done.wait()
                finished = True
            else:
                remaining = slot.timeout_s - (time.monotonic() - launched_at)
                finished = slot.done.wait(max(0.0, remaining))

            if not finished:
                slot.ctx.cancel.set()
                partial = slot.ctx.seal()
                logger.warning(
                    f"Unit {name}: timed out after {slot.timeout_s}s; keeping {len(partial)} partial artifact(s)"
                )
                outcomes.append(
                    RunOutcome(
                        unit=name,
                        status="timed_out",
                        error=f"deadline of {slot.timeout_s}s exceeded",
                        artifacts=partial,
                        started_at=slot.started_at,
                        finished_at=_now(),
                    )
                )
                continue

            artifacts = slot.ctx.seal()
            outcomes.append(
                RunOutcome(
                    unit=name,
                    status="failed" if slot.error is not None else "succeeded",
                    error=slot.error,
                    artifacts=artifacts,
                    started_at=slot.started_at,
                    finished_at=slot.finished_at,
                )
            )
        return outcomes
