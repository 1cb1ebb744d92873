"""Outbound connectivity diagnosis: periodic TCP probes coalesced into incidents."""

from __future__ import annotations

import logging
import time
from datetime import datetime, timedelta
from typing import Callable, Dict, List, Optional, Sequence

from nodescope.core.coalesce import coalesce_samples
from nodescope.core.models import Incident, ProbeSample, ProbeTarget
from nodescope.dump import to_jsonl
from nodescope.errors import UnitError
from nodescope.providers.network_probe import ProbeSampler
from nodescope.units.base import UnitContext

logger = logging.getLogger(__name__)

TUNNEL_TARGET_LABEL = "TunnelConnectivity"


class NetworkOutboundUnit:
    """
    Probes every target `probe_count` times, then coalesces the failures per target.

    Rounds start on a fixed schedule (`probe_interval_s` apart, measured from the first
    round), so slow connects do not push later rounds further out. A round that overruns
    the interval delays the next one; the next then starts immediately. Every failure in a
    round is stamped with the round's start time.

    The gap threshold is the probe interval, widened to the largest spacing actually seen
    between consecutive rounds, so a target failing in back-to-back rounds forms one
    incident.

    Artifacts:
    - `<label>.jsonl`: raw failure samples, one file per target (empty when all probes passed)
    - `incidents.jsonl`: coalesced incidents across all targets
    """

    name = "networkoutbound"

    def __init__(
        self,
        targets: Sequence[ProbeTarget],
        *,
        sampler: ProbeSampler,
        probe_interval_s: float = 5.0,
        probe_count: int = 3,
        api_server_resolver: Optional[Callable[[], str]] = None,
        tunnel_port: int = 9000,
        timeout_s: Optional[float] = None,
        clock: Optional[Callable[[], float]] = None,
    ) -> None:
        self.targets = list(targets)
        self.sampler = sampler
        self.probe_interval_s = probe_interval_s
        self.probe_count = max(1, int(probe_count))
        self.api_server_resolver = api_server_resolver
        self.tunnel_port = tunnel_port
        self.timeout_s = timeout_s
        self._clock = clock or time.monotonic

    @property
    def gap_threshold(self) -> timedelta:
        return timedelta(seconds=self.probe_interval_s)

    def threshold_for(self, round_starts: Sequence[datetime]) -> timedelta:
        threshold = self.gap_threshold
        for prev, cur in zip(round_starts, round_starts[1:]):
            threshold = max(threshold, cur - prev)
        return threshold

    def _resolve_targets(self) -> tuple[List[ProbeTarget], Optional[str]]:
        targets = list(self.targets)
        if self.api_server_resolver is None:
            return targets, None
        try:
            fqdn = self.api_server_resolver()
        except Exception as e:
            return targets, f"cannot resolve API server FQDN for {TUNNEL_TARGET_LABEL}: {e}"
        targets.append(ProbeTarget(label=TUNNEL_TARGET_LABEL, endpoint=f"{fqdn}:{self.tunnel_port}"))
        return targets, None

    def execute(self, ctx: UnitContext) -> None:
        targets, resolve_error = self._resolve_targets()
        if resolve_error:
            logger.warning(f"{self.name}: {resolve_error}; probing static targets only")

        samples: Dict[str, List[ProbeSample]] = {t.label: [] for t in targets}
        round_starts: List[datetime] = []
        t0 = self._clock()
        for round_no in range(self.probe_count):
            if round_no:
                delay = t0 + round_no * self.probe_interval_s - self._clock()
                if ctx.wait(max(0.0, delay)):
                    break
            started = self.sampler.now().replace(microsecond=0)
            round_starts.append(started)
            for target in targets:
                if ctx.cancelled:
                    break
                sample = self.sampler.probe(target, at=started)
                if sample is not None:
                    samples[target.label].append(sample)

        threshold = self.threshold_for(round_starts)
        if threshold > self.gap_threshold:
            logger.info(f"{self.name}: rounds overran the {self.probe_interval_s}s interval; gap threshold {threshold}")

        incidents: List[Incident] = []
        for target in targets:
            ctx.add_artifact(f"{target.label}.jsonl", to_jsonl(samples[target.label]))
            incidents.extend(coalesce_samples(samples[target.label], threshold))
        ctx.add_artifact("incidents.jsonl", to_jsonl(incidents))

        failing = sorted({i.target for i in incidents})
        if failing:
            logger.info(f"{self.name}: {len(incidents)} incident(s) on {', '.join(failing)}")
        if resolve_error:
            raise UnitError(resolve_error)
        ctx.check_cancelled()
