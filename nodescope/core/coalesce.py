"""Connectivity incident coalescing.

Compresses a stream of probe failure samples into incidents: maximal runs of samples for
one target that share an error text and have no internal gap wider than the threshold.

Everything here is pure (no I/O, no wall clock) so it is driven entirely by the samples.
"""

from __future__ import annotations

from datetime import timedelta
from typing import Dict, Iterable, List, Optional

from nodescope.core.models import Incident, ProbeSample
from nodescope.errors import CoalesceError


def _open_from(sample: ProbeSample) -> Incident:
    return Incident(target=sample.target, start=sample.timestamp, end=sample.timestamp, error=sample.error)


def coalesce_samples(samples: Iterable[ProbeSample], gap_threshold: timedelta) -> List[Incident]:
    """
    Coalesce time-ordered failure samples into incidents.

    For each sample, the open incident is closed and a new one opened when the error text
    differs, the target differs, or the sample lands more than `gap_threshold` after the
    open incident's end; otherwise the open incident is extended. A gap exactly equal to
    the threshold extends.

    Raises CoalesceError if a sample's timestamp goes backwards within a target, or if two
    samples of one target share a timestamp but not an error.
    """
    if gap_threshold < timedelta(0):
        raise CoalesceError(f"gap threshold must be non-negative, got {gap_threshold}")

    out: List[Incident] = []
    current: Optional[Incident] = None
    last_seen: Dict[str, ProbeSample] = {}

    for sample in samples:
        prev = last_seen.get(sample.target)
        if prev is not None and sample.timestamp < prev.timestamp:
            raise CoalesceError(
                f"out-of-order sample for {sample.target}: "
                f"{sample.timestamp.isoformat()} after {prev.timestamp.isoformat()}"
            )
        if prev is not None and sample.timestamp == prev.timestamp and sample.error != prev.error:
            # Two different errors at the same instant would put that instant in two incidents.
            raise CoalesceError(
                f"conflicting samples for {sample.target} at {sample.timestamp.isoformat()}: "
                f"{prev.error!r} and {sample.error!r}"
            )
        last_seen[sample.target] = sample

        if current is None:
            current = _open_from(sample)
        elif sample.target != current.target or sample.error != current.error:
            out.append(current)
            current = _open_from(sample)
        elif sample.timestamp - current.end > gap_threshold:
            out.append(current)
            current = _open_from(sample)
        else:
            current = current.model_copy(update={"end": sample.timestamp})

    if current is not None:
        out.append(current)
    return out


def coalesce_by_target(samples: Iterable[ProbeSample], gap_threshold: timedelta) -> Dict[str, List[Incident]]:
    """Group samples by target (first-seen order) and coalesce each group independently."""
    groups: Dict[str, List[ProbeSample]] = {}
    for sample in samples:
        groups.setdefault(sample.target, []).append(sample)
    return {target: coalesce_samples(group, gap_threshold) for target, group in groups.items()}


def merge_incidents(incidents: Iterable[Incident], gap_threshold: timedelta) -> List[Incident]:
    """
    Merge time-ordered incidents whose spans sit within `gap_threshold` of each other.

    Used when incidents from consecutive sampling windows are combined. Incidents for the
    same target and error are joined when `next.start - current.end <= gap_threshold`.
    Applying this to coalesce_samples() output returns it unchanged.
    """
    out: List[Incident] = []
    current: Optional[Incident] = None
    for incident in incidents:
        if current is None:
            current = incident
            continue
        if incident.target == current.target and incident.start < current.start:
            raise CoalesceError(
                f"out-of-order incident for {incident.target}: "
                f"{incident.start.isoformat()} before {current.start.isoformat()}"
            )
        if (
            incident.target == current.target
            and incident.error == current.error
            and incident.start - current.end <= gap_threshold
        ):
            current = current.model_copy(update={"end": max(current.end, incident.end)})
        else:
            out.append(current)
            current = incident
    if current is not None:
        out.append(current)
    return out


def boundary_samples(incidents: Iterable[Incident]) -> List[ProbeSample]:
    """Expand incidents back into their start (and, when distinct, end) samples."""
    out: List[ProbeSample] = []
    for incident in incidents:
        out.append(ProbeSample(target=incident.target, timestamp=incident.start, error=incident.error))
        if incident.end != incident.start:
            out.append(ProbeSample(target=incident.target, timestamp=incident.end, error=incident.error))
    return out
