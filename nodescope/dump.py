"""JSON/JSONL helpers (CLI-friendly, testable).

We keep printing logic out of core modules; these return plain strings/dicts.
"""

from __future__ import annotations

import json
from typing import Any, Dict, List, Sequence

from pydantic import BaseModel, ValidationError

from nodescope.core.models import Incident, ProbeSample
from nodescope.errors import CoalesceError


def to_jsonl(rows: Sequence[BaseModel]) -> str:
    lines = [json.dumps(r.model_dump(mode="json"), sort_keys=True) for r in rows]
    return "".join(line + "\n" for line in lines)


def load_samples_jsonl(text: str) -> List[ProbeSample]:
    """
    Parse JSONL failure samples.

    Accepts our own field names and the capitalized keys older agents wrote
    (`TimeStamp`, `Type`, `URL`, `Connected`, `Error`).
    """
    out: List[ProbeSample] = []
    for lineno, line in enumerate((text or "").splitlines(), start=1):
        s = line.strip()
        if not s:
            continue
        try:
            raw = json.loads(s)
        except json.JSONDecodeError as e:
            raise CoalesceError(f"line {lineno}: invalid JSON: {e}") from e
        if not isinstance(raw, dict):
            raise CoalesceError(f"line {lineno}: expected an object")
        connected = raw.get("connected", raw.get("Connected", False))
        if not isinstance(connected, bool):
            raise CoalesceError(f"line {lineno}: 'connected' must be true or false, got {connected!r}")
        data = {
            "target": raw.get("target", raw.get("Type")),
            "endpoint": raw.get("endpoint", raw.get("URL")) or "",
            "timestamp": raw.get("timestamp", raw.get("TimeStamp")),
            "connected": connected,
            "error": raw.get("error", raw.get("Error")) or "",
        }
        try:
            sample = ProbeSample.model_validate(data)
        except ValidationError as e:
            raise CoalesceError(f"line {lineno}: invalid sample: {e.errors()[0].get('msg')}") from e
        if not sample.connected:
            out.append(sample)
    return out


def incidents_to_json_dict(incidents: Sequence[Incident]) -> Dict[str, Any]:
    by_target: Dict[str, int] = {}
    for i in incidents:
        by_target[i.target] = by_target.get(i.target, 0) + 1
    return {
        "incident_count": len(incidents),
        "by_target": by_target,
        "incidents": [i.model_dump(mode="json") for i in incidents],
    }
