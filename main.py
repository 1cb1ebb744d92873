#!/usr/bin/env python3
"""
Node Diagnostic Agent - Control-Value-Driven Diagnostic Runs
Runs a fixed set of diagnosis units on this node whenever the run ID changes and exports the results.
"""

import argparse
import logging
import os
import sys
from typing import List, Optional

from dateutil import parser as date_parser

# Configure logging
logging.basicConfig(
    level=(os.getenv("LOG_LEVEL") or "INFO").strip().upper(),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    stream=sys.stderr,
)

logger = logging.getLogger("nodescope")

#
# NOTE: Keep package imports lazy (inside functions) so `--coalesce` works on a laptop
# without the kubernetes/boto3 clients installed.
#


def format_timestamp_for_display(timestamp_str: str) -> str:
    """Format ISO timestamp to compact display format (HH:MM:SSZ)."""
    if not timestamp_str:
        return "N/A"
    try:
        dt = date_parser.isoparse(timestamp_str)
        return dt.strftime("%H:%M:%SZ")
    except (ValueError, TypeError, AttributeError):
        return timestamp_str[:19]


def coalesce_file(path: str, gap_seconds: float, *, dump_json: bool = False) -> None:
    """
    Coalesce a JSONL file of probe failure samples and print the incidents.

    Args:
        path: JSONL file ('-' for stdin)
        gap_seconds: Gap threshold in seconds
    """
    import json
    from datetime import timedelta

    from nodescope.core.coalesce import coalesce_by_target
    from nodescope.dump import incidents_to_json_dict, load_samples_jsonl
    from nodescope.errors import CoalesceError

    try:
        if path == "-":
            text = sys.stdin.read()
        else:
            with open(path, "r", encoding="utf-8") as f:
                text = f.read()
    except (OSError, UnicodeDecodeError) as e:
        raise CoalesceError(f"cannot read {path}: {e}") from e

    samples = load_samples_jsonl(text)
    grouped = coalesce_by_target(samples, timedelta(seconds=gap_seconds))
    incidents = [i for group in grouped.values() for i in group]

    if dump_json:
        print(json.dumps(incidents_to_json_dict(incidents), indent=2, sort_keys=False))
        return

    if not incidents:
        print(f"✅ No incidents ({len(samples)} failure sample(s))")
        return

    print(f"📊 {len(incidents)} incident(s) from {len(samples)} failure sample(s), gap={gap_seconds}s:\n")
    for target, group in grouped.items():
        for incident in group:
            start = format_timestamp_for_display(incident.start.isoformat())
            end = format_timestamp_for_display(incident.end.isoformat())
            print(f"  {target}  {start} -> {end}  ({incident.duration_seconds}s)  {incident.error}")


def run_once(run_id: str) -> None:
    """Run every diagnosis unit once under `run_id` and export the bundle."""
    import json

    from nodescope.app import build_orchestrator
    from nodescope.config import load_agent_config

    orchestrator = build_orchestrator(load_agent_config())
    report = orchestrator.run_once(run_id)
    print(json.dumps(report.summary(), indent=2, sort_keys=False))


def serve() -> None:
    from nodescope.app import serve as serve_forever
    from nodescope.config import load_agent_config

    serve_forever(load_agent_config())


def main(argv: Optional[List[str]] = None) -> int:
    """CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Run node diagnostics when the run ID changes and export the results",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Watch the run ID (file or ConfigMap) and run diagnostics on every change
  python main.py --serve

  # Run all diagnosis units once
  python main.py --run-once manual-001

  # Coalesce probe failure samples into incidents
  python main.py --coalesce samples.jsonl --gap-seconds 5
        """,
    )
    parser.add_argument("--serve", action="store_true", help="Watch the run ID and run diagnostics on every change")
    parser.add_argument("--run-once", metavar="RUN_ID", help="Run all diagnosis units once and export the bundle")
    parser.add_argument("--coalesce", metavar="FILE", help="Coalesce a JSONL file of probe failures ('-' for stdin)")
    parser.add_argument(
        "--gap-seconds", type=float, default=5.0, help="Gap threshold for --coalesce in seconds (default: 5)"
    )
    parser.add_argument("--dump-json", action="store_true", help="Print --coalesce output as JSON")

    args = parser.parse_args(argv)

    from nodescope.errors import CoalesceError, ConfigError, FatalRunError

    try:
        if args.coalesce:
            coalesce_file(args.coalesce, args.gap_seconds, dump_json=args.dump_json)
            return 0

        if args.run_once:
            run_once(args.run_once)
            return 0

        if args.serve:
            serve()
            return 0

        parser.print_help()
        return 0

    except (FatalRunError, ConfigError, CoalesceError) as e:
        logger.error(f"Fatal: {e}")
        print(f"❌ Fatal: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
