"""Run orchestration (one run per trigger).

triggered -> executing -> collecting -> exporting -> completed | fatal_aborted

Unit failures are absorbed: they are logged, recorded in the report, and whatever the
unit produced is still exported. Only prerequisite failures and a bundle that no
destination accepted abort the run (FatalRunError).
"""

from __future__ import annotations

import logging
from typing import Callable, List, Optional, Sequence

from nodescope.core.models import ArtifactBundle, ExportResult, RunReport, RunState
from nodescope.errors import ConfigError, FatalRunError
from nodescope.export.archive import build_zip
from nodescope.export.base import Exporter
from nodescope.scheduler import TaskScheduler
from nodescope.units.base import DiagnosisUnit

logger = logging.getLogger(__name__)

Prerequisite = Callable[[], None]


class Orchestrator:
    def __init__(
        self,
        units: Sequence[DiagnosisUnit],
        exporters: Sequence[Exporter],
        *,
        scheduler: Optional[TaskScheduler] = None,
        prerequisites: Sequence[Prerequisite] = (),
        archive_name: Optional[str] = "archive.zip",
    ) -> None:
        names = [str(getattr(u, "name", "") or "") for u in units]
        if any(not n or "/" in n for n in names):
            raise ConfigError(f"diagnosis unit names must be non-empty and contain no '/': {names}")
        dupes = sorted({n for n in names if names.count(n) > 1})
        if dupes:
            # Unit names are artifact namespaces; sharing one is a configuration bug.
            raise ConfigError(f"duplicate diagnosis unit name(s): {', '.join(dupes)}")

        self.units: List[DiagnosisUnit] = list(units)
        self.exporters: List[Exporter] = list(exporters)
        self.scheduler = scheduler or TaskScheduler()
        self.prerequisites: List[Prerequisite] = list(prerequisites)
        self.archive_name = archive_name

    def _transition(self, report: RunReport, state: RunState) -> None:
        report.state = state
        logger.info(f"Run {report.run_id}: {state.value}")

    def _abort(self, report: RunReport, message: str, cause: Optional[BaseException] = None) -> FatalRunError:
        report.error = message
        self._transition(report, RunState.FATAL_ABORTED)
        return FatalRunError(report.run_id, message, cause=cause)

    def run_once(self, run_id: str) -> RunReport:
        """
        Execute every unit, collect all artifacts, and export them.

        Returns the RunReport on completion (even if some units failed).
        Raises FatalRunError when prerequisites fail or no destination accepts the bundle.
        """
        report = RunReport(run_id=run_id)
        logger.info(f"Run {run_id}: triggered ({len(self.units)} unit(s), {len(self.exporters)} exporter(s))")

        if not self.exporters:
            raise self._abort(report, "no export destination configured")
        for check in self.prerequisites:
            try:
                check()
            except Exception as e:
                raise self._abort(report, f"prerequisite {getattr(check, '__name__', check)} failed: {e}", e) from e

        self._transition(report, RunState.EXECUTING)
        outcomes = self.scheduler.run_all(self.units, run_id=run_id)
        report.outcomes = outcomes
        for outcome in outcomes:
            if not outcome.ok:
                logger.warning(
                    f"Run {run_id}: unit {outcome.unit} {outcome.status}: {outcome.error} "
                    f"({len(outcome.artifacts)} partial artifact(s) kept)"
                )

        self._transition(report, RunState.COLLECTING)
        try:
            bundle = ArtifactBundle.from_outcomes(run_id, outcomes)
        except Exception as e:
            raise self._abort(report, f"cannot assemble artifact bundle: {e}", e) from e
        report.artifact_count = len(bundle)

        self._transition(report, RunState.EXPORTING)
        report.exports = self._export_bundle(bundle)
        if not any(r.ok for r in report.exports):
            errors = "; ".join(f"{r.destination}: {r.error}" for r in report.exports)
            raise self._abort(report, f"bundle export failed on every destination ({errors})")

        if self.archive_name:
            report.archive_exports = self._export_archive(bundle)

        self._transition(report, RunState.COMPLETED)
        failed = [o.unit for o in outcomes if not o.ok]
        logger.info(
            f"Run {run_id}: exported {report.artifact_count} artifact(s); "
            f"{len(outcomes) - len(failed)}/{len(outcomes)} unit(s) succeeded"
            + (f" (failed: {', '.join(failed)})" if failed else "")
        )
        return report

    def _export_bundle(self, bundle: ArtifactBundle) -> List[ExportResult]:
        results: List[ExportResult] = []
        for exporter in self.exporters:
            dest = str(getattr(exporter, "name", exporter.__class__.__name__))
            try:
                exporter.export_bundle(bundle)
                results.append(ExportResult(destination=dest, ok=True))
            except Exception as e:
                logger.error(f"Run {bundle.run_id}: export to {dest} failed: {e}")
                results.append(ExportResult(destination=dest, ok=False, error=str(e)))
        return results

    def _export_archive(self, bundle: ArtifactBundle) -> List[ExportResult]:
        try:
            content = build_zip(bundle)
        except Exception as e:
            logger.error(f"Run {bundle.run_id}: could not zip bundle: {e}")
            return []

        name = f"{bundle.run_id}/{self.archive_name}"
        results: List[ExportResult] = []
        for exporter in self.exporters:
            dest = str(getattr(exporter, "name", exporter.__class__.__name__))
            try:
                exporter.export_archive(name, content)
                results.append(ExportResult(destination=dest, ok=True))
            except Exception as e:
                logger.error(f"Run {bundle.run_id}: could not export archive to {dest}: {e}")
                results.append(ExportResult(destination=dest, ok=False, error=str(e)))
        return results
