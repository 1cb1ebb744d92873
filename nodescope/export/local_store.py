"""Local filesystem export (development default when S3 is not configured)."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from pathlib import Path

from nodescope.core.models import ArtifactBundle
from nodescope.errors import ExportError
from nodescope.export.base import bundle_key

logger = logging.getLogger(__name__)


@dataclass
class LocalExporter:
    """Writes each artifact to `base_dir/<run_id>/<artifact name>`."""

    base_dir: str = "./diagnostics"
    name: str = "local"

    def __post_init__(self) -> None:
        self.base_dir = os.path.abspath(self.base_dir)

    def _path(self, rel_key: str) -> Path:
        rel_key = rel_key.lstrip("/")
        base = Path(self.base_dir)
        path = (base / rel_key).resolve()
        if base.resolve() not in path.parents:
            raise ExportError(f"refusing to write outside {self.base_dir}: {rel_key!r}")
        return path

    def _write(self, rel_key: str, content: bytes) -> Path:
        path = self._path(rel_key)
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            path.write_bytes(content)
        except OSError as e:
            raise ExportError(f"{self.name}: write {path} failed: {e}") from e
        return path

    def export_bundle(self, bundle: ArtifactBundle) -> None:
        for artifact in bundle.artifacts:
            self._write(bundle_key(bundle, artifact.name), artifact.content)
        logger.info(f"Exported {len(bundle)} artifact(s) to {Path(self.base_dir) / bundle.run_id}")

    def export_archive(self, name: str, content: bytes) -> None:
        path = self._write(name, content)
        logger.info(f"Exported archive to {path}")
