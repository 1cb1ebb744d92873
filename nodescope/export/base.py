from __future__ import annotations

from typing import Protocol, runtime_checkable

from nodescope.core.models import ArtifactBundle


@runtime_checkable
class Exporter(Protocol):
    """
    Export destination.

    Both methods raise ExportError on failure. Keys are `<run_id>/<artifact name>` for
    bundles; archive names are passed through as given.
    """

    name: str

    def export_bundle(self, bundle: ArtifactBundle) -> None: ...

    def export_archive(self, name: str, content: bytes) -> None: ...


def bundle_key(bundle: ArtifactBundle, artifact_name: str) -> str:
    return f"{bundle.run_id.strip('/')}/{artifact_name.lstrip('/')}"
