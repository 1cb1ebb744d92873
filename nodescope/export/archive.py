"""Zip archive assembly for a run bundle."""

from __future__ import annotations

import io
import zipfile

from nodescope.core.models import ArtifactBundle

# Fixed entry timestamp so identical bundles produce identical archives.
_ZIP_EPOCH = (1980, 1, 1, 0, 0, 0)


def build_zip(bundle: ArtifactBundle) -> bytes:
    buf = io.BytesIO()
    with zipfile.ZipFile(buf, mode="w", compression=zipfile.ZIP_DEFLATED) as zf:
        for artifact in bundle.artifacts:
            info = zipfile.ZipInfo(filename=artifact.name, date_time=_ZIP_EPOCH)
            info.compress_type = zipfile.ZIP_DEFLATED
            info.external_attr = 0o644 << 16
            zf.writestr(info, artifact.content)
    return buf.getvalue()
