"""Export destinations for run bundles and archives."""

from nodescope.export.archive import build_zip
from nodescope.export.base import Exporter
from nodescope.export.local_store import LocalExporter
from nodescope.export.s3_store import S3Exporter

__all__ = ["Exporter", "LocalExporter", "S3Exporter", "build_zip"]
