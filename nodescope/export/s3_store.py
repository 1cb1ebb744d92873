"""S3 export destination for run bundles and archives."""

from __future__ import annotations

import logging
import mimetypes
import threading
from dataclasses import dataclass
from typing import Any, Optional

from nodescope.core.models import ArtifactBundle
from nodescope.errors import ExportError, WiringError
from nodescope.export.base import bundle_key

logger = logging.getLogger(__name__)

_s3_client = None
_s3_client_lock = threading.Lock()


def _get_s3_client():
    """Return a cached boto3 S3 client (thread-safe lazy init)."""
    global _s3_client
    if _s3_client is not None:
        return _s3_client
    with _s3_client_lock:
        if _s3_client is not None:
            return _s3_client
        import boto3  # type: ignore[import-not-found]

        _s3_client = boto3.client("s3")
        return _s3_client


def _content_type(key: str) -> str:
    if key.endswith(".jsonl"):
        return "application/x-ndjson"
    guessed, _ = mimetypes.guess_type(key)
    return guessed or "application/octet-stream"


def _client_error_code(e: Exception) -> Optional[str]:
    try:
        from botocore.exceptions import ClientError  # type: ignore[import-not-found]
    except Exception:
        return None
    if isinstance(e, ClientError):
        return str(e.response.get("Error", {}).get("Code") or "") or None
    return None


@dataclass
class S3Exporter:
    bucket: str
    prefix: str = ""
    name: str = "s3"
    client: Any = None

    def __post_init__(self) -> None:
        self.prefix = (self.prefix or "").strip("/")
        # Uses ambient AWS auth (IRSA in-cluster, env credentials locally, etc.)
        if self.client is None:
            self.client = _get_s3_client()

    def key(self, rel_key: str) -> str:
        rel_key = rel_key.lstrip("/")
        if self.prefix:
            return f"{self.prefix}/{rel_key}"
        return rel_key

    def check_access(self) -> None:
        """Run prerequisite: the bucket must be reachable. Raises WiringError."""
        try:
            self.client.head_bucket(Bucket=self.bucket)
        except Exception as e:
            code = _client_error_code(e)
            detail = f"{code}: {e}" if code else str(e)
            raise WiringError(f"cannot reach s3://{self.bucket}: {detail}") from e

    def _put(self, rel_key: str, content: bytes) -> None:
        key = self.key(rel_key)
        try:
            self.client.put_object(Bucket=self.bucket, Key=key, Body=content, ContentType=_content_type(key))
        except Exception as e:
            code = _client_error_code(e)
            detail = f"{code}: {e}" if code else str(e)
            raise ExportError(f"{self.name}: upload s3://{self.bucket}/{key} failed: {detail}") from e

    def export_bundle(self, bundle: ArtifactBundle) -> None:
        for artifact in bundle.artifacts:
            self._put(bundle_key(bundle, artifact.name), artifact.content)
        logger.info(f"Uploaded {len(bundle)} artifact(s) to s3://{self.bucket}/{self.key(bundle.run_id)}")

    def export_archive(self, name: str, content: bytes) -> None:
        self._put(name, content)
        logger.info(f"Uploaded archive to s3://{self.bucket}/{self.key(name)}")
