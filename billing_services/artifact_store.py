"""
Artifact store interface and the filesystem implementation.

An artifact store holds rendered documents under bucket-relative paths and
returns canonical ``<scheme>://<bucket>/<path>`` references.
"""

from __future__ import annotations

import os
import tempfile
from datetime import timedelta
from pathlib import Path
from typing import Protocol, runtime_checkable
from urllib.parse import urlencode

from billing_kernel.domain.clock import Clock, SystemClock
from billing_kernel.exceptions import UnsafeArtifactPathError
from billing_kernel.logging_config import get_logger
from billing_services.artifact_paths import ensure_safe_path

logger = get_logger("services.artifact_store")


@runtime_checkable
class ArtifactStore(Protocol):
    """Object storage as seen by the document orchestrator."""

    def delete(self, path: str) -> bool:
        """Delete the object at ``path``; return whether it existed."""
        ...

    def put(self, data: bytes, path: str, content_type: str) -> str:
        """Store ``data`` at ``path`` and return its canonical reference."""
        ...

    def access_url(self, path: str, expires_in: int) -> str:
        """Short-lived URL for reading the object at ``path``."""
        ...


class FilesystemArtifactStore:
    """
    Stores artifacts under ``<root>/<bucket>/<path>``.

    Writes go to a temporary file in the target directory and are moved into
    place with ``os.replace`` so readers never see a partial document.
    """

    def __init__(
        self,
        root: str | Path,
        bucket: str,
        scheme: str = "file",
        clock: Clock | None = None,
    ):
        self._base = (Path(root) / bucket).resolve()
        self._bucket = bucket
        self._scheme = scheme
        self._clock = clock or SystemClock()

    @property
    def reference_prefix(self) -> str:
        return f"{self._scheme}://{self._bucket}/"

    def _full_path(self, path: str) -> Path:
        target = (self._base / ensure_safe_path(path)).resolve()
        if not target.is_relative_to(self._base):
            raise UnsafeArtifactPathError(path)
        return target

    def delete(self, path: str) -> bool:
        target = self._full_path(path)
        try:
            target.unlink()
        except FileNotFoundError:
            return False
        logger.debug("artifact_deleted", extra={"path": path})
        return True

    def put(self, data: bytes, path: str, content_type: str) -> str:
        target = self._full_path(path)
        target.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp_name = tempfile.mkstemp(dir=target.parent, prefix=".upload-")
        try:
            with os.fdopen(fd, "wb") as fh:
                fh.write(data)
            os.replace(tmp_name, target)
        except OSError:
            Path(tmp_name).unlink(missing_ok=True)
            raise
        logger.info(
            "artifact_stored",
            extra={"path": path, "bytes": len(data), "content_type": content_type},
        )
        return f"{self.reference_prefix}{path}"

    def access_url(self, path: str, expires_in: int) -> str:
        target = self._full_path(path)
        expires_at = self._clock.now() + timedelta(seconds=expires_in)
        query = urlencode({"expires": int(expires_at.timestamp())})
        return f"{target.as_uri()}?{query}"
