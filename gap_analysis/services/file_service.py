"""
File Service — local filesystem storage for raw uploads.
Files are addressed by (bucket, path), mirroring the object-store layout
the document store uses in production.
"""

from __future__ import annotations

import logging
from pathlib import Path

from gap_analysis.config import get_settings
from gap_analysis.errors import DocumentNotFoundError

logger = logging.getLogger(__name__)


class FileService:
    """Local bucket/path file storage."""

    def __init__(self, base_path: str | Path | None = None):
        self.base_path = Path(base_path or get_settings().local_storage_path)
        self.base_path.mkdir(parents=True, exist_ok=True)

    def _resolve(self, bucket: str, path: str) -> Path:
        root = (self.base_path / bucket).resolve()
        target = (root / path).resolve()
        if root != target and root not in target.parents:
            raise ValueError(f"Path escapes bucket '{bucket}': {path}")
        return target

    def save_file(self, bucket: str, path: str, file_bytes: bytes) -> str:
        """Save a file and return its bucket-relative path."""
        target = self._resolve(bucket, path)
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_bytes(file_bytes)
        logger.info(f"Saved file to {target}")
        return path

    def load_file(self, bucket: str, path: str) -> bytes:
        """Load a file's content."""
        target = self._resolve(bucket, path)
        if not target.is_file():
            raise DocumentNotFoundError(f"File not found: {bucket}/{path}")
        return target.read_bytes()

    def list_files(self, bucket: str, prefix: str = "") -> list[str]:
        """List files under a prefix."""
        root = self._resolve(bucket, "")
        base = self._resolve(bucket, prefix)
        if not base.exists():
            return []
        return sorted(
            p.relative_to(root).as_posix()
            for p in base.rglob("*")
            if p.is_file()
        )
