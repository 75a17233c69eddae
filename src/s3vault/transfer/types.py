"""Progress reports and run summaries returned by the orchestrators."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from pathlib import Path


@dataclass
class TransferProgress:
    """Progress information for a transfer."""

    name: str
    index: int
    total_chunks: int
    bytes_transferred: int
    total_bytes: int
    operation: str  # "upload" or "download"
    skipped: bool = False

    @property
    def percent(self) -> float:
        """Get progress percentage (by original bytes)."""
        if self.total_bytes == 0:
            return 100.0
        return (self.bytes_transferred / self.total_bytes) * 100


ProgressCallback = Callable[[TransferProgress], None]


@dataclass
class UploadResult:
    """Result of an upload run."""

    name: str
    key: str
    total_parts: int
    uploaded_parts: int
    skipped_parts: int
    size: int
    sha256: str
    resumed: bool


@dataclass
class DownloadResult:
    """Result of a download run."""

    name: str
    key: str
    local_path: Path
    total_parts: int
    size: int
    sha256: str
