"""Transfer module - Session manifests, chunk pipeline, upload and download.

This package provides:
- Session, Part, SessionStore, SessionLock: Persisted transfer state
- ChunkTransform: Per-chunk compression/encryption and verification
- SessionUploader: Resumable chunked upload
- SessionDownloader: Verified download and reassembly
"""

from s3vault.transfer.download import SessionDownloader
from s3vault.transfer.pipeline import ChunkTransform, ProcessedChunk
from s3vault.transfer.session import Part, Session, SessionLock, SessionStore
from s3vault.transfer.types import (
    DownloadResult,
    ProgressCallback,
    TransferProgress,
    UploadResult,
)
from s3vault.transfer.upload import SessionUploader

__all__ = [
    "ChunkTransform",
    "DownloadResult",
    "Part",
    "ProcessedChunk",
    "ProgressCallback",
    "Session",
    "SessionDownloader",
    "SessionLock",
    "SessionStore",
    "SessionUploader",
    "TransferProgress",
    "UploadResult",
]
