"""Verified download of completed sessions.

This module provides:
- SessionDownloader: Streams a sealed session's object, verifies and
  reverses every part, and reassembles the original file atomically.
"""

from __future__ import annotations

import contextlib
import hashlib
import logging
import os
from pathlib import Path
from typing import TYPE_CHECKING

from s3vault.core.types import IntegrityError, PreconditionError
from s3vault.storage import call_backend
from s3vault.transfer.pipeline import ChunkTransform
from s3vault.transfer.types import DownloadResult, ProgressCallback, TransferProgress

if TYPE_CHECKING:
    from s3vault.storage import ReadStream, StorageBackend
    from s3vault.transfer.session import Part, SessionStore

logger = logging.getLogger(__name__)


class SessionDownloader:
    """Downloads completed sessions with per-chunk and whole-object checks.

    Downloads are not resumable: any failure discards the partial output
    and the next run starts from the first byte.
    """

    def __init__(
        self,
        backend: StorageBackend,
        store: SessionStore,
        encryption_key: bytes | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the downloader.

        Args:
            backend: Storage backend holding the object.
            store: Manifest store for session state.
            encryption_key: 32-byte AES key (required for encrypted sessions).
            progress_callback: Optional callback for progress updates.
        """
        self._backend = backend
        self._store = store
        self._key = encryption_key
        self._progress_callback = progress_callback

    async def download(self, name: str, destination: Path) -> DownloadResult:
        """Download a completed session to a local file.

        The file is assembled in `<destination>.tmp` and renamed to
        `destination` only after every check passed.

        Args:
            name: Target name of the session.
            destination: Local path to write.

        Returns:
            DownloadResult with local metadata.

        Raises:
            ConfigurationError: No session with that name.
            PreconditionError: The session is not completed.
            IntegrityError: Any verification failure or truncated stream.
            BackendError: A backend call failed.
        """
        session = self._store.load(name)
        if not session.done:
            raise PreconditionError(f"Backup {name} is not completed")

        transform = ChunkTransform.for_session(session, self._key)
        total_size = session.original_size

        destination = Path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = destination.with_name(destination.name + ".tmp")

        logger.info(f"Starting download of {session.key}")

        try:
            hasher = hashlib.sha256()
            downloaded_size = 0

            stream = await call_backend(
                "open_read_stream", self._backend.open_read_stream(session.key)
            )
            async with stream:
                with open(tmp_path, "wb") as f:
                    for part in sorted(session.parts, key=lambda p: p.index):
                        data = await self._read_part(stream, part)
                        data = transform.reverse(data, part)

                        f.write(data)
                        hasher.update(data)
                        downloaded_size += len(data)

                        logger.info(
                            f"Downloaded chunk={part.index}\tsize={part.original_size}\t"
                            f"progress={downloaded_size / max(total_size, 1) * 100:.2f}%"
                        )
                        if self._progress_callback:
                            self._progress_callback(TransferProgress(
                                name=session.name,
                                index=part.index,
                                total_chunks=len(session.parts),
                                bytes_transferred=downloaded_size,
                                total_bytes=total_size,
                                operation="download",
                            ))

                    f.flush()
                    os.fsync(f.fileno())

                trailing = await call_backend("read", stream.read(1))
                if trailing:
                    raise IntegrityError(
                        f"Object {session.key} is longer than its recorded parts"
                    )

            sha256 = hasher.hexdigest()
            if sha256 != session.sha256:
                raise IntegrityError(
                    "backup checksum mismatch",
                    field="sha256",
                    expected=session.sha256,
                    actual=sha256,
                )

            os.replace(tmp_path, destination)

        except Exception:
            # Clean up temp file on failure
            if tmp_path.exists():
                with contextlib.suppress(OSError):
                    tmp_path.unlink()
            raise

        logger.info(f"Backup {name} successfully downloaded to {destination}")

        return DownloadResult(
            name=session.name,
            key=session.key,
            local_path=destination,
            total_parts=len(session.parts),
            size=downloaded_size,
            sha256=sha256,
        )

    @staticmethod
    async def _read_part(stream: ReadStream, part: Part) -> bytes:
        """Read exactly `part.processed_size` bytes from the stream."""
        buf = bytearray()
        while len(buf) < part.processed_size:
            block = await call_backend("read", stream.read(part.processed_size - len(buf)))
            if not block:
                raise IntegrityError(
                    "stream ended early",
                    index=part.index,
                    field="processed_size",
                    expected=part.processed_size,
                    actual=len(buf),
                )
            buf.extend(block)
        return bytes(buf)
