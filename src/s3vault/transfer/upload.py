"""Resumable chunked upload.

This module provides:
- SessionUploader: Uploads a file as a multipart session, resuming from
  the local manifest when one exists for the target name.

The source is always read from the start: every chunk feeds the
whole-object hash, and chunks already recorded in the manifest are
re-hashed and compared instead of uploaded again. The source must
therefore be unchanged between runs.
"""

from __future__ import annotations

import hashlib
import logging
from pathlib import Path
from typing import TYPE_CHECKING

from s3vault.core.chunking import (
    DEFAULT_CHUNK_SIZE,
    MAX_PARTS,
    Chunk,
    count_chunks,
    iter_chunks,
)
from s3vault.core.types import ConfigurationError, PreconditionError, UploadState
from s3vault.storage import STORAGE_CLASSES, call_backend
from s3vault.transfer.pipeline import ChunkTransform
from s3vault.transfer.session import Part, Session
from s3vault.transfer.types import ProgressCallback, TransferProgress, UploadResult

if TYPE_CHECKING:
    from s3vault.storage import StorageBackend
    from s3vault.transfer.session import SessionStore

logger = logging.getLogger(__name__)


class SessionUploader:
    """Uploads files as resumable multipart sessions.

    The manifest is persisted right after the session is created and
    after every uploaded part, so an interrupted run resumes without
    uploading any recorded part twice.
    """

    def __init__(
        self,
        backend: StorageBackend,
        store: SessionStore,
        prefix: str = "",
        encryption_key: bytes | None = None,
        progress_callback: ProgressCallback | None = None,
    ) -> None:
        """Initialize the uploader.

        Args:
            backend: Storage backend receiving the parts.
            store: Manifest store for session state.
            prefix: Key prefix prepended to the source file name.
            encryption_key: 32-byte AES key (required for encrypted sessions).
            progress_callback: Optional callback for progress updates.
        """
        self._backend = backend
        self._store = store
        self._prefix = prefix
        self._key = encryption_key
        self._progress_callback = progress_callback
        self.state = UploadState.INIT

    async def upload(
        self,
        source: Path,
        name: str | None = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
        compression_enabled: bool = False,
        encryption_enabled: bool = True,
        storage_class: str = "STANDARD",
    ) -> UploadResult:
        """Create or resume the upload of a file.

        When resuming, the chunk size and transform flags recorded in the
        manifest are used and the corresponding arguments are ignored.

        Args:
            source: File to upload.
            name: Target name (defaults to the file name).
            chunk_size: Chunk size in bytes for a new session.
            compression_enabled: Compress chunks (new session only).
            encryption_enabled: Encrypt chunks (new session only).
            storage_class: Storage tier (new session only).

        Returns:
            UploadResult describing the sealed session.

        Raises:
            ConfigurationError: Too many chunks, empty source, missing key.
            PreconditionError: Session already completed, source changed,
                or another transfer holds the target.
            BackendError: A backend call failed (the session stays resumable).
            OSError: The source could not be read.
        """
        self.state = UploadState.INIT
        source = Path(source)
        size = source.stat().st_size
        if size == 0:
            raise ConfigurationError(f"Refusing to upload empty file {source}")
        if storage_class not in STORAGE_CLASSES:
            raise ConfigurationError(f"Unknown storage class: {storage_class}")

        name = name or source.name

        with self._store.lock(name):
            resumed = self._store.exists(name)
            if resumed:
                session = self._resume(
                    name, size, chunk_size, compression_enabled, encryption_enabled
                )
            else:
                session = await self._create(
                    name,
                    source,
                    size,
                    chunk_size,
                    compression_enabled,
                    encryption_enabled,
                    storage_class,
                )

            transform = ChunkTransform.for_session(session, self._key)

            self.state = UploadState.STREAMING
            sha256, uploaded, skipped = await self._stream(session, source, size, transform)

            self.state = UploadState.FINALIZING
            await self._finalize(session, sha256)

        self.state = UploadState.DONE
        logger.info(f"Upload of {session.key} completed ({len(session.parts)} chunks)")

        return UploadResult(
            name=session.name,
            key=session.key,
            total_parts=len(session.parts),
            uploaded_parts=uploaded,
            skipped_parts=skipped,
            size=session.original_size,
            sha256=session.sha256,
            resumed=resumed,
        )

    async def _create(
        self,
        name: str,
        source: Path,
        size: int,
        chunk_size: int,
        compression_enabled: bool,
        encryption_enabled: bool,
        storage_class: str,
    ) -> Session:
        """Start a new session and persist its manifest."""
        self.state = UploadState.NEW

        num_chunks = count_chunks(size, chunk_size)
        if num_chunks > MAX_PARTS:
            raise ConfigurationError(
                f"The total number of chunks {num_chunks} exceeds the maximum amount "
                f"of {MAX_PARTS}, consider increasing the chunk size"
            )

        # Fail on a missing key before the backend is contacted
        ChunkTransform(compression_enabled, encryption_enabled, self._key)

        key = self._prefix + source.name
        logger.info(f"Creating new upload session for {key}")
        upload_id = await call_backend(
            "create_session", self._backend.create_session(key, storage_class)
        )

        session = Session(
            name=name,
            key=key,
            prefix=self._prefix,
            chunk_size=chunk_size,
            upload_id=upload_id,
            compression_enabled=compression_enabled,
            encryption_enabled=encryption_enabled,
            storage_class=storage_class,
        )
        self._store.save(session)
        return session

    def _resume(
        self,
        name: str,
        size: int,
        chunk_size: int,
        compression_enabled: bool,
        encryption_enabled: bool,
    ) -> Session:
        """Load an existing session and check it can continue."""
        self.state = UploadState.RESUMED

        session = self._store.load(name)
        if session.done:
            raise PreconditionError(f"Backup {name} is already completed")

        logger.info(
            f"Resuming upload of {session.key}: {len(session.parts)} chunks already uploaded"
        )

        if chunk_size != session.chunk_size:
            logger.warning(
                f"Ignoring chunk size {chunk_size}, session uses {session.chunk_size}"
            )
        if (compression_enabled, encryption_enabled) != (
            session.compression_enabled,
            session.encryption_enabled,
        ):
            logger.warning(
                "Ignoring compression/encryption options, session uses "
                f"compression={session.compression_enabled} "
                f"encryption={session.encryption_enabled}"
            )

        num_chunks = count_chunks(size, session.chunk_size)
        if num_chunks < len(session.parts):
            raise PreconditionError(
                f"Source has {num_chunks} chunks but {len(session.parts)} are already "
                f"uploaded for {name}; the file changed since the upload started"
            )
        if num_chunks > MAX_PARTS:
            raise ConfigurationError(
                f"The total number of chunks {num_chunks} exceeds the maximum amount "
                f"of {MAX_PARTS}"
            )
        return session

    async def _stream(
        self,
        session: Session,
        source: Path,
        size: int,
        transform: ChunkTransform,
    ) -> tuple[str, int, int]:
        """Read the source and upload every chunk not yet recorded.

        Returns:
            (whole-object hash, uploaded chunk count, skipped chunk count)
        """
        hasher = hashlib.sha256()
        total_chunks = count_chunks(size, session.chunk_size)
        bytes_done = 0
        uploaded = 0
        skipped = 0

        with open(source, "rb") as f:
            for chunk in iter_chunks(f, session.chunk_size):
                hasher.update(chunk.data)
                bytes_done += chunk.size

                is_recorded = session.has_part(chunk.index)
                if is_recorded:
                    self._check_unchanged(session.get_part(chunk.index), chunk)
                    skipped += 1
                    logger.debug(f"Chunk {chunk.index} already uploaded, skipping")
                else:
                    if chunk.index > MAX_PARTS:
                        raise ConfigurationError(
                            f"Source {source} grew past the maximum of {MAX_PARTS} parts "
                            "since the upload started"
                        )
                    part = await self._upload_chunk(session, chunk, transform)
                    uploaded += 1
                    logger.info(
                        f"Uploaded chunk={chunk.index}\torig-size={part.original_size}\t"
                        f"processed-size={part.processed_size}\t"
                        f"progress={bytes_done / size * 100:.2f}%"
                    )

                if self._progress_callback:
                    self._progress_callback(TransferProgress(
                        name=session.name,
                        index=chunk.index,
                        total_chunks=total_chunks,
                        bytes_transferred=bytes_done,
                        total_bytes=size,
                        operation="upload",
                        skipped=is_recorded,
                    ))

        return hasher.hexdigest(), uploaded, skipped

    async def _upload_chunk(
        self,
        session: Session,
        chunk: Chunk,
        transform: ChunkTransform,
    ) -> Part:
        """Transform and upload one chunk, then record it durably."""
        processed = transform.forward(chunk.data)

        etag = await call_backend(
            "upload_part",
            self._backend.upload_part(
                session.upload_id, session.key, chunk.index, processed.data
            ),
        )

        part = Part(
            index=chunk.index,
            etag=etag,
            original_size=processed.original_size,
            processed_size=processed.processed_size,
            original_sha256=processed.original_sha256,
            processed_sha256=processed.processed_sha256,
        )
        session.add_part(part)
        self._store.save(session)
        return part

    @staticmethod
    def _check_unchanged(part: Part, chunk: Chunk) -> None:
        """Ensure a recorded chunk still matches the source."""
        if chunk.size != part.original_size or chunk.hash != part.original_sha256:
            raise PreconditionError(
                f"Chunk {chunk.index} of the source changed since it was uploaded: "
                f"expected size={part.original_size} sha256={part.original_sha256}, "
                f"got size={chunk.size} sha256={chunk.hash}"
            )

    async def _finalize(self, session: Session, sha256: str) -> None:
        """Complete the backend session and seal the manifest."""
        logger.info(f"Completing upload of {session.key}")
        await call_backend(
            "complete_session",
            self._backend.complete_session(
                session.upload_id, session.key, session.completed_parts()
            ),
        )
        session.seal(sha256)
        self._store.save(session)
