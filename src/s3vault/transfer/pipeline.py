"""Per-chunk transform and verification.

Upload direction: hash, compress, encrypt, hash again.
Download direction: verify, decrypt, decompress, verify again.

Compression runs before encryption because ciphertext does not
compress; the reverse transform undoes them in the opposite order.
"""

from __future__ import annotations

import gzip
import zlib
from dataclasses import dataclass
from typing import TYPE_CHECKING

from cryptography.exceptions import InvalidTag

from s3vault.core.compression import compress_chunk, decompress_chunk
from s3vault.core.crypto import decrypt_chunk, encrypt_chunk, get_chunk_hash
from s3vault.core.types import ConfigurationError, IntegrityError

if TYPE_CHECKING:
    from s3vault.transfer.session import Part, Session


@dataclass
class ProcessedChunk:
    """A chunk after the forward transform, ready to upload."""

    data: bytes
    original_size: int
    original_sha256: str
    processed_sha256: str

    @property
    def processed_size(self) -> int:
        return len(self.data)


class ChunkTransform:
    """Applies and reverses the chunk transform of one session."""

    def __init__(
        self,
        compression_enabled: bool,
        encryption_enabled: bool,
        key: bytes | None = None,
    ) -> None:
        """Initialize the transform.

        Args:
            compression_enabled: Gzip chunks before encryption.
            encryption_enabled: Encrypt chunks with AES-256-GCM.
            key: 32-byte key, required when encryption is enabled.

        Raises:
            ConfigurationError: If encryption is enabled without a valid key.
        """
        if encryption_enabled and (key is None or len(key) != 32):
            raise ConfigurationError("Encryption is enabled but no valid 32-byte key was given")
        self.compression_enabled = compression_enabled
        self._key = key if encryption_enabled else None

    @property
    def encryption_enabled(self) -> bool:
        return self._key is not None

    @classmethod
    def for_session(cls, session: Session, key: bytes | None) -> ChunkTransform:
        """Build the transform recorded in a session."""
        return cls(
            compression_enabled=session.compression_enabled,
            encryption_enabled=session.encryption_enabled,
            key=key if session.encryption_enabled else None,
        )

    def forward(self, data: bytes) -> ProcessedChunk:
        """Transform raw chunk bytes into the bytes sent to the backend."""
        original_sha256 = get_chunk_hash(data)
        processed = data

        if self.compression_enabled:
            processed = compress_chunk(processed)

        if self._key is not None:
            processed = encrypt_chunk(processed, self._key)

        return ProcessedChunk(
            data=processed,
            original_size=len(data),
            original_sha256=original_sha256,
            processed_sha256=get_chunk_hash(processed),
        )

    def reverse(self, data: bytes, part: Part) -> bytes:
        """Verify and undo the transform of a downloaded part.

        Args:
            data: Bytes read from the backend for this part.
            part: Recorded part the bytes should match.

        Returns:
            The original chunk bytes.

        Raises:
            IntegrityError: On any hash, size or authentication mismatch.
        """
        processed_sha256 = get_chunk_hash(data)
        if processed_sha256 != part.processed_sha256:
            raise IntegrityError(
                "processed checksum mismatch",
                index=part.index,
                field="processed_sha256",
                expected=part.processed_sha256,
                actual=processed_sha256,
            )

        if self._key is not None:
            try:
                data = decrypt_chunk(data, self._key)
            except InvalidTag as e:
                raise IntegrityError(
                    "decryption failed (wrong key or tampered data)", index=part.index
                ) from e

        if self.compression_enabled:
            try:
                data = decompress_chunk(data)
            except (gzip.BadGzipFile, EOFError, zlib.error) as e:
                raise IntegrityError(f"decompression failed: {e}", index=part.index) from e

        if len(data) != part.original_size:
            raise IntegrityError(
                "size mismatch",
                index=part.index,
                field="original_size",
                expected=part.original_size,
                actual=len(data),
            )

        original_sha256 = get_chunk_hash(data)
        if original_sha256 != part.original_sha256:
            raise IntegrityError(
                "checksum mismatch",
                index=part.index,
                field="original_sha256",
                expected=part.original_sha256,
                actual=original_sha256,
            )

        return data
