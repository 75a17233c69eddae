"""Fixed-size chunking for s3vault.

Files are split into equal windows of the session chunk size (the last
one may be shorter). Each window becomes one part of a multipart upload,
so chunk indices are 1-based like S3 part numbers.
"""

from __future__ import annotations

from collections.abc import Iterator
from dataclasses import dataclass
from typing import BinaryIO

from s3vault.core.crypto import get_chunk_hash

# S3 accepts at most 10,000 parts per multipart upload
MAX_PARTS = 10_000

DEFAULT_CHUNK_SIZE = 100 * 1000 * 1000  # 100 MB


@dataclass
class Chunk:
    """Represents a chunk of data read from a source file."""

    index: int
    offset: int
    data: bytes

    @property
    def size(self) -> int:
        """Return the size of this chunk in bytes."""
        return len(self.data)

    @property
    def hash(self) -> str:
        """Return the SHA-256 hash of the chunk data."""
        return get_chunk_hash(self.data)


def count_chunks(size: int, chunk_size: int) -> int:
    """Return how many chunks a source of `size` bytes splits into.

    Args:
        size: Source size in bytes.
        chunk_size: Chunk size in bytes.

    Returns:
        ceil(size / chunk_size).

    Raises:
        ValueError: If chunk_size is not positive.
    """
    if chunk_size <= 0:
        raise ValueError(f"Chunk size must be positive, got {chunk_size}")
    return -(-size // chunk_size)


def iter_chunks(stream: BinaryIO, chunk_size: int) -> Iterator[Chunk]:
    """Read a stream sequentially in windows of `chunk_size` bytes.

    Iteration stops after a short read (end of source) or on a
    zero-byte read when the source length is an exact multiple of
    the chunk size.

    Args:
        stream: Binary stream positioned at the start of the source.
        chunk_size: Window size in bytes.

    Yields:
        Chunk objects with 1-based index, offset and data.
    """
    if chunk_size <= 0:
        raise ValueError(f"Chunk size must be positive, got {chunk_size}")

    index = 1
    offset = 0
    while True:
        data = _read_window(stream, chunk_size)
        if not data:
            return

        yield Chunk(index=index, offset=offset, data=data)

        if len(data) < chunk_size:
            return
        index += 1
        offset += len(data)


def _read_window(stream: BinaryIO, size: int) -> bytes:
    """Read up to `size` bytes, retrying on short reads until EOF."""
    buf = bytearray()
    while len(buf) < size:
        block = stream.read(size - len(buf))
        if not block:
            break
        buf.extend(block)
    return bytes(buf)
