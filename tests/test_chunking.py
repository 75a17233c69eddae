"""Tests for fixed-size chunking."""

import hashlib
import io
import os

import pytest

from s3vault.core.chunking import (
    DEFAULT_CHUNK_SIZE,
    MAX_PARTS,
    Chunk,
    count_chunks,
    iter_chunks,
)


class TrickleStream(io.BytesIO):
    """Stream that returns at most 7 bytes per read."""

    def read(self, size: int | None = -1) -> bytes:
        if size is None or size < 0:
            size = 7
        return super().read(min(size, 7))


class TestConstants:
    """Tests for chunking constants."""

    def test_constants(self) -> None:
        """Verify the part limit and default chunk size."""
        assert MAX_PARTS == 10_000
        assert DEFAULT_CHUNK_SIZE == 100_000_000


class TestCountChunks:
    """Tests for count_chunks()."""

    @pytest.mark.parametrize(
        ("size", "chunk_size", "expected"),
        [
            (0, 100, 0),
            (1, 100, 1),
            (100, 100, 1),
            (101, 100, 2),
            (250, 100, 3),
            (300, 100, 3),
        ],
    )
    def test_ceil_division(self, size: int, chunk_size: int, expected: int) -> None:
        """Chunk count should be ceil(size / chunk_size)."""
        assert count_chunks(size, chunk_size) == expected

    def test_rejects_non_positive_chunk_size(self) -> None:
        """Chunk size must be positive."""
        with pytest.raises(ValueError):
            count_chunks(10, 0)


class TestIterChunks:
    """Tests for iter_chunks()."""

    def test_250_bytes_in_100_byte_chunks(self) -> None:
        """A 250-byte source yields chunks of 100, 100 and 50 bytes."""
        data = os.urandom(250)
        chunks = list(iter_chunks(io.BytesIO(data), 100))

        assert [c.size for c in chunks] == [100, 100, 50]
        assert [c.index for c in chunks] == [1, 2, 3]
        assert [c.offset for c in chunks] == [0, 100, 200]

    def test_exact_multiple_stops_on_empty_read(self) -> None:
        """An exact multiple of the chunk size yields no trailing empty chunk."""
        chunks = list(iter_chunks(io.BytesIO(b"x" * 300), 100))
        assert [c.size for c in chunks] == [100, 100, 100]

    def test_empty_stream_produces_no_chunks(self) -> None:
        """An empty source yields nothing."""
        assert list(iter_chunks(io.BytesIO(b""), 100)) == []

    def test_chunks_concatenate_to_original(self) -> None:
        """Concatenating all chunks should produce the original data."""
        data = os.urandom(10_000)
        chunks = list(iter_chunks(io.BytesIO(data), 333))
        assert b"".join(c.data for c in chunks) == data

    def test_short_reads_are_filled(self) -> None:
        """Streams returning short reads still yield full windows."""
        data = os.urandom(250)
        chunks = list(iter_chunks(TrickleStream(data), 100))
        assert [c.size for c in chunks] == [100, 100, 50]
        assert b"".join(c.data for c in chunks) == data

    def test_chunk_hash(self) -> None:
        """Chunk.hash should be the SHA-256 of its data."""
        chunk = Chunk(index=1, offset=0, data=b"abc")
        assert chunk.hash == hashlib.sha256(b"abc").hexdigest()
        assert chunk.size == 3
