"""Chunk compression.

Chunks are compressed with gzip before encryption. The gzip header
timestamp is pinned so equal input always yields equal output.
"""

import gzip

COMPRESSION_LEVEL = 6


def compress_chunk(data: bytes) -> bytes:
    """Compress a chunk with gzip.

    Args:
        data: Raw chunk bytes.

    Returns:
        Gzip stream, byte-identical for identical input.
    """
    return gzip.compress(data, compresslevel=COMPRESSION_LEVEL, mtime=0)


def decompress_chunk(data: bytes) -> bytes:
    """Decompress a chunk produced by compress_chunk.

    Raises:
        gzip.BadGzipFile: If the header is not a gzip header.
        EOFError: If the stream is truncated.
        zlib.error: If the compressed payload is corrupt.
    """
    return gzip.decompress(data)
