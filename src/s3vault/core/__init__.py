"""Core module - Shared crypto, compression, chunking and configuration."""

from s3vault.core.chunking import (
    DEFAULT_CHUNK_SIZE,
    MAX_PARTS,
    Chunk,
    count_chunks,
    iter_chunks,
)
from s3vault.core.compression import compress_chunk, decompress_chunk
from s3vault.core.config import Profile, ProfileStore, parse_size
from s3vault.core.crypto import (
    decode_key,
    decrypt_chunk,
    encode_key,
    encrypt_chunk,
    generate_key,
    get_chunk_hash,
)
from s3vault.core.types import (
    BackendError,
    ConfigurationError,
    IntegrityError,
    PreconditionError,
    TransferError,
    UploadState,
)

__all__ = [
    # Chunking
    "DEFAULT_CHUNK_SIZE",
    "MAX_PARTS",
    "Chunk",
    "count_chunks",
    "iter_chunks",
    # Compression
    "compress_chunk",
    "decompress_chunk",
    # Config
    "Profile",
    "ProfileStore",
    "parse_size",
    # Crypto
    "decode_key",
    "decrypt_chunk",
    "encode_key",
    "encrypt_chunk",
    "generate_key",
    "get_chunk_hash",
    # Types
    "BackendError",
    "ConfigurationError",
    "IntegrityError",
    "PreconditionError",
    "TransferError",
    "UploadState",
]
