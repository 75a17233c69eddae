"""Cryptographic functions for s3vault.

This module provides:
- Random 256-bit keys and their hex form (as stored in profiles)
- AES-256-GCM chunk encryption
- SHA-256 chunk hashing

Encrypted chunk layout: nonce (12 bytes) || ciphertext || tag (16 bytes).
A fresh nonce is drawn for every chunk, so the same plaintext never
encrypts to the same bytes twice.
"""

import hashlib
import os

from cryptography.exceptions import InvalidTag
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

KEY_SIZE = 32
NONCE_SIZE = 12
TAG_SIZE = 16

# Bytes added to every encrypted chunk
OVERHEAD = NONCE_SIZE + TAG_SIZE


def generate_key() -> bytes:
    """Return a new random AES-256 key."""
    return AESGCM.generate_key(bit_length=KEY_SIZE * 8)


def encode_key(key: bytes) -> str:
    return key.hex()


def decode_key(encoded: str) -> bytes:
    """Parse a key written by encode_key().

    Raises:
        ValueError: If the string is not hex or is not exactly 32 bytes long.
    """
    key = bytes.fromhex(encoded.strip())
    if len(key) != KEY_SIZE:
        raise ValueError(f"Encryption key must be {KEY_SIZE} bytes, got {len(key)}")
    return key


def encrypt_chunk(data: bytes, key: bytes) -> bytes:
    """Encrypt one chunk.

    Args:
        data: Chunk bytes (already compressed, if compression is on).
        key: 32-byte key.

    Returns:
        The nonce followed by the ciphertext and its tag,
        `len(data) + OVERHEAD` bytes in total.
    """
    nonce = os.urandom(NONCE_SIZE)
    return nonce + AESGCM(key).encrypt(nonce, data, None)


def decrypt_chunk(encrypted: bytes, key: bytes) -> bytes:
    """Decrypt and authenticate a chunk produced by encrypt_chunk().

    Raises:
        cryptography.exceptions.InvalidTag: If the chunk is too short to
            hold a nonce and tag, the key is wrong, or any byte was altered.
    """
    if len(encrypted) < OVERHEAD:
        raise InvalidTag()
    view = memoryview(encrypted)
    return AESGCM(key).decrypt(bytes(view[:NONCE_SIZE]), bytes(view[NONCE_SIZE:]), None)


def get_chunk_hash(data: bytes) -> str:
    """Hex SHA-256 of `data`, as recorded in session manifests."""
    return hashlib.sha256(data).hexdigest()
