"""Shared fixtures for s3vault tests."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from s3vault.storage import LocalFSBackend
from s3vault.transfer.session import SessionStore


@pytest.fixture
def key() -> bytes:
    """Generate a valid 32-byte key for testing."""
    return os.urandom(32)


@pytest.fixture
def backend(tmp_path: Path) -> LocalFSBackend:
    """Create a LocalFSBackend rooted in a temporary directory."""
    return LocalFSBackend(tmp_path / "bucket")


@pytest.fixture
def store(tmp_path: Path) -> SessionStore:
    """Create a SessionStore in a temporary directory."""
    return SessionStore(tmp_path / "backups")


@pytest.fixture
def source(tmp_path: Path) -> Path:
    """Create a 250-byte source file with distinct chunk contents."""
    path = tmp_path / "data.bin"
    path.write_bytes(bytes(range(250)))
    return path
