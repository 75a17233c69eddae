"""Tests for verified downloads."""

from __future__ import annotations

import hashlib
import os
from pathlib import Path
from unittest.mock import AsyncMock, patch

import pytest

from s3vault.core.types import (
    BackendError,
    ConfigurationError,
    IntegrityError,
    PreconditionError,
)
from s3vault.storage import LocalFSBackend
from s3vault.transfer.download import SessionDownloader
from s3vault.transfer.session import SessionStore
from s3vault.transfer.types import TransferProgress
from s3vault.transfer.upload import SessionUploader

MODES = [
    (False, False),
    (True, False),
    (False, True),
    (True, True),
]


async def upload_source(
    backend: LocalFSBackend,
    store: SessionStore,
    source: Path,
    key: bytes | None = None,
    compression: bool = False,
    encryption: bool = False,
) -> None:
    await SessionUploader(backend, store, encryption_key=key).upload(
        source,
        chunk_size=100,
        compression_enabled=compression,
        encryption_enabled=encryption,
    )


def corrupt(path: Path, offset: int) -> None:
    """Flip one byte of a stored object."""
    data = bytearray(path.read_bytes())
    data[offset] ^= 0x01
    path.write_bytes(bytes(data))


class TestDownload:
    """Tests for successful downloads."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("compression", "encryption"), MODES)
    async def test_roundtrip(
        self,
        backend: LocalFSBackend,
        store: SessionStore,
        tmp_path: Path,
        key: bytes,
        compression: bool,
        encryption: bool,
    ) -> None:
        """Uploading then downloading returns identical bytes."""
        source = tmp_path / "data.bin"
        content = os.urandom(1000) + b"z" * 1000
        source.write_bytes(content)
        await upload_source(backend, store, source, key, compression, encryption)

        destination = tmp_path / "restore" / "data.bin"
        result = await SessionDownloader(backend, store, encryption_key=key).download(
            "data.bin", destination
        )

        assert destination.read_bytes() == content
        assert result.size == 2000
        assert result.total_parts == 20
        assert result.sha256 == hashlib.sha256(content).hexdigest()
        assert result.local_path == destination
        assert not (tmp_path / "restore" / "data.bin.tmp").exists()

    @pytest.mark.asyncio
    async def test_progress_callback(
        self, backend: LocalFSBackend, store: SessionStore, source: Path, tmp_path: Path
    ) -> None:
        """Progress is reported once per part."""
        await upload_source(backend, store, source)
        updates: list[TransferProgress] = []
        downloader = SessionDownloader(backend, store, progress_callback=updates.append)

        await downloader.download("data.bin", tmp_path / "out.bin")

        assert [u.index for u in updates] == [1, 2, 3]
        assert [u.bytes_transferred for u in updates] == [100, 200, 250]
        assert all(u.operation == "download" for u in updates)

    @pytest.mark.asyncio
    async def test_single_byte_reads(
        self, backend: LocalFSBackend, store: SessionStore, source: Path, tmp_path: Path
    ) -> None:
        """Short reads from the stream are accumulated into whole parts."""
        await upload_source(backend, store, source)
        stream = await backend.open_read_stream("data.bin")
        original_read = stream.read

        async def read_one(size: int) -> bytes:
            return await original_read(min(size, 1))

        stream.read = read_one  # type: ignore[method-assign]
        with patch.object(backend, "open_read_stream", AsyncMock(return_value=stream)):
            await SessionDownloader(backend, store).download("data.bin", tmp_path / "out.bin")

        assert (tmp_path / "out.bin").read_bytes() == bytes(range(250))


class TestDownloadPreconditions:
    """Tests for downloads refused before any data is read."""

    @pytest.mark.asyncio
    async def test_unknown_name(
        self, backend: LocalFSBackend, store: SessionStore, tmp_path: Path
    ) -> None:
        """Unknown names are a configuration error."""
        with pytest.raises(ConfigurationError, match="No backup named"):
            await SessionDownloader(backend, store).download("missing", tmp_path / "out")

    @pytest.mark.asyncio
    async def test_unsealed_session(
        self, backend: LocalFSBackend, store: SessionStore, source: Path, tmp_path: Path
    ) -> None:
        """A session that was never completed cannot be downloaded."""
        with patch.object(
            backend, "complete_session", AsyncMock(side_effect=ConnectionError("offline"))
        ), pytest.raises(BackendError):
            await upload_source(backend, store, source)

        with pytest.raises(PreconditionError, match="not completed"):
            await SessionDownloader(backend, store).download("data.bin", tmp_path / "out")
        assert not (tmp_path / "out").exists()

    @pytest.mark.asyncio
    async def test_encrypted_session_without_key(
        self,
        backend: LocalFSBackend,
        store: SessionStore,
        source: Path,
        tmp_path: Path,
        key: bytes,
    ) -> None:
        """Encrypted sessions need the key."""
        await upload_source(backend, store, source, key, encryption=True)
        with pytest.raises(ConfigurationError):
            await SessionDownloader(backend, store).download("data.bin", tmp_path / "out")


class TestDownloadVerification:
    """Tests for integrity failures during download."""

    @pytest.mark.asyncio
    @pytest.mark.parametrize(("compression", "encryption"), MODES)
    async def test_tampered_byte_names_the_part(
        self,
        backend: LocalFSBackend,
        store: SessionStore,
        source: Path,
        tmp_path: Path,
        key: bytes,
        compression: bool,
        encryption: bool,
    ) -> None:
        """One flipped byte fails the download and names the affected part."""
        await upload_source(backend, store, source, key, compression, encryption)
        session = store.load("data.bin")
        first, second = session.parts[0], session.parts[1]
        corrupt(tmp_path / "bucket" / "data.bin", first.processed_size + second.processed_size // 2)

        destination = tmp_path / "out.bin"
        with pytest.raises(IntegrityError) as exc_info:
            await SessionDownloader(backend, store, encryption_key=key).download(
                "data.bin", destination
            )

        assert exc_info.value.index == 2
        assert exc_info.value.field == "processed_sha256"
        assert not destination.exists()
        assert not (tmp_path / "out.bin.tmp").exists()

    @pytest.mark.asyncio
    async def test_failure_keeps_existing_destination(
        self, backend: LocalFSBackend, store: SessionStore, source: Path, tmp_path: Path
    ) -> None:
        """A failed download never replaces an existing file."""
        await upload_source(backend, store, source)
        corrupt(tmp_path / "bucket" / "data.bin", 0)
        destination = tmp_path / "out.bin"
        destination.write_bytes(b"previous")

        with pytest.raises(IntegrityError):
            await SessionDownloader(backend, store).download("data.bin", destination)

        assert destination.read_bytes() == b"previous"

    @pytest.mark.asyncio
    async def test_wrong_key(
        self,
        backend: LocalFSBackend,
        store: SessionStore,
        source: Path,
        tmp_path: Path,
        key: bytes,
    ) -> None:
        """Decrypting with another key fails on the first part."""
        await upload_source(backend, store, source, key, encryption=True)

        with pytest.raises(IntegrityError, match="decryption failed") as exc_info:
            await SessionDownloader(backend, store, encryption_key=os.urandom(32)).download(
                "data.bin", tmp_path / "out.bin"
            )
        assert exc_info.value.index == 1

    @pytest.mark.asyncio
    async def test_truncated_object(
        self, backend: LocalFSBackend, store: SessionStore, source: Path, tmp_path: Path
    ) -> None:
        """An object shorter than its parts is a short read on the last part."""
        await upload_source(backend, store, source)
        object_path = tmp_path / "bucket" / "data.bin"
        object_path.write_bytes(object_path.read_bytes()[:220])

        with pytest.raises(IntegrityError, match="stream ended early") as exc_info:
            await SessionDownloader(backend, store).download("data.bin", tmp_path / "out.bin")

        assert exc_info.value.index == 3
        assert exc_info.value.expected == 50
        assert exc_info.value.actual == 20
        assert not (tmp_path / "out.bin.tmp").exists()

    @pytest.mark.asyncio
    async def test_trailing_bytes(
        self, backend: LocalFSBackend, store: SessionStore, source: Path, tmp_path: Path
    ) -> None:
        """An object longer than its parts is rejected."""
        await upload_source(backend, store, source)
        object_path = tmp_path / "bucket" / "data.bin"
        object_path.write_bytes(object_path.read_bytes() + b"extra")

        with pytest.raises(IntegrityError, match="longer than its recorded parts"):
            await SessionDownloader(backend, store).download("data.bin", tmp_path / "out.bin")
        assert not (tmp_path / "out.bin").exists()

    @pytest.mark.asyncio
    async def test_whole_object_hash_mismatch(
        self, backend: LocalFSBackend, store: SessionStore, source: Path, tmp_path: Path
    ) -> None:
        """The whole-object hash is checked after every part passed."""
        await upload_source(backend, store, source)
        session = store.load("data.bin")
        session.sha256 = "0" * 64
        store.save(session)

        with pytest.raises(IntegrityError, match="backup checksum mismatch") as exc_info:
            await SessionDownloader(backend, store).download("data.bin", tmp_path / "out.bin")

        assert exc_info.value.index is None
        assert exc_info.value.field == "sha256"
        assert not (tmp_path / "out.bin").exists()
        assert not (tmp_path / "out.bin.tmp").exists()
