"""Object storage backends for multipart transfers.

This module provides:
- Abstract interface for multipart upload sessions and streaming reads
- LocalFSBackend for development/testing
- S3Backend for production (AWS, OVH, MinIO)

Backends are asynchronous; every call is awaited on its own before the
next one is issued. No retries or timeouts are applied here.
"""

from __future__ import annotations

import asyncio
import hashlib
import json
import logging
import os
import shutil
import uuid
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Sequence
from pathlib import Path
from typing import TYPE_CHECKING, BinaryIO, TypeVar

from s3vault.core.types import BackendError, ConfigurationError, TransferError

if TYPE_CHECKING:
    from typing import Any

    from s3vault.core.config import Profile

logger = logging.getLogger(__name__)

STORAGE_CLASSES = ("STANDARD", "DEEP_ARCHIVE")

T = TypeVar("T")


class ReadStream(ABC):
    """Sequential reader over a stored object."""

    @abstractmethod
    async def read(self, size: int) -> bytes:
        """Read at most `size` bytes; returns b"" at end of object."""

    @abstractmethod
    async def close(self) -> None:
        """Release the underlying connection or file."""

    async def __aenter__(self) -> ReadStream:
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()


class StorageBackend(ABC):
    """Abstract interface for multipart object storage."""

    @property
    @abstractmethod
    def location(self) -> str:
        """Return a human-readable description of where objects are stored."""

    @abstractmethod
    async def create_session(self, key: str, storage_class: str) -> str:
        """Start a multipart upload.

        Args:
            key: Object key to upload to.
            storage_class: Storage tier (e.g. "STANDARD").

        Returns:
            Opaque session (upload) identifier.
        """

    @abstractmethod
    async def upload_part(self, session_id: str, key: str, index: int, data: bytes) -> str:
        """Upload one part of a multipart upload.

        Args:
            session_id: Identifier returned by create_session().
            key: Object key of the session.
            index: 1-based part number.
            data: Part bytes.

        Returns:
            Opaque tag required to complete the session.
        """

    @abstractmethod
    async def complete_session(
        self,
        session_id: str,
        key: str,
        parts: Sequence[tuple[int, str]],
    ) -> str:
        """Assemble the uploaded parts into the final object.

        Args:
            session_id: Identifier returned by create_session().
            key: Object key of the session.
            parts: (index, tag) pairs sorted by index.

        Returns:
            Tag of the assembled object.
        """

    @abstractmethod
    async def open_read_stream(self, key: str) -> ReadStream:
        """Open a sequential reader over a stored object."""

    @abstractmethod
    async def list_objects(self, prefix: str) -> list[str]:
        """List object keys starting with `prefix`."""


class LocalFileReadStream(ReadStream):
    """ReadStream over a local file."""

    def __init__(self, f: BinaryIO) -> None:
        self._f = f

    async def read(self, size: int) -> bytes:
        return self._f.read(size)

    async def close(self) -> None:
        self._f.close()


class LocalFSBackend(StorageBackend):
    """Local filesystem storage for development and testing.

    Parts are staged under `.uploads/<session_id>/` and concatenated into
    the object file when the session is completed.
    """

    UPLOADS_DIR = ".uploads"

    def __init__(self, base_path: Path | str) -> None:
        """Initialize local storage.

        Args:
            base_path: Base directory for stored objects.
        """
        self._base_path = Path(base_path).resolve()
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def location(self) -> str:
        """Return the local storage path."""
        return f"Local filesystem: {self._base_path}"

    def _object_path(self, key: str) -> Path:
        parts = [p for p in key.split("/") if p]
        if not parts or any(p in (".", "..") for p in parts) or parts[0] == self.UPLOADS_DIR:
            raise BackendError(f"Invalid object key: {key!r}")
        return self._base_path.joinpath(*parts)

    def _session_dir(self, session_id: str, key: str) -> Path:
        session_dir = self._base_path / self.UPLOADS_DIR / session_id
        meta_path = session_dir / "session.json"
        if not meta_path.exists():
            raise BackendError(f"Unknown upload session: {session_id}")
        meta = json.loads(meta_path.read_text())
        if meta["key"] != key:
            raise BackendError(
                f"Upload session {session_id} belongs to {meta['key']!r}, not {key!r}"
            )
        return session_dir

    @staticmethod
    def _part_path(session_dir: Path, index: int) -> Path:
        return session_dir / f"{index:05d}.part"

    async def create_session(self, key: str, storage_class: str) -> str:
        self._object_path(key)
        session_id = uuid.uuid4().hex
        session_dir = self._base_path / self.UPLOADS_DIR / session_id
        session_dir.mkdir(parents=True)
        (session_dir / "session.json").write_text(
            json.dumps({"key": key, "storage_class": storage_class})
        )
        logger.debug(f"Created local upload session {session_id} for {key}")
        return session_id

    async def upload_part(self, session_id: str, key: str, index: int, data: bytes) -> str:
        session_dir = self._session_dir(session_id, key)
        self._part_path(session_dir, index).write_bytes(data)
        return hashlib.md5(data).hexdigest()

    async def complete_session(
        self,
        session_id: str,
        key: str,
        parts: Sequence[tuple[int, str]],
    ) -> str:
        session_dir = self._session_dir(session_id, key)
        if not parts:
            raise BackendError("Cannot complete an upload without parts")

        object_path = self._object_path(key)
        object_path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = session_dir / "object.tmp"

        digests = []
        with open(tmp_path, "wb") as out:
            for index, tag in parts:
                part_path = self._part_path(session_dir, index)
                if not part_path.exists():
                    raise BackendError(f"Part {index} was never uploaded")
                data = part_path.read_bytes()
                digest = hashlib.md5(data)
                if digest.hexdigest() != tag:
                    raise BackendError(f"Part {index} tag mismatch")
                digests.append(digest.digest())
                out.write(data)

        os.replace(tmp_path, object_path)
        shutil.rmtree(session_dir)
        return f"{hashlib.md5(b''.join(digests)).hexdigest()}-{len(parts)}"

    async def open_read_stream(self, key: str) -> ReadStream:
        path = self._object_path(key)
        if not path.is_file():
            raise BackendError(f"Object not found: {key}", operation="get")
        return LocalFileReadStream(open(path, "rb"))

    async def list_objects(self, prefix: str) -> list[str]:
        keys = []
        for path in self._base_path.rglob("*"):
            if not path.is_file():
                continue
            rel = path.relative_to(self._base_path)
            if rel.parts[0] == self.UPLOADS_DIR:
                continue
            key = rel.as_posix()
            if key.startswith(prefix):
                keys.append(key)
        return sorted(keys)


class S3ReadStream(ReadStream):
    """ReadStream over a botocore StreamingBody."""

    def __init__(self, body: Any) -> None:
        self._body = body

    async def read(self, size: int) -> bytes:
        try:
            data: bytes = await asyncio.to_thread(self._body.read, size)
        except Exception as e:
            raise BackendError(f"Failed to read object stream: {e}", operation="get") from e
        return data

    async def close(self) -> None:
        self._body.close()


class S3Backend(StorageBackend):
    """S3-compatible storage for production (AWS, OVH, MinIO, etc.)."""

    def __init__(
        self,
        bucket: str,
        endpoint_url: str | None = None,
        access_key: str | None = None,
        secret_key: str | None = None,
        region: str = "us-east-1",
    ) -> None:
        """Initialize S3 storage.

        Args:
            bucket: S3 bucket name.
            endpoint_url: Custom endpoint URL (for OVH, MinIO, etc.).
            access_key: AWS access key ID.
            secret_key: AWS secret access key.
            region: AWS region (default: us-east-1).
        """
        import boto3

        self._bucket = bucket
        self._endpoint_url = endpoint_url
        self._client: Any = boto3.client(
            "s3",
            endpoint_url=endpoint_url,
            aws_access_key_id=access_key or None,
            aws_secret_access_key=secret_key or None,
            region_name=region,
        )

    @property
    def location(self) -> str:
        """Return the S3 bucket location."""
        if self._endpoint_url:
            return f"S3: {self._endpoint_url}/{self._bucket}"
        return f"S3: s3://{self._bucket}"

    async def _call(self, operation: str, func: Callable[..., Any], **kwargs: Any) -> Any:
        """Run a blocking boto3 call in a worker thread, wrapping its errors."""
        from botocore.exceptions import BotoCoreError, ClientError

        logger.debug(f"S3 {operation} {kwargs.get('Key', '')}")
        try:
            return await asyncio.to_thread(func, **kwargs)
        except ClientError as e:
            code = e.response.get("Error", {}).get("Code", "Unknown")
            raise BackendError(f"S3 {operation} failed ({code}): {e}", operation=operation) from e
        except BotoCoreError as e:
            raise BackendError(f"S3 {operation} failed: {e}", operation=operation) from e

    async def create_session(self, key: str, storage_class: str) -> str:
        response = await self._call(
            "create_multipart_upload",
            self._client.create_multipart_upload,
            Bucket=self._bucket,
            Key=key,
            StorageClass=storage_class,
        )
        upload_id: str = response["UploadId"]
        return upload_id

    async def upload_part(self, session_id: str, key: str, index: int, data: bytes) -> str:
        response = await self._call(
            "upload_part",
            self._client.upload_part,
            Bucket=self._bucket,
            Key=key,
            UploadId=session_id,
            PartNumber=index,
            Body=data,
        )
        etag: str = response["ETag"]
        return etag

    async def complete_session(
        self,
        session_id: str,
        key: str,
        parts: Sequence[tuple[int, str]],
    ) -> str:
        response = await self._call(
            "complete_multipart_upload",
            self._client.complete_multipart_upload,
            Bucket=self._bucket,
            Key=key,
            UploadId=session_id,
            MultipartUpload={
                "Parts": [{"ETag": tag, "PartNumber": index} for index, tag in parts]
            },
        )
        etag: str = response.get("ETag", "")
        return etag

    async def open_read_stream(self, key: str) -> ReadStream:
        response = await self._call(
            "get_object",
            self._client.get_object,
            Bucket=self._bucket,
            Key=key,
        )
        return S3ReadStream(response["Body"])

    async def list_objects(self, prefix: str) -> list[str]:
        def list_all(**kwargs: Any) -> list[str]:
            paginator = self._client.get_paginator("list_objects_v2")
            return [
                item["Key"]
                for page in paginator.paginate(**kwargs)
                for item in page.get("Contents", [])
            ]

        keys: list[str] = await self._call(
            "list_objects_v2", list_all, Bucket=self._bucket, Prefix=prefix
        )
        return keys


async def call_backend(operation: str, awaitable: Awaitable[T]) -> T:
    """Await a backend call, reporting any non-transfer failure as BackendError."""
    try:
        return await awaitable
    except TransferError:
        raise
    except Exception as e:
        raise BackendError(f"{operation} failed: {e}", operation=operation) from e


def create_backend(profile: Profile) -> StorageBackend:
    """Factory function to create a backend from a profile.

    Args:
        profile: Profile with `storage` set to "s3" or "local".

    Returns:
        Configured StorageBackend instance.

    Raises:
        ConfigurationError: If the storage type is unknown or incomplete.
    """
    if profile.storage == "local":
        if not profile.local_path:
            raise ConfigurationError("Local storage requires 'local_path' configuration")
        return LocalFSBackend(Path(profile.local_path).expanduser())

    if profile.storage == "s3":
        if not profile.bucket:
            raise ConfigurationError("S3 storage requires 'bucket' configuration")
        return S3Backend(
            bucket=profile.bucket,
            endpoint_url=profile.endpoint_url,
            access_key=profile.access_key,
            secret_key=profile.secret_key,
            region=profile.region or "us-east-1",
        )

    raise ConfigurationError(f"Unknown storage type: {profile.storage}")
