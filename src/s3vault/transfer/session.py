"""Transfer session manifests.

This module provides:
- Part: Record of one uploaded chunk
- Session: Manifest of an in-progress or completed upload
- SessionStore: JSON persistence, one document per target name
- SessionLock: Exclusive lease on a target name

Architecture:
    The manifest is rewritten in full after every uploaded part (atomic
    write-then-rename). It is the only crash-recovery state: whatever
    parts it records are exactly the parts that resume will skip.
"""

from __future__ import annotations

import contextlib
import logging
import os
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from pathlib import Path
from types import TracebackType
from typing import Any
from urllib.parse import quote

from s3vault.core.chunking import MAX_PARTS
from s3vault.core.files import read_json, write_json
from s3vault.core.types import ConfigurationError, IntegrityError, PreconditionError

logger = logging.getLogger(__name__)


def utc_now() -> str:
    """Return the current UTC time as an ISO-8601 string."""
    return datetime.now(UTC).isoformat()


def encode_name(name: str) -> str:
    """Turn a target name into a filename stem.

    Characters other than letters, digits, "-", "_" and "." are
    percent-quoted, so distinct names never share a manifest file.

    Raises:
        ConfigurationError: If the name is empty or made only of dots.
    """
    if name.strip(".") == "":
        raise ConfigurationError(f"Invalid target name: {name!r}")
    return quote(name, safe="-_.")


@dataclass(frozen=True)
class Part:
    """Record of one chunk successfully uploaded.

    Attributes:
        index: 1-based part number.
        etag: Opaque tag returned by the backend for this part.
        original_size: Length of the chunk read from the source.
        processed_size: Length of the bytes sent to the backend.
        original_sha256: Hash of the chunk read from the source.
        processed_sha256: Hash of the bytes sent to the backend.
    """

    index: int
    etag: str
    original_size: int
    processed_size: int
    original_sha256: str
    processed_sha256: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Part:
        """Create from a manifest entry."""
        return cls(
            index=int(data["index"]),
            etag=str(data["etag"]),
            original_size=int(data["original_size"]),
            processed_size=int(data["processed_size"]),
            original_sha256=str(data["original_sha256"]),
            processed_sha256=str(data["processed_sha256"]),
        )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a manifest entry."""
        return asdict(self)


@dataclass
class Session:
    """Manifest of a chunked upload to one object key.

    Attributes:
        name: Target name the manifest is stored under.
        key: Object key (prefix + source file name).
        prefix: Key prefix from the profile.
        chunk_size: Chunk size in bytes, fixed for the life of the session.
        upload_id: Multipart upload identifier issued by the backend.
        parts: Uploaded parts, indices 1..N in order.
        done: Whether the backend confirmed completion.
        started: ISO timestamp when the session was created.
        completed: ISO timestamp when the session was sealed ("" until then).
        sha256: Hash of the whole source ("" until sealed).
        compression_enabled: Whether chunks were compressed.
        encryption_enabled: Whether chunks were encrypted.
        storage_class: Storage tier requested at creation.
    """

    name: str
    key: str
    prefix: str
    chunk_size: int
    upload_id: str
    parts: list[Part] = field(default_factory=list)
    done: bool = False
    started: str = field(default_factory=utc_now)
    completed: str = ""
    sha256: str = ""
    compression_enabled: bool = False
    encryption_enabled: bool = True
    storage_class: str = "STANDARD"

    @property
    def next_index(self) -> int:
        """Index of the next part to record."""
        return len(self.parts) + 1

    @property
    def original_size(self) -> int:
        """Total size of the source covered by the recorded parts."""
        return sum(p.original_size for p in self.parts)

    @property
    def processed_size(self) -> int:
        """Total size of the bytes sent to the backend."""
        return sum(p.processed_size for p in self.parts)

    def has_part(self, index: int) -> bool:
        """Check if a part with this index is recorded."""
        return 1 <= index <= len(self.parts)

    def get_part(self, index: int) -> Part:
        """Get a recorded part by index."""
        if not self.has_part(index):
            raise KeyError(index)
        return self.parts[index - 1]

    def add_part(self, part: Part) -> None:
        """Append an uploaded part.

        Raises:
            PreconditionError: If the session is sealed or the index is
                not the next expected one.
        """
        if self.done:
            raise PreconditionError(f"Session {self.name} is completed and cannot change")
        if part.index != self.next_index:
            raise PreconditionError(
                f"Session {self.name} expects part {self.next_index}, got {part.index}"
            )
        if part.index > MAX_PARTS:
            raise PreconditionError(f"Session {self.name} exceeds {MAX_PARTS} parts")
        self.parts.append(part)

    def seal(self, sha256: str) -> None:
        """Mark the session completed with the whole-object hash."""
        if self.done:
            raise PreconditionError(f"Session {self.name} is already completed")
        if not sha256:
            raise ValueError("Whole-object hash is required to seal a session")
        self.done = True
        self.completed = utc_now()
        self.sha256 = sha256

    def completed_parts(self) -> list[tuple[int, str]]:
        """Return (index, etag) pairs sorted by index."""
        return sorted((p.index, p.etag) for p in self.parts)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Session:
        """Create from a manifest document.

        Raises:
            IntegrityError: If the document is malformed or violates
                the manifest invariants.
        """
        try:
            session = cls(
                name=str(data["name"]),
                key=str(data["key"]),
                prefix=str(data.get("prefix", "")),
                chunk_size=int(data["chunk_size"]),
                upload_id=str(data["upload_id"]),
                parts=[Part.from_dict(p) for p in data.get("parts", [])],
                done=bool(data.get("done", False)),
                started=str(data.get("started", "")),
                completed=str(data.get("completed", "")),
                sha256=str(data.get("sha256", "")),
                compression_enabled=bool(data.get("compression_enabled", False)),
                encryption_enabled=bool(data.get("encryption_enabled", True)),
                storage_class=str(data.get("storage_class", "STANDARD")),
            )
        except (KeyError, TypeError, ValueError) as e:
            raise IntegrityError(f"Malformed session manifest: {e}") from e

        session._check()
        return session

    def _check(self) -> None:
        if self.chunk_size <= 0:
            raise IntegrityError(f"Session {self.name} has invalid chunk size {self.chunk_size}")
        indices = [p.index for p in self.parts]
        if indices != list(range(1, len(indices) + 1)):
            raise IntegrityError(f"Session {self.name} has non-contiguous part indices {indices}")
        if len(indices) > MAX_PARTS:
            raise IntegrityError(f"Session {self.name} exceeds {MAX_PARTS} parts")
        if self.done != bool(self.sha256):
            raise IntegrityError(
                f"Session {self.name} completion flag and whole-object hash disagree"
            )

    def to_dict(self) -> dict[str, Any]:
        """Convert to a manifest document."""
        return {
            "name": self.name,
            "key": self.key,
            "prefix": self.prefix,
            "chunk_size": self.chunk_size,
            "upload_id": self.upload_id,
            "parts": [p.to_dict() for p in self.parts],
            "done": self.done,
            "started": self.started,
            "completed": self.completed,
            "sha256": self.sha256,
            "compression_enabled": self.compression_enabled,
            "encryption_enabled": self.encryption_enabled,
            "storage_class": self.storage_class,
        }


class SessionStore:
    """Persists session manifests as JSON documents in a directory."""

    def __init__(self, base_path: Path) -> None:
        """Initialize the store.

        Args:
            base_path: Directory holding one `<name>.json` per session.
        """
        self._base_path = Path(base_path)
        self._base_path.mkdir(parents=True, exist_ok=True)

    @property
    def base_path(self) -> Path:
        return self._base_path

    def path_for(self, name: str) -> Path:
        """Return the manifest path for a target name."""
        return self._base_path / f"{encode_name(name)}.json"

    def exists(self, name: str) -> bool:
        """Check if a manifest exists for a target name."""
        return self.path_for(name).exists()

    def load(self, name: str) -> Session:
        """Load the manifest for a target name.

        Raises:
            ConfigurationError: If no manifest exists.
            IntegrityError: If the manifest is malformed or records another name.
        """
        path = self.path_for(name)
        if not path.exists():
            raise ConfigurationError(f"No backup named {name}")
        try:
            data = read_json(path)
        except ValueError as e:
            raise IntegrityError(f"Corrupt session manifest {path}: {e}") from e
        session = Session.from_dict(data)
        if session.name != name:
            raise IntegrityError(
                f"Session manifest {path} belongs to {session.name!r}, not {name!r}"
            )
        return session

    def save(self, session: Session) -> None:
        """Atomically replace the manifest of a session."""
        write_json(self.path_for(session.name), session.to_dict())

    def lock(self, name: str) -> SessionLock:
        """Return the exclusive lease for a target name."""
        return SessionLock(self._base_path / f"{encode_name(name)}.lock")


class SessionLock:
    """Exclusive lease on a target name, held through a lock file.

    The lock file is created atomically and removed on release, whichever
    way the guarded block exits. A crashed process leaves its lock file
    behind; it must be removed by hand after checking the recorded pid.
    """

    def __init__(self, path: Path) -> None:
        self._path = Path(path)
        self._held = False

    @property
    def path(self) -> Path:
        return self._path

    @property
    def held(self) -> bool:
        return self._held

    def acquire(self) -> None:
        """Take the lease.

        Raises:
            PreconditionError: If another process holds it.
        """
        self._path.parent.mkdir(parents=True, exist_ok=True)
        try:
            fd = os.open(self._path, os.O_CREAT | os.O_EXCL | os.O_WRONLY, 0o644)
        except FileExistsError as e:
            holder = ""
            with contextlib.suppress(OSError):
                holder = self._path.read_text().strip()
            raise PreconditionError(
                f"Another transfer holds {self._path} (pid {holder or 'unknown'})"
            ) from e
        with os.fdopen(fd, "w") as f:
            f.write(str(os.getpid()))
        self._held = True
        logger.debug(f"Acquired lease {self._path}")

    def release(self) -> None:
        """Give the lease back."""
        if not self._held:
            return
        self._held = False
        with contextlib.suppress(FileNotFoundError):
            self._path.unlink()
        logger.debug(f"Released lease {self._path}")

    def __enter__(self) -> SessionLock:
        self.acquire()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.release()
