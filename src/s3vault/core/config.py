"""Profile configuration for s3vault.

A profile holds everything needed to reach one bucket: credentials,
region, bucket, key prefix and the hex-encoded encryption key. Profiles
are stored together in a single JSON file.
"""

from __future__ import annotations

import re
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any

from s3vault.core.crypto import decode_key
from s3vault.core.files import read_json, write_json
from s3vault.core.types import ConfigurationError

DEFAULT_REGION = "us-east-1"

_SIZE_UNITS = {
    "": 1,
    "B": 1,
    "KB": 1000,
    "MB": 1000**2,
    "GB": 1000**3,
    "TB": 1000**4,
    "KIB": 1024,
    "MIB": 1024**2,
    "GIB": 1024**3,
    "TIB": 1024**4,
}

_SIZE_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*([a-zA-Z]*)\s*$")


def parse_size(value: str) -> int:
    """Parse a human readable byte size.

    Decimal units (KB, MB, ...) are powers of 1000, binary units
    (KiB, MiB, ...) are powers of 1024. Units are case-insensitive.

    Args:
        value: Size such as "100MB", "8MiB" or "4096".

    Returns:
        Size in bytes.

    Raises:
        ValueError: If the value cannot be parsed or is not positive.
    """
    match = _SIZE_RE.match(value)
    if not match:
        raise ValueError(f"Invalid size: {value!r}")

    number, unit = match.groups()
    multiplier = _SIZE_UNITS.get(unit.upper())
    if multiplier is None:
        raise ValueError(f"Unknown size unit in {value!r}")

    size = int(float(number) * multiplier)
    if size <= 0:
        raise ValueError(f"Size must be positive: {value!r}")
    return size


@dataclass
class Profile:
    """Connection and encryption settings for one bucket.

    Attributes:
        access_key: S3 access key ID.
        secret_key: S3 secret access key.
        region: S3 region.
        bucket: Bucket name.
        prefix: Key prefix prepended to uploaded file names.
        encryption_key: Hex-encoded 256-bit key (empty if encryption is unused).
        storage: Backend type, "s3" or "local".
        endpoint_url: Custom S3 endpoint (MinIO, OVH, ...).
        local_path: Root directory for the "local" backend.
    """

    access_key: str = ""
    secret_key: str = ""
    region: str = DEFAULT_REGION
    bucket: str = ""
    prefix: str = ""
    encryption_key: str = ""
    storage: str = "s3"
    endpoint_url: str | None = None
    local_path: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> Profile:
        """Create from a profiles file entry, ignoring unknown keys."""
        known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__}
        return cls(**known)

    def to_dict(self) -> dict[str, Any]:
        """Convert to a profiles file entry."""
        return asdict(self)

    def key_bytes(self) -> bytes:
        """Return the decoded encryption key.

        Raises:
            ConfigurationError: If no key is configured or it is malformed.
        """
        if not self.encryption_key:
            raise ConfigurationError("Profile has no encryption key configured")
        try:
            return decode_key(self.encryption_key)
        except ValueError as e:
            raise ConfigurationError(f"Invalid encryption key: {e}") from e


@dataclass
class ProfileStore:
    """Named profiles persisted in a JSON file."""

    path: Path
    profiles: dict[str, Profile] = field(default_factory=dict)

    @classmethod
    def load(cls, path: Path) -> ProfileStore:
        """Load profiles from `path` (an absent file yields an empty store)."""
        path = Path(path)
        if not path.exists():
            return cls(path=path)

        try:
            data = read_json(path)
        except ValueError as e:
            raise ConfigurationError(f"Malformed profiles file {path}: {e}") from e
        profiles = {
            name: Profile.from_dict(entry)
            for name, entry in data.get("profiles", {}).items()
        }
        return cls(path=path, profiles=profiles)

    def save(self) -> None:
        """Write all profiles back to disk."""
        write_json(
            self.path,
            {"profiles": {name: p.to_dict() for name, p in sorted(self.profiles.items())}},
        )

    def get(self, name: str) -> Profile:
        """Get a profile by name.

        Raises:
            ConfigurationError: If the profile does not exist.
        """
        profile = self.profiles.get(name)
        if profile is None:
            raise ConfigurationError(f"Unknown profile: {name}")
        return profile

    def set(self, name: str, profile: Profile) -> None:
        """Add or replace a profile."""
        self.profiles[name] = profile

    def __contains__(self, name: object) -> bool:
        return name in self.profiles
