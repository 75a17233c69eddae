"""Configuration utilities for s3vault CLI.

This module provides shared configuration functions used across CLI commands.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path

from s3vault.core.config import Profile, ProfileStore
from s3vault.transfer.session import SessionStore

LOG_FORMAT = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"


def get_config_dir() -> Path:
    """Get the configuration directory for s3vault.

    Returns:
        Path to ~/.s3vault.
    """
    return Path.home() / ".s3vault"


def get_profiles_file() -> Path:
    """Get the path to the profiles file."""
    return get_config_dir() / "profiles.json"


def get_backups_dir() -> Path:
    """Get the directory holding session manifests."""
    return get_config_dir() / "backups"


def load_profiles() -> ProfileStore:
    """Load all profiles (empty store if none were created yet)."""
    return ProfileStore.load(get_profiles_file())


def load_profile(name: str) -> Profile:
    """Load one profile by name.

    Raises:
        ConfigurationError: If the profile does not exist.
    """
    return load_profiles().get(name)


def open_session_store() -> SessionStore:
    """Open the manifest store in the config directory."""
    return SessionStore(get_backups_dir())


def setup_logging(level: int = logging.INFO) -> None:
    """Configure the s3vault logger to write to stderr.

    Args:
        level: Minimum level to emit.
    """
    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter(LOG_FORMAT))

    root_logger = logging.getLogger("s3vault")
    # Remove handlers from a previous invocation in the same process
    for existing in root_logger.handlers[:]:
        root_logger.removeHandler(existing)
    root_logger.addHandler(handler)
    root_logger.setLevel(level)
    root_logger.propagate = False
