"""Command-line interface for s3vault.

This module provides the main CLI entry point and assembles all commands.

Commands:
- init: Create a profile interactively
- gen-key: Generate an encryption key
- list: List uploaded objects
- upload: Create new or resume existing upload
- download: Download a completed upload
"""

from __future__ import annotations

import logging

import click

from s3vault.cli.config import (
    get_backups_dir,
    get_config_dir,
    get_profiles_file,
    load_profile,
    load_profiles,
    setup_logging,
)
from s3vault.cli.profile import gen_key, init
from s3vault.cli.transfer import download, list_uploads, upload


@click.group()
@click.version_option(package_name="s3vault")
@click.option(
    "--profile",
    "-p",
    default="default",
    show_default=True,
    help="Profile to use.",
)
@click.option("--verbose", "-v", is_flag=True, help="Show debug output.")
@click.option("--quiet", "-q", is_flag=True, help="Only show warnings and errors.")
@click.pass_context
def cli(ctx: click.Context, profile: str, verbose: bool, quiet: bool) -> None:
    """s3vault - Resumable, encrypted, chunked file archiving to S3."""
    level = logging.INFO
    if verbose:
        level = logging.DEBUG
    elif quiet:
        level = logging.WARNING
    setup_logging(level)

    ctx.ensure_object(dict)
    ctx.obj["profile"] = profile


# Profile commands
cli.add_command(init)
cli.add_command(gen_key)

# Transfer commands
cli.add_command(list_uploads)
cli.add_command(upload)
cli.add_command(download)


def main() -> None:
    """Entry point for the CLI."""
    cli()


__all__ = [
    # Main entry points
    "cli",
    "main",
    # Config utilities
    "get_backups_dir",
    "get_config_dir",
    "get_profiles_file",
    "load_profile",
    "load_profiles",
]
