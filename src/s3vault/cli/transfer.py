"""Transfer commands for s3vault CLI.

Commands:
- list: List uploaded objects under the profile prefix
- upload: Create a new upload or resume an existing one
- download: Download a completed upload
"""

from __future__ import annotations

import asyncio
import sys
from pathlib import Path
from typing import Any, NoReturn

import click

from s3vault.cli import config
from s3vault.core.config import Profile, parse_size
from s3vault.core.types import TransferError
from s3vault.storage import STORAGE_CLASSES, create_backend
from s3vault.transfer.download import SessionDownloader
from s3vault.transfer.upload import SessionUploader


class ByteSize(click.ParamType):
    """Click parameter accepting sizes such as 100MB or 8MiB."""

    name = "size"

    def convert(self, value: Any, param: click.Parameter | None, ctx: click.Context | None) -> int:
        if isinstance(value, int):
            return value
        try:
            return parse_size(str(value))
        except ValueError as e:
            self.fail(str(e), param, ctx)


BYTE_SIZE = ByteSize()


def _fail(message: str) -> NoReturn:
    click.echo(f"Error: {message}", err=True)
    sys.exit(1)


def _encryption_key(profile: Profile) -> bytes | None:
    """Return the profile key, or None when the profile has none."""
    if not profile.encryption_key:
        return None
    return profile.key_bytes()


@click.command("list")
@click.pass_context
def list_uploads(ctx: click.Context) -> None:
    """List uploaded objects under the profile prefix."""
    try:
        profile = config.load_profile(ctx.obj["profile"])
        backend = create_backend(profile)
        keys = asyncio.run(backend.list_objects(profile.prefix))
    except (TransferError, OSError) as e:
        _fail(str(e))

    for key in keys:
        click.echo(f"* {key}")


@click.command()
@click.argument("file", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option(
    "--chunk-size",
    "-s",
    type=BYTE_SIZE,
    default="100MB",
    show_default=True,
    help="Chunk size for a new upload (ignored when resuming).",
)
@click.option(
    "--compression/--no-compression",
    "-c",
    default=False,
    show_default=True,
    help="Gzip chunks before upload.",
)
@click.option(
    "--encryption/--no-encryption",
    "-e",
    default=True,
    show_default=True,
    help="Encrypt chunks with the profile key.",
)
@click.option(
    "--storage-class",
    "-l",
    type=click.Choice(STORAGE_CLASSES),
    default="STANDARD",
    show_default=True,
)
@click.option("--name", help="Target name (defaults to the file name).")
@click.pass_context
def upload(
    ctx: click.Context,
    file: Path,
    chunk_size: int,
    compression: bool,
    encryption: bool,
    storage_class: str,
    name: str | None,
) -> None:
    """Create a new upload of FILE or resume an existing one."""
    try:
        profile = config.load_profile(ctx.obj["profile"])
        backend = create_backend(profile)
        uploader = SessionUploader(
            backend,
            config.open_session_store(),
            prefix=profile.prefix,
            encryption_key=_encryption_key(profile),
        )
        result = asyncio.run(
            uploader.upload(
                file,
                name=name,
                chunk_size=chunk_size,
                compression_enabled=compression,
                encryption_enabled=encryption,
                storage_class=storage_class,
            )
        )
    except (TransferError, OSError) as e:
        _fail(str(e))

    click.echo(f"Uploaded {result.key}: {result.total_parts} chunks "
               f"({result.uploaded_parts} uploaded, {result.skipped_parts} resumed)")
    click.echo(f"sha256: {result.sha256}")


@click.command()
@click.argument("name")
@click.argument("output_file", required=False, type=click.Path(dir_okay=False, path_type=Path))
@click.pass_context
def download(ctx: click.Context, name: str, output_file: Path | None) -> None:
    """Download the completed upload NAME to OUTPUT_FILE (default: NAME)."""
    destination = output_file or Path(name)
    try:
        profile = config.load_profile(ctx.obj["profile"])
        backend = create_backend(profile)
        downloader = SessionDownloader(
            backend,
            config.open_session_store(),
            encryption_key=_encryption_key(profile),
        )
        result = asyncio.run(downloader.download(name, destination))
    except (TransferError, OSError) as e:
        _fail(str(e))

    click.echo(f"Downloaded {result.key} to {result.local_path} ({result.size} bytes)")
