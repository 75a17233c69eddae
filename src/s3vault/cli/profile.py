"""Profile management commands for s3vault CLI.

Commands:
- init: Create a profile interactively
- gen-key: Generate an encryption key
"""

from __future__ import annotations

import sys

import click

from s3vault.cli import config
from s3vault.core.config import DEFAULT_REGION, Profile
from s3vault.core.crypto import encode_key, generate_key
from s3vault.core.types import TransferError


@click.command()
@click.argument("name", default="default")
def init(name: str) -> None:
    """Create a new profile NAME (default: "default").

    You will be prompted for S3 credentials, region, bucket and key
    prefix. An encryption key is generated unless you opt out.
    """
    try:
        profiles = config.load_profiles()
    except (TransferError, OSError) as e:
        click.echo(f"Error: failed to load profiles: {e}", err=True)
        sys.exit(1)

    if name in profiles:
        click.echo(f"Error: profile {name} already exists.", err=True)
        click.echo(f"Profiles file: {profiles.path}", err=True)
        sys.exit(1)

    profile = Profile(
        access_key=click.prompt("S3 Access Key"),
        secret_key=click.prompt("S3 Secret Key", hide_input=True),
        region=click.prompt("S3 Region", default=DEFAULT_REGION, show_default=True),
        bucket=click.prompt("Bucket Name"),
        prefix=click.prompt("Bucket Prefix for Backups", default="", show_default=False),
    )

    if click.confirm("Enable Encryption?", default=True):
        profile.encryption_key = encode_key(generate_key())

    profiles.set(name, profile)
    try:
        profiles.save()
    except OSError as e:
        click.echo(f"Error: failed to save profiles: {e}", err=True)
        sys.exit(1)

    click.echo(f"\nProfile {name} saved to {profiles.path}")
    if profile.encryption_key:
        click.echo("Back up the encryption key stored in this file: without it,")
        click.echo("encrypted backups cannot be restored.")


@click.command("gen-key")
def gen_key() -> None:
    """Print a new random 256-bit encryption key (hex)."""
    click.echo(encode_key(generate_key()))
