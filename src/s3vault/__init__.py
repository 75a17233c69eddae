"""s3vault - Resumable, encrypted, chunked file archiving to S3."""

__version__ = "0.1.0"
