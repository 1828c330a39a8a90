"""Source and destination connectors for List Sync."""

from list_sync.connectors.auth import (
    ClientCredentialsTokenProvider,
    StaticTokenProvider,
    TokenProvider,
)
from list_sync.connectors.mirror import FilesystemMirror, MirrorWriter, S3Mirror
from list_sync.connectors.sharepoint import SharePointClient

__all__ = [
    "ClientCredentialsTokenProvider",
    "FilesystemMirror",
    "MirrorWriter",
    "S3Mirror",
    "SharePointClient",
    "StaticTokenProvider",
    "TokenProvider",
]
