"""Dropbox API clients."""

from .dropbox import (
    AccessTokenResult,
    DropboxAccessTokenProvider,
    DropboxFilesClient,
    DropboxShareLinkClient,
    SharedLink,
)

__all__ = [
    "AccessTokenResult",
    "DropboxAccessTokenProvider",
    "DropboxFilesClient",
    "DropboxShareLinkClient",
    "SharedLink",
]
