"""
Exception types raised by the photo sync tool.

Errors from config loading, manifest building, authentication and the
catalog query are fatal to a run. Errors from a single download or move
are caught by the syncer and recorded against that item.
"""


class PhotoSyncError(Exception):
    """Base class for every error raised by photosync."""


class ConfigError(PhotoSyncError):
    """Missing or invalid sync configuration."""


class LocalIOError(PhotoSyncError):
    """Local disk could not be read or written."""


class AuthError(PhotoSyncError):
    """Credentials could not be obtained or were rejected."""


class RemoteRequestError(PhotoSyncError):
    """A catalog page request failed."""


class DownloadError(PhotoSyncError):
    """Google Photos returned a non-success response for a download."""

    def __init__(self, message, status_code=None):
        super().__init__(message)
        self.status_code = status_code


class FileSystemError(PhotoSyncError):
    """A local file could not be moved into place."""
