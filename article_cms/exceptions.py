"""
Exceptions raised by the image tracking subsystem.
"""
from contextlib import contextmanager

from django.db import DatabaseError


class ImageTrackingError(Exception):
    """Base exception for article_cms image tracking."""


class StorageUnavailable(ImageTrackingError):
    """The image record store could not be read or written."""


class RemoteServiceError(ImageTrackingError):
    """The CDN rejected or failed an upload or delete call."""


class DuplicateUrl(ImageTrackingError):
    """An image record with this remote URL already exists."""

    def __init__(self, remote_url):
        self.remote_url = remote_url
        super().__init__(f"Image already tracked: {remote_url}")


class InvalidUpload(ImageTrackingError, ValueError):
    """The uploaded file is not an acceptable image."""


@contextmanager
def storage_errors():
    """Re-raise database failures as StorageUnavailable."""
    try:
        yield
    except DatabaseError as exc:
        raise StorageUnavailable(str(exc)) from exc
