"""
CDN gateway: the two calls the image tracker makes against the CDN.

The tracker only needs ``upload`` and ``delete``. Which implementation is
used is controlled by the CDN_GATEWAY setting, a dotted path to a
``CDNGateway`` subclass.
"""
import logging
from dataclasses import dataclass

import requests
from django.core.exceptions import ImproperlyConfigured
from django.utils.module_loading import import_string

from .conf import cms_settings
from .exceptions import RemoteServiceError

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class UploadedFile:
    """What the CDN reports back for a successful upload."""

    remote_file_id: str
    remote_url: str
    name: str = ""
    size: int = 0
    file_path: str = ""


class CDNGateway:
    """Interface for image CDN backends."""

    def upload(self, data, file_name, folder):
        """
        Store ``data`` on the CDN.

        Returns:
            UploadedFile

        Raises:
            RemoteServiceError: the CDN did not accept the file
        """
        raise NotImplementedError

    def delete(self, remote_file_id):
        """
        Remove a file from the CDN.

        Raises:
            RemoteServiceError: the file could not be deleted
        """
        raise NotImplementedError


class ImageKitGateway(CDNGateway):
    """ImageKit.io over its REST API."""

    def __init__(self, private_key=None, timeout=None, session=None):
        self.private_key = private_key or cms_settings.IMAGEKIT_PRIVATE_KEY
        if not self.private_key:
            raise ImproperlyConfigured(
                "BLOG_CMS['IMAGEKIT_PRIVATE_KEY'] is required for ImageKitGateway"
            )
        self.timeout = timeout or cms_settings.CDN_TIMEOUT
        self.session = session or requests.Session()
        self.session.auth = (self.private_key, "")

    def upload(self, data, file_name, folder):
        try:
            response = self.session.post(
                cms_settings.IMAGEKIT_UPLOAD_URL,
                files={"file": (file_name, data)},
                data={
                    "fileName": file_name,
                    "folder": folder,
                    "useUniqueFileName": "true",
                    "tags": ",".join(cms_settings.UPLOAD_TAGS),
                },
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise RemoteServiceError(f"ImageKit upload failed: {exc}") from exc

        if not response.ok:
            raise RemoteServiceError(
                f"ImageKit upload failed ({response.status_code}): {response.text[:200]}"
            )

        try:
            payload = response.json()
            return UploadedFile(
                remote_file_id=payload["fileId"],
                remote_url=payload["url"],
                name=payload.get("name", file_name),
                size=payload.get("size", 0),
                file_path=payload.get("filePath", ""),
            )
        except (ValueError, KeyError, TypeError, AttributeError) as exc:
            raise RemoteServiceError(
                f"ImageKit upload returned an unexpected response: {response.text[:200]}"
            ) from exc

    def delete(self, remote_file_id):
        url = f"{cms_settings.IMAGEKIT_API_URL.rstrip('/')}/files/{remote_file_id}"
        try:
            response = self.session.delete(url, timeout=self.timeout)
        except requests.RequestException as exc:
            raise RemoteServiceError(f"ImageKit delete failed: {exc}") from exc

        if response.status_code == 404:
            # Gone already: a previous sweep deleted it but never got to mark the record.
            logger.info("ImageKit file %s already deleted", remote_file_id)
            return
        if not response.ok:
            raise RemoteServiceError(
                f"ImageKit delete failed ({response.status_code}): {response.text[:200]}"
            )


def get_gateway():
    """Instantiate the gateway class named by the CDN_GATEWAY setting."""
    gateway_class = import_string(cms_settings.CDN_GATEWAY)
    return gateway_class()
