"""
Image upload: validate, push to the CDN, start tracking.
"""
import logging
import time
import uuid
from io import BytesIO

from PIL import Image, UnidentifiedImageError
from django.utils import timezone

from .conf import cms_settings
from .exceptions import DuplicateUrl, InvalidUpload, StorageUnavailable, storage_errors
from .gateway import get_gateway
from .models import ImageRecord

logger = logging.getLogger(__name__)


def generate_file_name(article_id=None):
    """Return a CDN file name like ``article-<id>-<ms>-<random>``."""
    prefix = f"article-{article_id}" if article_id else "article-new"
    return f"{prefix}-{int(time.time() * 1000)}-{uuid.uuid4().hex[:8]}"


def upload_folder(article_id=None):
    base = cms_settings.UPLOAD_FOLDER.rstrip("/")
    if article_id:
        return f"{base}/{article_id}/"
    return f"{base}/temp/"


def validate_image(uploaded_file):
    """
    Check type, size and that the bytes really are an image.

    Returns:
        the file content as bytes

    Raises:
        InvalidUpload
    """
    content_type = getattr(uploaded_file, "content_type", "") or ""
    if content_type not in cms_settings.ALLOWED_IMAGE_TYPES:
        raise InvalidUpload(
            f"Invalid file type {content_type or 'unknown'}. "
            f"Allowed: {', '.join(cms_settings.ALLOWED_IMAGE_TYPES)}"
        )

    if uploaded_file.size > cms_settings.max_upload_bytes:
        raise InvalidUpload(
            f"File too large. Maximum size is {cms_settings.MAX_UPLOAD_SIZE_MB}MB."
        )

    data = b"".join(uploaded_file.chunks())
    try:
        with Image.open(BytesIO(data)) as img:
            img.verify()
    except (UnidentifiedImageError, OSError, SyntaxError) as exc:
        raise InvalidUpload("File is not a readable image.") from exc
    return data


def _existing_record(remote_url):
    try:
        with storage_errors():
            return ImageRecord.objects.get(remote_url=remote_url)
    except StorageUnavailable:
        logger.warning(
            "Image %s already tracked but could not be read", remote_url, exc_info=True
        )
        return None


def upload_image(uploaded_file, article=None, gateway=None):
    """
    Upload an image to the CDN and create its tracking record.

    The record starts unused and scheduled for deletion; saving an article
    that references the URL adopts it and cancels the schedule. Without an
    article the record is an orphan.

    Args:
        uploaded_file: Django UploadedFile
        article: owning Article, if it already exists
        gateway: CDNGateway, defaults to get_gateway()

    Returns:
        (UploadedFile, ImageRecord or None); the record is None when the
        store was unavailable, the upload itself still succeeded

    Raises:
        InvalidUpload: the file was rejected before upload
        RemoteServiceError: the CDN upload failed
    """
    data = validate_image(uploaded_file)
    article_id = article.pk if article else None
    gateway = gateway or get_gateway()

    folder = upload_folder(article_id)
    uploaded = gateway.upload(data, generate_file_name(article_id), folder)

    now = timezone.now()
    try:
        with storage_errors():
            record = ImageRecord.objects.create_record(
                article_id=article_id,
                remote_file_id=uploaded.remote_file_id,
                remote_url=uploaded.remote_url,
                folder_path=folder,
                file_name=uploaded.name or uploaded_file.name,
                file_size=uploaded.size or uploaded_file.size,
                mime_type=uploaded_file.content_type,
                is_used=False,
                scheduled_for_deletion_at=now + cms_settings.deletion_grace_period,
            )
    except DuplicateUrl:
        logger.info("Image %s already tracked", uploaded.remote_url)
        record = _existing_record(uploaded.remote_url)
    except StorageUnavailable:
        logger.warning(
            "Image %s uploaded but not tracked: store unavailable",
            uploaded.remote_url,
            exc_info=True,
        )
        record = None
    else:
        logger.info(
            "Image tracked: %s (%s)",
            uploaded.remote_url,
            f"article {article_id}" if article_id else "orphaned",
        )

    return uploaded, record
