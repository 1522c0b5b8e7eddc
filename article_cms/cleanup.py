"""
Image cleanup: remove unused images from the CDN and mark their records.

Each record is deleted from the CDN first and only then stamped with
``deleted_at``. If the process dies in between, the record is still due
and the next sweep retries it; the gateway treats an already-missing file
as deleted.

Before the CDN call each record is re-checked against the current row, and
the final mark carries the same condition: an image brought back into use by
an article save is skipped, or reported if the save landed mid-delete.

CDN calls run on a small thread pool. Database writes stay on the calling
thread.
"""
import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from datetime import timedelta

from django.db.models import Q
from django.utils import timezone

from .conf import cms_settings
from .exceptions import StorageUnavailable, storage_errors
from .gateway import get_gateway
from .models import ImageRecord

logger = logging.getLogger(__name__)


@dataclass
class CleanupResult:
    """Outcome of a sweep or a forced delete."""

    deleted_count: int = 0
    deleted_urls: list = field(default_factory=list)
    errors: list = field(default_factory=list)
    freed_bytes: int = 0

    def merge(self, other):
        self.deleted_count += other.deleted_count
        self.deleted_urls.extend(other.deleted_urls)
        self.errors.extend(other.errors)
        self.freed_bytes += other.freed_bytes
        return self

    def add_error(self, record, error):
        self.errors.append({
            "id": str(record.pk),
            "remote_url": record.remote_url,
            "error": str(error),
        })

    def as_dict(self):
        return {
            "deleted_count": self.deleted_count,
            "deleted_urls": list(self.deleted_urls),
            "errors": list(self.errors),
            "freed_bytes": self.freed_bytes,
        }


def _claim(records, eligible):
    """
    Re-check eligibility of loaded records against the current rows.

    A record rescued by an article save since it was loaded drops out here.
    """
    with storage_errors():
        current = set(
            ImageRecord.objects.live()
            .filter(eligible, pk__in=[record.pk for record in records])
            .values_list("pk", flat=True)
        )
    return [record for record in records if record.pk in current]


def _mark_deleted(record, eligible, deleted_at):
    return (
        ImageRecord.objects.live()
        .filter(eligible, pk=record.pk)
        .update(
            deleted_at=deleted_at,
            is_used=False,
            is_featured_image=False,
            scheduled_for_deletion_at=None,
            updated_at=deleted_at,
        )
    )


def _delete_records(records, gateway=None, max_workers=None, now=None, eligible=None):
    """
    Delete each record's CDN file, then mark the record deleted.

    ``eligible`` is the condition a row must still meet to be deleted; it is
    checked before the CDN call and again when marking. Failures are
    collected per record; the rest of the batch carries on.
    """
    result = CleanupResult()
    eligible = eligible if eligible is not None else Q()
    records = _claim(records, eligible) if records else []
    if not records:
        return result

    gateway = gateway or get_gateway()
    max_workers = max_workers or cms_settings.CLEANUP_MAX_WORKERS

    with ThreadPoolExecutor(max_workers=max_workers) as executor:
        futures = {
            executor.submit(gateway.delete, record.remote_file_id): record
            for record in records
        }
        for future in as_completed(futures):
            record = futures[future]
            try:
                future.result()
            except Exception as exc:
                logger.error(
                    "Failed to delete image %s (%s) from CDN: %s",
                    record.pk,
                    record.remote_url,
                    exc,
                )
                result.add_error(record, exc)
                continue

            deleted_at = now or timezone.now()
            try:
                with storage_errors():
                    marked = _mark_deleted(record, eligible, deleted_at)
                    rescued = (
                        not marked
                        and ImageRecord.objects.live().filter(pk=record.pk).exists()
                    )
            except StorageUnavailable as exc:
                # Still due; the next sweep retries and the CDN reports it gone.
                logger.error(
                    "Deleted image %s from CDN but could not mark it: %s",
                    record.pk,
                    exc,
                )
                result.add_error(record, exc)
                continue

            if marked:
                result.deleted_count += 1
                result.deleted_urls.append(record.remote_url)
                result.freed_bytes += record.file_size or 0
            elif rescued:
                logger.error(
                    "Image %s was deleted from CDN after it came back into use",
                    record.pk,
                )
                result.add_error(record, "deleted from CDN after it came back into use")

    return result


def run_cleanup(now=None, gateway=None, max_workers=None):
    """
    Sweep images whose grace period has passed.

    Returns:
        CleanupResult; failed records are listed in ``errors`` and stay
        scheduled for the next sweep

    Raises:
        StorageUnavailable: the due records could not be read
    """
    now = now or timezone.now()
    with storage_errors():
        records = list(ImageRecord.objects.due_for_deletion(now))

    if not records:
        logger.info("Image cleanup: nothing scheduled for deletion")
        return CleanupResult()

    logger.info("Image cleanup: %d images due for deletion", len(records))
    result = _delete_records(
        records,
        gateway=gateway,
        max_workers=max_workers,
        now=now,
        eligible=Q(is_used=False, scheduled_for_deletion_at__lte=now),
    )
    logger.info(
        "Image cleanup completed: %d deleted, %d failed, %.2f MB freed",
        result.deleted_count,
        len(result.errors),
        result.freed_bytes / 1024 / 1024,
    )
    return result


def force_delete_images(image_ids, gateway=None, max_workers=None):
    """
    Delete the given images now, whether or not they are in use.

    Unknown or already deleted ids are skipped.
    """
    with storage_errors():
        records = list(ImageRecord.objects.live().filter(pk__in=list(image_ids)))

    result = _delete_records(records, gateway=gateway, max_workers=max_workers)
    logger.info(
        "Force delete: %d of %d requested images deleted",
        result.deleted_count,
        len(image_ids),
    )
    return result


def cleanup_stale_orphans(max_age_hours=None, batch_size=None, now=None, gateway=None):
    """
    Delete orphaned images that no article adopted within ``max_age_hours``.

    At most ``batch_size`` images, oldest first, are deleted per call.
    """
    now = now or timezone.now()
    if max_age_hours is None:
        max_age_hours = cms_settings.STALE_ORPHAN_MAX_AGE_HOURS
    batch_size = batch_size or cms_settings.CLEANUP_BATCH_SIZE
    cutoff = now - timedelta(hours=max_age_hours)

    with storage_errors():
        records = list(
            ImageRecord.objects.orphaned()
            .filter(created_at__lt=cutoff)
            .order_by("created_at")[:batch_size]
        )

    if not records:
        return CleanupResult()

    logger.info("Orphan cleanup: %d images older than %sh", len(records), max_age_hours)
    return _delete_records(
        records,
        gateway=gateway,
        now=now,
        eligible=Q(article__isnull=True, created_at__lt=cutoff),
    )


def preview_cleanup(now=None):
    """Report what ``run_cleanup`` would delete without deleting anything."""
    now = now or timezone.now()
    with storage_errors():
        due = ImageRecord.objects.due_for_deletion(now)
        stats = due.stats()
        urls = list(due.values_list("remote_url", flat=True))
    return {
        "eligible_for_deletion": stats["total_images"],
        "estimated_freed_bytes": stats["total_size"],
        "urls": urls,
    }
