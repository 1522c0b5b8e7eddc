"""
Image usage tracking.

On every article save the article's image records are reconciled against
its current content:

1. the CDN URLs in the content and featured image are extracted
2. orphaned records for those URLs are adopted by the article
3. each of the article's records is marked used or unused; newly unused
   records are scheduled for deletion after the grace period and re-used
   records have their schedule cancelled
4. the featured image flag is moved to the current hero image

All of it runs in one transaction holding a lock on the article row, so two
saves of the same article apply one after the other.
"""
import logging

from django.db import transaction
from django.utils import timezone

from .conf import cms_settings
from .exceptions import StorageUnavailable, storage_errors
from .extraction import extract_image_urls
from .models import Article, ImageRecord

logger = logging.getLogger(__name__)

RECONCILED_FIELDS = [
    "is_used",
    "is_featured_image",
    "last_used_at",
    "scheduled_for_deletion_at",
    "updated_at",
]


def adopt_orphans(article_id, urls, now=None):
    """
    Attach orphaned image records referenced by an article to it.

    Records already owned by another article are left alone. Calling this
    again with the same arguments adopts nothing.

    Returns:
        number of records adopted
    """
    if not urls:
        return 0

    now = now or timezone.now()
    with storage_errors():
        adopted = (
            ImageRecord.objects.orphaned()
            .filter(remote_url__in=list(urls))
            .update(
                article_id=article_id,
                is_used=True,
                is_featured_image=False,
                last_used_at=now,
                scheduled_for_deletion_at=None,
                updated_at=now,
            )
        )

    if adopted:
        logger.info("Adopted %d orphaned images for article %s", adopted, article_id)
    return adopted


def reconcile_article_images(article_id, content, featured_image_url=None, now=None):
    """
    Bring an article's image records in line with its content.

    Args:
        article_id: the article's primary key
        content: current article body
        featured_image_url: current hero image URL, if any
        now: reference time for scheduling (defaults to timezone.now())

    Returns:
        number of records whose usage or featured flag changed; an adopted
        record counts once

    Raises:
        StorageUnavailable: the image table could not be read or written
    """
    now = now or timezone.now()
    referenced = extract_image_urls(content, featured_image_url)
    featured_url = featured_image_url.strip() if featured_image_url else ""
    if featured_url not in referenced:
        featured_url = ""
    delete_after = now + cms_settings.deletion_grace_period

    with storage_errors(), transaction.atomic():
        # Serializes concurrent saves of the same article.
        list(Article.objects.select_for_update().filter(pk=article_id).values("pk"))

        adopted = set(
            ImageRecord.objects.orphaned()
            .filter(remote_url__in=list(referenced))
            .values_list("pk", flat=True)
        )
        adopt_orphans(article_id, referenced, now=now)

        changed = 0
        unfeatured = []
        others = []
        for record in ImageRecord.objects.for_article(article_id).select_for_update():
            is_used = record.remote_url in referenced
            is_featured = is_used and record.remote_url == featured_url
            if (
                record.pk in adopted
                or is_used != record.is_used
                or is_featured != record.is_featured_image
            ):
                changed += 1

            if record.is_featured_image and not is_featured:
                unfeatured.append(record)
            else:
                others.append(record)

            record.is_used = is_used
            record.is_featured_image = is_featured
            if is_used:
                record.last_used_at = now
                record.scheduled_for_deletion_at = None
            elif record.scheduled_for_deletion_at is None:
                record.scheduled_for_deletion_at = delete_after
            record.updated_at = now

        # The old hero goes first so one-featured-per-article holds at every step.
        for batch in (unfeatured, others):
            if batch:
                ImageRecord.objects.bulk_update(batch, RECONCILED_FIELDS)

    logger.debug(
        "Reconciled images for article %s: %d referenced, %d changed",
        article_id,
        len(referenced),
        changed,
    )
    return changed


def track_article_images(article):
    """
    Reconcile an article's images without ever failing the caller.

    Used by the article save hook: image tracking must not block authoring.

    Returns:
        number of changed records, or None if the store was unavailable
    """
    try:
        return reconcile_article_images(
            article.pk, article.content, article.featured_image_url
        )
    except StorageUnavailable:
        logger.warning(
            "Image tracking skipped for article %s: store unavailable",
            article.pk,
            exc_info=True,
        )
        return None


def schedule_article_images(article_id, now=None):
    """
    Mark every live image of an article unused and schedule it for deletion.

    Used when the article itself is deleted. Existing schedules are kept.

    Returns:
        number of records scheduled
    """
    now = now or timezone.now()
    delete_after = now + cms_settings.deletion_grace_period
    with storage_errors(), transaction.atomic():
        records = ImageRecord.objects.for_article(article_id)
        scheduled = records.filter(scheduled_for_deletion_at__isnull=True).update(
            scheduled_for_deletion_at=delete_after
        )
        records.update(is_used=False, is_featured_image=False, updated_at=now)

    if scheduled:
        logger.info("Scheduled %d images of article %s for deletion", scheduled, article_id)
    return scheduled


def audit_all_articles():
    """
    Reconcile every article, one at a time.

    Drift correction for scheduled runs; the save path only ever reconciles
    the article being saved. A failure on one article does not stop the rest.

    Returns:
        dict with scanned_articles, updated_images and errors
    """
    scanned = 0
    updated = 0
    errors = []

    with storage_errors():
        articles = list(
            Article.objects.values_list("pk", "content", "featured_image_url")
        )

    for article_id, content, featured_image_url in articles:
        scanned += 1
        try:
            updated += reconcile_article_images(article_id, content, featured_image_url)
        except StorageUnavailable as exc:
            logger.error("Image audit failed for article %s: %s", article_id, exc)
            errors.append({"article_id": str(article_id), "error": str(exc)})

    logger.info(
        "Image usage audit completed: %d articles, %d images updated, %d errors",
        scanned,
        updated,
        len(errors),
    )
    return {"scanned_articles": scanned, "updated_images": updated, "errors": errors}
