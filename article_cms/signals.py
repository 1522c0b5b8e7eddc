"""
Article save/delete hooks for image tracking.

Tracking is best-effort: a failure here is logged and never propagates
into the article save or delete.
"""
import logging

from django.db.models.signals import post_save, pre_delete
from django.dispatch import receiver

from .exceptions import StorageUnavailable
from .models import Article
from .tracking import schedule_article_images, track_article_images

logger = logging.getLogger(__name__)

TRACKED_FIELDS = {"content", "featured_image_url"}


@receiver(post_save, sender=Article, dispatch_uid="article_cms_track_images")
def reconcile_images_on_save(sender, instance, raw=False, update_fields=None, **kwargs):
    if raw:
        return
    if update_fields is not None and not TRACKED_FIELDS.intersection(update_fields):
        return
    track_article_images(instance)


@receiver(pre_delete, sender=Article, dispatch_uid="article_cms_schedule_images")
def schedule_images_on_delete(sender, instance, **kwargs):
    try:
        schedule_article_images(instance.pk)
    except StorageUnavailable:
        logger.warning(
            "Could not schedule images of deleted article %s", instance.pk, exc_info=True
        )
