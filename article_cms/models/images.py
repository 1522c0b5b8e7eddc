"""
Image record model for django-article-cms.

One row per file uploaded to the image CDN. Records are never hard-deleted;
the cleanup sweep stamps ``deleted_at`` once the CDN copy is gone.
"""
import os
import uuid

from django.db import IntegrityError, models, transaction
from django.db.models import Count, Q, Sum
from django.utils import timezone

from ..exceptions import DuplicateUrl


class ImageRecordQuerySet(models.QuerySet):
    """Filters used by the tracker, the cleanup job and the admin dashboard."""

    STATUSES = ("all", "used", "unused", "pending_deletion", "orphaned")

    def live(self):
        """Records whose CDN file has not been deleted."""
        return self.filter(deleted_at__isnull=True)

    def used(self):
        return self.live().filter(is_used=True)

    def unused(self):
        return self.live().filter(is_used=False)

    def pending_deletion(self):
        return self.live().filter(scheduled_for_deletion_at__isnull=False)

    def orphaned(self):
        return self.live().filter(article__isnull=True)

    def for_article(self, article_id):
        return self.live().filter(article_id=article_id)

    def due_for_deletion(self, now=None):
        """Unused records whose grace period has run out."""
        now = now or timezone.now()
        return self.unused().filter(scheduled_for_deletion_at__lte=now)

    def by_status(self, status):
        """
        Filter by dashboard status name.

        Raises ValueError for unknown names.
        """
        if status not in self.STATUSES:
            raise ValueError(f"Unknown image status: {status}")
        if status == "all":
            return self.live()
        return getattr(self, status)()

    def stats(self):
        """
        Aggregate counts for live records.

        Returns:
            dict with total_images, used_images, unused_images,
            pending_deletion, total_size and articles_with_images
        """
        totals = self.live().aggregate(
            total_images=Count("id"),
            used_images=Count("id", filter=Q(is_used=True)),
            unused_images=Count("id", filter=Q(is_used=False)),
            pending_deletion=Count(
                "id", filter=Q(scheduled_for_deletion_at__isnull=False)
            ),
            total_size=Sum("file_size"),
            articles_with_images=Count("article", distinct=True),
        )
        totals["total_size"] = totals["total_size"] or 0
        return totals


class ImageRecordManager(models.Manager.from_queryset(ImageRecordQuerySet)):
    def create_record(self, **fields):
        """
        Insert a record, raising DuplicateUrl if ``remote_url`` is taken.
        """
        try:
            with transaction.atomic():
                return self.create(**fields)
        except IntegrityError as exc:
            remote_url = fields.get("remote_url")
            if self.filter(remote_url=remote_url).exists():
                raise DuplicateUrl(remote_url) from exc
            raise


class ImageRecord(models.Model):
    """
    An image hosted on the CDN and the article that owns it.

    ``article`` is null until the image is adopted by the first saved
    article that references it. The reference is not a database constraint:
    deleting an article leaves its records in place so the cleanup sweep can
    still remove the CDN files.
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)
    article = models.ForeignKey(
        "article_cms.Article",
        null=True,
        blank=True,
        on_delete=models.DO_NOTHING,
        db_constraint=False,
        related_name="images",
    )

    # CDN identity
    remote_file_id = models.CharField(max_length=255)
    remote_url = models.URLField(max_length=1000, unique=True)
    folder_path = models.CharField(max_length=255, blank=True)

    # Descriptive metadata
    file_name = models.CharField(max_length=255, blank=True)
    file_size = models.PositiveIntegerField(
        null=True,
        blank=True,
        help_text="File size in bytes",
    )
    mime_type = models.CharField(max_length=100, blank=True)

    # Usage
    is_used = models.BooleanField(default=False)
    is_featured_image = models.BooleanField(default=False)
    last_used_at = models.DateTimeField(null=True, blank=True)

    # Lifecycle
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    scheduled_for_deletion_at = models.DateTimeField(
        null=True,
        blank=True,
        db_index=True,
        help_text="Unused since; eligible for deletion after this time",
    )
    deleted_at = models.DateTimeField(
        null=True,
        blank=True,
        help_text="When the file was removed from the CDN",
    )

    objects = ImageRecordManager()

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["article", "is_used"], name="image_article_used_idx"),
            models.Index(
                fields=["deleted_at", "scheduled_for_deletion_at"],
                name="image_deletion_idx",
            ),
        ]
        constraints = [
            models.UniqueConstraint(
                fields=["article"],
                condition=Q(is_featured_image=True, deleted_at__isnull=True),
                name="one_featured_image_per_article",
            ),
        ]

    def __str__(self):
        return self.file_name or self.remote_url

    @property
    def is_orphaned(self):
        return self.article_id is None

    @property
    def is_deleted(self):
        return self.deleted_at is not None

    @property
    def file_extension(self):
        """Return file extension."""
        if self.file_name:
            return os.path.splitext(self.file_name)[1].lower()
        return ""

    @property
    def human_file_size(self):
        """Return human-readable file size."""
        size = self.file_size or 0
        for unit in ["B", "KB", "MB", "GB"]:
            if size < 1024:
                return f"{size:.1f} {unit}"
            size /= 1024
        return f"{size:.1f} TB"

    def to_dict(self):
        """Serialize for the admin JSON endpoints."""
        return {
            "id": str(self.id),
            "article_id": str(self.article_id) if self.article_id else None,
            "remote_file_id": self.remote_file_id,
            "remote_url": self.remote_url,
            "file_name": self.file_name,
            "file_size": self.file_size,
            "mime_type": self.mime_type,
            "is_used": self.is_used,
            "is_featured_image": self.is_featured_image,
            "created_at": self.created_at.isoformat(),
            "last_used_at": _isoformat(self.last_used_at),
            "scheduled_for_deletion_at": _isoformat(self.scheduled_for_deletion_at),
            "deleted_at": _isoformat(self.deleted_at),
        }


def _isoformat(value):
    return value.isoformat() if value else None
