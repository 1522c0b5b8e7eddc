"""
Article, Category, and Tag models for django-article-cms.
"""
import uuid

from django.conf import settings
from django.db import models
from django.utils import timezone
from django.utils.text import slugify

from ..conf import cms_settings


def unique_slug(model, value, instance_pk=None):
    """Slugify ``value`` and suffix it until it is unique for ``model``."""
    base_slug = slugify(value)[:cms_settings.SLUG_MAX_LENGTH] or "untitled"
    slug = base_slug
    counter = 1
    while model.objects.filter(slug=slug).exclude(pk=instance_pk).exists():
        slug = f"{base_slug}-{counter}"
        counter += 1
    return slug


class Category(models.Model):
    """Flat category for organizing articles."""

    name = models.CharField(max_length=100, unique=True)
    slug = models.SlugField(max_length=100, unique=True)
    description = models.TextField(blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["name"]
        verbose_name_plural = "Categories"

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug and cms_settings.AUTO_GENERATE_SLUGS:
            self.slug = unique_slug(Category, self.name, self.pk)
        super().save(*args, **kwargs)

    @property
    def article_count(self):
        """Return count of published articles in this category."""
        return self.articles.filter(is_published=True).count()


class Tag(models.Model):
    """
    Flat tag for articles.

    Tags are non-hierarchical and can be applied to multiple articles.
    """

    name = models.CharField(max_length=100, unique=True)
    slug = models.SlugField(max_length=100, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self):
        return self.name

    def save(self, *args, **kwargs):
        if not self.slug and cms_settings.AUTO_GENERATE_SLUGS:
            self.slug = unique_slug(Tag, self.name, self.pk)
        super().save(*args, **kwargs)

    @property
    def article_count(self):
        return self.articles.filter(is_published=True).count()


class Article(models.Model):
    """
    Blog article.

    Every save reconciles the article's image records against ``content``
    and ``featured_image_url`` (see ``article_cms.signals``).
    """

    id = models.UUIDField(primary_key=True, default=uuid.uuid4, editable=False)

    # Content
    title = models.CharField(max_length=255)
    slug = models.SlugField(max_length=255, unique=True, blank=True)
    content = models.TextField(blank=True)
    excerpt = models.TextField(
        blank=True,
        help_text="Optional manual excerpt. Auto-generated if blank.",
    )
    featured_image_url = models.URLField(
        max_length=1000,
        blank=True,
        help_text="CDN URL of the hero image",
    )

    author = models.ForeignKey(
        settings.AUTH_USER_MODEL,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="cms_articles",
    )

    # Taxonomy
    category = models.ForeignKey(
        Category,
        null=True,
        blank=True,
        on_delete=models.SET_NULL,
        related_name="articles",
    )
    tags = models.ManyToManyField(Tag, related_name="articles", blank=True)

    # Status
    is_published = models.BooleanField(default=False)
    published_at = models.DateTimeField(null=True, blank=True, db_index=True)

    created_at = models.DateTimeField(auto_now_add=True, db_index=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        ordering = ["-created_at"]
        indexes = [
            models.Index(fields=["is_published", "-created_at"], name="article_published_idx"),
        ]

    def __str__(self):
        return self.title

    def save(self, *args, **kwargs):
        if not self.slug and cms_settings.AUTO_GENERATE_SLUGS:
            self.slug = unique_slug(Article, self.title, self.pk)

        if self.is_published and not self.published_at:
            self.published_at = timezone.now()

        super().save(*args, **kwargs)

    @property
    def preview(self):
        """Return the excerpt, or the first 280 characters of content."""
        if self.excerpt:
            return self.excerpt
        if len(self.content) > 280:
            return self.content[:280] + "..."
        return self.content

    def publish(self):
        """Publish the article immediately."""
        self.is_published = True
        self.published_at = timezone.now()
        self.save(update_fields=["is_published", "published_at", "updated_at"])

    def unpublish(self):
        self.is_published = False
        self.save(update_fields=["is_published", "updated_at"])
