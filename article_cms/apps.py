"""Django app configuration for article_cms."""
from django.apps import AppConfig


class ArticleCMSConfig(AppConfig):
    """Configuration for the article CMS app."""

    default_auto_field = "django.db.models.BigAutoField"
    name = "article_cms"
    verbose_name = "Article CMS"

    def ready(self):
        """Connect article save/delete hooks to image tracking."""
        from . import signals  # noqa: F401
