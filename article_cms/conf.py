"""
Configuration settings for django-article-cms.

Override these in your Django settings.py:

    BLOG_CMS = {
        'DELETION_GRACE_PERIOD_DAYS': 7,
        'CDN_HOSTS': ['ik.imagekit.io'],
        'IMAGEKIT_PRIVATE_KEY': env('IMAGEKIT_PRIVATE_KEY'),
        ...
    }

The image table is created by ``manage.py migrate`` at deploy time. Nothing
in this app creates or repairs schema at runtime.
"""
from datetime import timedelta

from django.conf import settings

DEFAULTS = {
    # Image lifecycle
    "DELETION_GRACE_PERIOD_DAYS": 7,
    "STALE_ORPHAN_MAX_AGE_HOURS": 48,
    "CLEANUP_MAX_WORKERS": 4,
    "CLEANUP_BATCH_SIZE": 100,

    # CDN
    "CDN_HOSTS": ["ik.imagekit.io"],
    "CDN_GATEWAY": "article_cms.gateway.ImageKitGateway",
    "CDN_TIMEOUT": 10,
    "IMAGEKIT_PRIVATE_KEY": "",
    "IMAGEKIT_UPLOAD_URL": "https://upload.imagekit.io/api/v1/files/upload",
    "IMAGEKIT_API_URL": "https://api.imagekit.io/v1",

    # Uploads
    "UPLOAD_FOLDER": "/blog-articles/",
    "UPLOAD_TAGS": ["blog", "article"],
    "MAX_UPLOAD_SIZE_MB": 10,
    "ALLOWED_IMAGE_TYPES": ["image/jpeg", "image/png", "image/gif", "image/webp"],

    # Articles
    "AUTO_GENERATE_SLUGS": True,
    "SLUG_MAX_LENGTH": 100,
}


class CMSSettings:
    """
    Lazy settings object that reads from Django settings.

    Access via: from article_cms.conf import cms_settings
    """

    def __getattr__(self, name):
        if name not in DEFAULTS:
            raise AttributeError(f"Invalid article_cms setting: {name}")

        user_settings = getattr(settings, "BLOG_CMS", {})
        return user_settings.get(name, DEFAULTS[name])

    @property
    def deletion_grace_period(self):
        """Return the grace period as a timedelta."""
        return timedelta(days=self.DELETION_GRACE_PERIOD_DAYS)

    @property
    def max_upload_bytes(self):
        return self.MAX_UPLOAD_SIZE_MB * 1024 * 1024


cms_settings = CMSSettings()
