"""
Models for django-article-cms.

All models are importable from article_cms.models:

    from article_cms.models import Article, Category, Tag, ImageRecord
"""
from .articles import Category, Tag, Article
from .images import ImageRecord

__all__ = [
    # Articles
    "Category",
    "Tag",
    "Article",
    # Images
    "ImageRecord",
]
