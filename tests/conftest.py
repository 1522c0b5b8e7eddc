"""
Shared fixtures for django-article-cms tests.
"""
import uuid
from datetime import timedelta

import pytest
from django.contrib.auth import get_user_model
from django.utils import timezone

from article_cms.models import Article, ImageRecord

from .fakes import CDN, InMemoryGateway

User = get_user_model()


@pytest.fixture(autouse=True)
def gateway():
    """Fresh in-memory CDN for every test."""
    InMemoryGateway.reset()
    yield InMemoryGateway()
    InMemoryGateway.reset()


@pytest.fixture
def user(db):
    """Create a test user."""
    return User.objects.create_user(
        username="author",
        email="author@example.com",
        password="testpass123",
    )


@pytest.fixture
def staff_user(db):
    return User.objects.create_user(
        username="editor",
        password="testpass123",
        is_staff=True,
    )


@pytest.fixture
def article(db, user):
    """An article with no images."""
    return Article.objects.create(
        title="Test Article",
        content="<p>Plain text.</p>",
        author=user,
    )


@pytest.fixture
def make_image(db):
    """
    Create a tracked image.

    make_image("x.png") -> orphaned, unused record for https://cdn.example/x.png
    whose file exists on the in-memory CDN.
    """

    def _make(name=None, article=None, **fields):
        name = name or f"{uuid.uuid4().hex[:8]}.png"
        remote_file_id = fields.pop("remote_file_id", f"file-{name}")
        remote_url = fields.pop("remote_url", f"{CDN}/{name}")
        fields.setdefault("file_name", name)
        fields.setdefault("file_size", 1024)
        fields.setdefault("mime_type", "image/png")
        record = ImageRecord.objects.create(
            article=article,
            remote_file_id=remote_file_id,
            remote_url=remote_url,
            **fields,
        )
        InMemoryGateway.add_file(remote_file_id, remote_url)
        return record

    return _make


@pytest.fixture
def due_image(make_image):
    """Create an unused image whose grace period ended yesterday."""

    def _make(name=None, **fields):
        fields.setdefault("is_used", False)
        fields.setdefault(
            "scheduled_for_deletion_at", timezone.now() - timedelta(days=1)
        )
        return make_image(name, **fields)

    return _make

