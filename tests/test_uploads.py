"""
Tests for image uploads.
"""
from datetime import timedelta
from io import BytesIO
from unittest import mock

import pytest
from PIL import Image
from django.core.files.uploadedfile import SimpleUploadedFile
from django.db import OperationalError
from django.test import override_settings
from django.utils import timezone

from article_cms.exceptions import InvalidUpload, RemoteServiceError
from article_cms.gateway import UploadedFile
from article_cms.models import ImageRecord
from article_cms.uploads import (
    generate_file_name,
    upload_folder,
    upload_image,
    validate_image,
)

from .fakes import CDN, InMemoryGateway


def png_file(name="photo.png", size=(8, 8)):
    buffer = BytesIO()
    Image.new("RGB", size, color="red").save(buffer, format="PNG")
    return SimpleUploadedFile(name, buffer.getvalue(), content_type="image/png")


class TestNaming:
    def test_file_name_for_article(self):
        name = generate_file_name("1234")
        assert name.startswith("article-1234-")

    def test_file_name_without_article(self):
        assert generate_file_name().startswith("article-new-")

    def test_file_names_are_unique(self):
        assert generate_file_name() != generate_file_name()

    def test_upload_folder(self):
        assert upload_folder("1234") == "/blog-articles/1234/"
        assert upload_folder() == "/blog-articles/temp/"


class TestValidateImage:
    """Tests for validate_image."""

    def test_valid_png(self):
        upload = png_file()
        assert validate_image(upload).startswith(b"\x89PNG")

    def test_wrong_type(self):
        upload = SimpleUploadedFile("notes.pdf", b"%PDF-1.4", content_type="application/pdf")
        with pytest.raises(InvalidUpload, match="Invalid file type"):
            validate_image(upload)

    def test_not_an_image(self):
        upload = SimpleUploadedFile("fake.png", b"not really a png", content_type="image/png")
        with pytest.raises(InvalidUpload, match="not a readable image"):
            validate_image(upload)

    @override_settings(BLOG_CMS={"MAX_UPLOAD_SIZE_MB": 0})
    def test_too_large(self):
        with pytest.raises(InvalidUpload, match="too large"):
            validate_image(png_file())


class TestUploadImage:
    """Tests for upload_image."""

    def test_orphan_upload(self, db, gateway):
        uploaded, record = upload_image(png_file(), gateway=gateway)

        assert uploaded.remote_url.startswith(f"{CDN}/blog-articles/temp/article-new-")
        assert uploaded.remote_file_id in InMemoryGateway.files
        assert record.remote_url == uploaded.remote_url
        assert record.is_orphaned
        assert not record.is_used
        assert record.folder_path == "/blog-articles/temp/"
        assert record.mime_type == "image/png"

    def test_new_upload_is_scheduled(self, db, gateway):
        _, record = upload_image(png_file(), gateway=gateway)

        delay = record.scheduled_for_deletion_at - timezone.now()
        assert timedelta(days=6, hours=23) < delay <= timedelta(days=7)

    def test_upload_for_article(self, article, gateway):
        uploaded, record = upload_image(png_file(), article=article, gateway=gateway)

        assert f"/blog-articles/{article.pk}/" in uploaded.remote_url
        assert record.article_id == article.pk

    def test_uploaded_image_adopted_on_save(self, article, gateway):
        uploaded, record = upload_image(png_file(), gateway=gateway)

        article.content = f'<img src="{uploaded.remote_url}">'
        article.save()

        record.refresh_from_db()
        assert record.article_id == article.pk
        assert record.is_used
        assert record.scheduled_for_deletion_at is None

    def test_invalid_file_is_not_uploaded(self, db, gateway):
        upload = SimpleUploadedFile("fake.png", b"nope", content_type="image/png")

        with pytest.raises(InvalidUpload):
            upload_image(upload, gateway=gateway)

        assert InMemoryGateway.files == {}
        assert not ImageRecord.objects.exists()

    def test_remote_failure_propagates(self, db, gateway):
        InMemoryGateway.fail_uploads = True

        with pytest.raises(RemoteServiceError):
            upload_image(png_file(), gateway=gateway)

        assert not ImageRecord.objects.exists()

    def test_already_tracked_url(self, make_image, gateway):
        existing = make_image("dup.png")
        gateway.upload = mock.Mock(
            return_value=UploadedFile(
                remote_file_id="other", remote_url=existing.remote_url, name="dup.png"
            )
        )

        _, record = upload_image(png_file(), gateway=gateway)

        assert record.pk == existing.pk
        assert ImageRecord.objects.count() == 1

    def test_store_unavailable_keeps_upload(self, db, gateway):
        with mock.patch.object(
            ImageRecord.objects,
            "create_record",
            side_effect=OperationalError("database is locked"),
        ):
            uploaded, record = upload_image(png_file(), gateway=gateway)

        assert record is None
        assert uploaded.remote_file_id in InMemoryGateway.files

    def test_already_tracked_url_unreadable(self, make_image, gateway):
        existing = make_image("dup.png")
        gateway.upload = mock.Mock(
            return_value=UploadedFile(
                remote_file_id="other", remote_url=existing.remote_url, name="dup.png"
            )
        )

        with mock.patch.object(
            ImageRecord.objects, "get", side_effect=OperationalError("database is locked")
        ):
            uploaded, record = upload_image(png_file(), gateway=gateway)

        assert record is None
        assert uploaded.remote_url == existing.remote_url
