"""
Tests for the cleanup sweep and forced deletes.
"""
from datetime import timedelta
from unittest import mock

from django.db import OperationalError
from django.utils import timezone

from article_cms import cleanup
from article_cms.cleanup import (
    CleanupResult,
    cleanup_stale_orphans,
    force_delete_images,
    preview_cleanup,
    run_cleanup,
)
from article_cms.models import ImageRecord
from article_cms.tracking import reconcile_article_images

from .fakes import InMemoryGateway, img


class TestRunCleanup:
    """Tests for run_cleanup."""

    def test_deletes_due_images(self, gateway, make_image, due_image, article):
        due = due_image("old.png", file_size=2048)
        used = make_image("used.png", article=article, is_used=True)
        waiting = make_image(
            "waiting.png",
            scheduled_for_deletion_at=timezone.now() + timedelta(days=3),
        )

        result = run_cleanup(gateway=gateway)

        assert result.deleted_count == 1
        assert result.deleted_urls == [due.remote_url]
        assert result.freed_bytes == 2048
        assert result.errors == []
        assert InMemoryGateway.deleted == [due.remote_file_id]

        due.refresh_from_db()
        assert due.deleted_at is not None
        assert due.scheduled_for_deletion_at is None
        for image in (used, waiting):
            image.refresh_from_db()
            assert image.deleted_at is None

    def test_second_run_deletes_nothing(self, gateway, due_image):
        due_image("a.png")
        due_image("b.png")
        now = timezone.now()

        first = run_cleanup(now=now, gateway=gateway)
        second = run_cleanup(now=now, gateway=gateway)

        assert first.deleted_count == 2
        assert second.deleted_count == 0
        assert len(InMemoryGateway.deleted) == 2

    def test_failure_is_isolated(self, gateway, due_image):
        first = due_image("one.png")
        failing = due_image("two.png")
        third = due_image("three.png")
        InMemoryGateway.fail_on_delete.add(failing.remote_file_id)

        result = run_cleanup(gateway=gateway)

        assert result.deleted_count == 2
        assert set(result.deleted_urls) == {first.remote_url, third.remote_url}
        assert len(result.errors) == 1
        assert result.errors[0]["id"] == str(failing.pk)
        assert "timed out" in result.errors[0]["error"]

        failing.refresh_from_db()
        assert failing.deleted_at is None
        assert failing.scheduled_for_deletion_at is not None

    def test_failed_image_is_retried_next_sweep(self, gateway, due_image):
        failing = due_image("two.png")
        InMemoryGateway.fail_on_delete.add(failing.remote_file_id)
        run_cleanup(gateway=gateway)

        InMemoryGateway.fail_on_delete.clear()
        result = run_cleanup(gateway=gateway)

        assert result.deleted_urls == [failing.remote_url]

    def test_store_failure_while_marking_is_reported(self, gateway, due_image):
        first = due_image("one.png")
        failing = due_image("two.png")
        mark_deleted = cleanup._mark_deleted

        def flaky_mark(record, eligible, deleted_at):
            if record.pk == failing.pk:
                raise OperationalError("database is locked")
            return mark_deleted(record, eligible, deleted_at)

        with mock.patch.object(cleanup, "_mark_deleted", side_effect=flaky_mark):
            result = run_cleanup(gateway=gateway)

        assert result.deleted_urls == [first.remote_url]
        assert len(result.errors) == 1
        assert result.errors[0]["id"] == str(failing.pk)
        assert "database is locked" in result.errors[0]["error"]
        assert set(InMemoryGateway.deleted) == {first.remote_file_id, failing.remote_file_id}

        failing.refresh_from_db()
        assert failing.deleted_at is None
        assert failing.scheduled_for_deletion_at is not None

        retry = run_cleanup(gateway=gateway)
        assert retry.deleted_urls == [failing.remote_url]

    def test_rescued_before_delete_is_skipped(self, gateway, due_image, article):
        image = due_image("a.png", article=article)
        due_for_deletion = ImageRecord.objects.due_for_deletion

        def load_then_rescue(now=None):
            records = list(due_for_deletion(now))
            reconcile_article_images(article.pk, img("a.png"))
            return records

        with mock.patch.object(
            ImageRecord.objects, "due_for_deletion", side_effect=load_then_rescue
        ):
            result = run_cleanup(gateway=gateway)

        assert result.deleted_count == 0
        assert result.errors == []
        assert InMemoryGateway.deleted == []
        image.refresh_from_db()
        assert image.is_used
        assert image.deleted_at is None

    def test_rescued_during_delete_stays_live(self, gateway, due_image, article):
        image = due_image("a.png", article=article)
        wait = cleanup.as_completed

        def rescue_then_wait(futures):
            reconcile_article_images(article.pk, img("a.png"))
            return wait(futures)

        with mock.patch.object(cleanup, "as_completed", side_effect=rescue_then_wait):
            result = run_cleanup(gateway=gateway)

        assert result.deleted_count == 0
        assert result.errors[0]["id"] == str(image.pk)
        image.refresh_from_db()
        assert image.is_used
        assert image.deleted_at is None
        assert image.scheduled_for_deletion_at is None

    def test_nothing_due(self, gateway, db):
        result = run_cleanup(gateway=gateway)
        assert result.as_dict() == {
            "deleted_count": 0,
            "deleted_urls": [],
            "errors": [],
            "freed_bytes": 0,
        }

    def test_uses_configured_gateway(self, due_image):
        due = due_image("a.png")

        run_cleanup()

        assert InMemoryGateway.deleted == [due.remote_file_id]


class TestForceDelete:
    """Tests for force_delete_images."""

    def test_deletes_used_images(self, gateway, make_image, article):
        image = make_image("a.png", article=article, is_used=True, is_featured_image=True)

        result = force_delete_images([image.pk], gateway=gateway)

        assert result.deleted_count == 1
        image.refresh_from_db()
        assert image.deleted_at is not None
        assert not image.is_used
        assert not image.is_featured_image

    def test_failure_is_isolated(self, gateway, make_image, article):
        first = make_image("one.png", article=article, is_used=True)
        failing = make_image("two.png", article=article, is_used=True)
        third = make_image("three.png")
        InMemoryGateway.fail_on_delete.add(failing.remote_file_id)

        result = force_delete_images([first.pk, failing.pk, third.pk], gateway=gateway)

        assert result.deleted_count == 2
        assert set(result.deleted_urls) == {first.remote_url, third.remote_url}
        assert [error["id"] for error in result.errors] == [str(failing.pk)]
        failing.refresh_from_db()
        assert failing.deleted_at is None
        assert failing.is_used

    def test_skips_deleted_and_unknown(self, gateway, make_image):
        gone = make_image("gone.png", deleted_at=timezone.now())

        result = force_delete_images([gone.pk, ImageRecord().pk], gateway=gateway)

        assert result.deleted_count == 0
        assert InMemoryGateway.deleted == []


class TestStaleOrphans:
    """Tests for cleanup_stale_orphans."""

    def _age(self, image, hours):
        ImageRecord.objects.filter(pk=image.pk).update(
            created_at=timezone.now() - timedelta(hours=hours)
        )

    def test_deletes_old_orphans_only(self, gateway, make_image, article):
        stale = make_image("stale.png")
        fresh = make_image("fresh.png")
        owned = make_image("owned.png", article=article, is_used=True)
        self._age(stale, 72)
        self._age(owned, 72)

        result = cleanup_stale_orphans(max_age_hours=48, gateway=gateway)

        assert result.deleted_urls == [stale.remote_url]
        fresh.refresh_from_db()
        owned.refresh_from_db()
        assert fresh.deleted_at is None
        assert owned.deleted_at is None

    def test_batch_size_takes_oldest_first(self, gateway, make_image):
        oldest = make_image("oldest.png")
        older = make_image("older.png")
        self._age(oldest, 100)
        self._age(older, 80)

        result = cleanup_stale_orphans(max_age_hours=48, batch_size=1, gateway=gateway)

        assert result.deleted_urls == [oldest.remote_url]


class TestPreviewCleanup:
    """Tests for preview_cleanup."""

    def test_preview_deletes_nothing(self, make_image, due_image):
        due = due_image("a.png", file_size=500)
        make_image("b.png", scheduled_for_deletion_at=timezone.now() + timedelta(days=1))

        preview = preview_cleanup()

        assert preview == {
            "eligible_for_deletion": 1,
            "estimated_freed_bytes": 500,
            "urls": [due.remote_url],
        }
        due.refresh_from_db()
        assert due.deleted_at is None
        assert InMemoryGateway.deleted == []


class TestCleanupResult:
    def test_merge(self):
        first = CleanupResult(deleted_count=1, deleted_urls=["a"], freed_bytes=10)
        second = CleanupResult(
            deleted_count=2, deleted_urls=["b", "c"], errors=[{"id": "x"}], freed_bytes=5
        )

        merged = first.merge(second)

        assert merged.deleted_count == 3
        assert merged.deleted_urls == ["a", "b", "c"]
        assert merged.errors == [{"id": "x"}]
        assert merged.freed_bytes == 15
