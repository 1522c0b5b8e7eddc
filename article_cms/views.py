"""
JSON endpoints for the image-management dashboard.

All views are staff-only.
"""
import logging
import uuid

from django.contrib.auth.mixins import LoginRequiredMixin, UserPassesTestMixin
from django.http import JsonResponse
from django.shortcuts import get_object_or_404
from django.utils import timezone
from django.views import View

from .cleanup import force_delete_images, preview_cleanup, run_cleanup
from .exceptions import InvalidUpload, RemoteServiceError, StorageUnavailable
from .models import Article, ImageRecord
from .tracking import audit_all_articles
from .uploads import upload_image

logger = logging.getLogger(__name__)


class StaffRequiredMixin(LoginRequiredMixin, UserPassesTestMixin):
    """Reject anonymous and non-staff users with 403."""

    raise_exception = True

    def test_func(self):
        return self.request.user.is_staff


class StorageErrorMixin:
    """Turn an unreachable image store into a 503 response."""

    def dispatch(self, request, *args, **kwargs):
        try:
            return super().dispatch(request, *args, **kwargs)
        except StorageUnavailable:
            logger.exception("Image store unavailable")
            return JsonResponse({"error": "Image store unavailable"}, status=503)


class ImageListView(StaffRequiredMixin, StorageErrorMixin, View):
    """List live images, optionally filtered by ``?status=``."""

    def get(self, request):
        status = request.GET.get("status", "all")
        try:
            images = ImageRecord.objects.by_status(status)
        except ValueError as exc:
            return JsonResponse({"error": str(exc)}, status=400)

        article_id = request.GET.get("article")
        if article_id:
            try:
                images = images.filter(article_id=uuid.UUID(article_id))
            except ValueError:
                return JsonResponse({"error": "Invalid article id"}, status=400)

        return JsonResponse({
            "status": status,
            "count": images.count(),
            "images": [image.to_dict() for image in images],
        })


class ImageStatsView(StaffRequiredMixin, StorageErrorMixin, View):
    """Aggregate numbers for the dashboard header."""

    def get(self, request):
        stats = ImageRecord.objects.stats()
        stats["eligible_for_deletion"] = (
            ImageRecord.objects.due_for_deletion(timezone.now()).count()
        )
        total = stats["total_images"]
        stats["utilization_percent"] = (
            round(stats["used_images"] / total * 100) if total else 0
        )
        return JsonResponse(stats)


class CleanupView(StaffRequiredMixin, StorageErrorMixin, View):
    """Run the cleanup sweep now, or preview it with ``dry_run=1``."""

    def post(self, request):
        if request.POST.get("dry_run") in ("1", "true"):
            return JsonResponse({"dry_run": True, **preview_cleanup()})

        result = run_cleanup()
        return JsonResponse({"dry_run": False, **result.as_dict()})


class BulkDeleteView(StaffRequiredMixin, StorageErrorMixin, View):
    """Delete the posted image ids immediately, in use or not."""

    def post(self, request):
        image_ids = request.POST.getlist("ids")
        if not image_ids:
            return JsonResponse({"error": "Image ids are required"}, status=400)
        try:
            image_ids = [uuid.UUID(image_id) for image_id in image_ids]
        except ValueError:
            return JsonResponse({"error": "Invalid image id"}, status=400)

        result = force_delete_images(image_ids)
        return JsonResponse(result.as_dict())


class ScanUsageView(StaffRequiredMixin, StorageErrorMixin, View):
    """Re-reconcile every article's images."""

    def post(self, request):
        return JsonResponse(audit_all_articles())


class ImageUploadView(StaffRequiredMixin, View):
    """Upload an image to the CDN and start tracking it."""

    def post(self, request):
        uploaded_file = request.FILES.get("file")
        if uploaded_file is None:
            return JsonResponse({"error": "No file provided"}, status=400)

        article = None
        article_id = request.POST.get("article")
        if article_id:
            try:
                article_id = uuid.UUID(article_id)
            except ValueError:
                return JsonResponse({"error": "Invalid article id"}, status=400)
            article = get_object_or_404(Article, pk=article_id)

        try:
            uploaded, record = upload_image(uploaded_file, article=article)
        except InvalidUpload as exc:
            return JsonResponse({"error": str(exc)}, status=400)
        except RemoteServiceError as exc:
            logger.error("Image upload failed: %s", exc)
            return JsonResponse({"error": "Upload failed, please retry"}, status=502)

        return JsonResponse(
            {
                "remote_file_id": uploaded.remote_file_id,
                "url": uploaded.remote_url,
                "name": uploaded.name,
                "size": uploaded.size,
                "image_id": str(record.pk) if record else None,
            },
            status=201,
        )
