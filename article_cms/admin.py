"""
Django admin configuration for article_cms.
"""
from django.contrib import admin, messages
from django.utils.html import format_html

from .cleanup import force_delete_images, run_cleanup
from .models import Article, Category, ImageRecord, Tag


class ImageRecordInline(admin.TabularInline):
    """Read-only list of an article's tracked images."""

    model = ImageRecord
    extra = 0
    can_delete = False
    fields = [
        "file_name",
        "remote_url",
        "is_used",
        "is_featured_image",
        "scheduled_for_deletion_at",
    ]
    readonly_fields = fields

    def has_add_permission(self, request, obj=None):
        return False

    def get_queryset(self, request):
        return super().get_queryset(request).filter(deleted_at__isnull=True)


@admin.register(Category)
class CategoryAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "article_count", "created_at"]
    search_fields = ["name", "slug", "description"]
    prepopulated_fields = {"slug": ("name",)}


@admin.register(Tag)
class TagAdmin(admin.ModelAdmin):
    list_display = ["name", "slug", "article_count", "created_at"]
    search_fields = ["name", "slug"]
    prepopulated_fields = {"slug": ("name",)}
    readonly_fields = ["created_at"]


@admin.register(Article)
class ArticleAdmin(admin.ModelAdmin):
    list_display = ["title", "author", "category", "is_published", "created_at"]
    list_filter = ["is_published", "category", "created_at"]
    search_fields = ["title", "content", "author__username"]
    raw_id_fields = ["author", "category"]
    filter_horizontal = ["tags"]
    date_hierarchy = "created_at"
    inlines = [ImageRecordInline]
    readonly_fields = ["created_at", "updated_at", "published_at"]
    prepopulated_fields = {"slug": ("title",)}

    fieldsets = (
        (None, {
            "fields": ("title", "slug", "content", "excerpt", "featured_image_url", "author")
        }),
        ("Taxonomy", {
            "fields": ("category", "tags")
        }),
        ("Status", {
            "fields": ("is_published", "published_at", "created_at", "updated_at")
        }),
    )

    actions = ["publish_articles", "unpublish_articles"]

    @admin.action(description="Publish selected articles")
    def publish_articles(self, request, queryset):
        for article in queryset:
            article.publish()
        self.message_user(request, f"{queryset.count()} articles published.")

    @admin.action(description="Unpublish selected articles")
    def unpublish_articles(self, request, queryset):
        for article in queryset.filter(is_published=True):
            article.unpublish()
        self.message_user(request, "Selected articles unpublished.")


@admin.register(ImageRecord)
class ImageRecordAdmin(admin.ModelAdmin):
    list_display = [
        "thumbnail_preview",
        "file_name",
        "article",
        "is_used",
        "is_featured_image",
        "human_file_size",
        "scheduled_for_deletion_at",
        "deleted_at",
        "created_at",
    ]
    list_filter = ["is_used", "is_featured_image", "deleted_at", "created_at"]
    search_fields = ["file_name", "remote_url", "remote_file_id"]
    raw_id_fields = ["article"]
    readonly_fields = [
        "id",
        "remote_file_id",
        "remote_url",
        "folder_path",
        "file_size",
        "mime_type",
        "is_used",
        "is_featured_image",
        "last_used_at",
        "scheduled_for_deletion_at",
        "deleted_at",
        "created_at",
        "updated_at",
    ]
    actions = ["delete_from_cdn", "run_cleanup_sweep"]

    def thumbnail_preview(self, obj):
        if obj.deleted_at is None:
            return format_html(
                '<img src="{}" style="max-width: 50px; max-height: 50px;" />',
                obj.remote_url,
            )
        return "-"

    thumbnail_preview.short_description = "Preview"

    def has_delete_permission(self, request, obj=None):
        # Rows must stay: use the CDN delete action instead.
        return False

    @admin.action(description="Delete selected images from the CDN now")
    def delete_from_cdn(self, request, queryset):
        result = force_delete_images(list(queryset.values_list("pk", flat=True)))
        self.message_user(request, f"{result.deleted_count} images deleted.")
        for error in result.errors:
            self.message_user(
                request,
                f"Failed to delete {error['remote_url']}: {error['error']}",
                level=messages.ERROR,
            )

    @admin.action(description="Run cleanup sweep for expired images")
    def run_cleanup_sweep(self, request, queryset):
        result = run_cleanup()
        self.message_user(
            request,
            f"Cleanup completed: {result.deleted_count} deleted, "
            f"{len(result.errors)} failed.",
        )
