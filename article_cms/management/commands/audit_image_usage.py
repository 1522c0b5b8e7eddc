"""
Re-reconcile the images of every article.

Corrects drift between article content and image records, e.g. after a
bulk import that bypassed the save hooks.
"""
from django.core.management.base import BaseCommand, CommandError

from article_cms.exceptions import StorageUnavailable
from article_cms.tracking import audit_all_articles


class Command(BaseCommand):
    help = "Rescan all articles and update image usage tracking."

    def handle(self, *args, **options):
        try:
            result = audit_all_articles()
        except StorageUnavailable as exc:
            raise CommandError(f"Image store unavailable: {exc}") from exc

        for error in result["errors"]:
            self.stderr.write(f"Article {error['article_id']}: {error['error']}")
        self.stdout.write(
            self.style.SUCCESS(
                f"Scanned {result['scanned_articles']} articles, "
                f"updated {result['updated_images']} images."
            )
        )
