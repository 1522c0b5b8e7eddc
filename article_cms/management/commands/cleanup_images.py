"""
Delete images whose grace period has passed.

Meant to be run by cron, e.g. daily at 2 AM:

    0 2 * * * python manage.py cleanup_images --orphans
"""
from django.core.management.base import BaseCommand, CommandError

from article_cms.cleanup import cleanup_stale_orphans, preview_cleanup, run_cleanup
from article_cms.exceptions import StorageUnavailable


class Command(BaseCommand):
    help = "Delete unused images past their grace period from the CDN."

    def add_arguments(self, parser):
        parser.add_argument(
            "--dry-run",
            action="store_true",
            help="Report what would be deleted without deleting anything.",
        )
        parser.add_argument(
            "--orphans",
            action="store_true",
            help="Also delete orphaned images nobody adopted in time.",
        )
        parser.add_argument(
            "--max-age-hours",
            type=int,
            default=None,
            help="Age after which an orphan counts as stale.",
        )
        parser.add_argument(
            "--workers",
            type=int,
            default=None,
            help="Number of concurrent CDN delete calls.",
        )

    def handle(self, *args, **options):
        try:
            if options["dry_run"]:
                preview = preview_cleanup()
                self.stdout.write(
                    f"{preview['eligible_for_deletion']} images eligible for deletion "
                    f"({preview['estimated_freed_bytes']} bytes)"
                )
                return

            result = run_cleanup(max_workers=options["workers"])
            if options["orphans"]:
                result.merge(cleanup_stale_orphans(max_age_hours=options["max_age_hours"]))
        except StorageUnavailable as exc:
            raise CommandError(f"Image store unavailable: {exc}") from exc

        for error in result.errors:
            self.stderr.write(f"Failed: {error['remote_url']}: {error['error']}")
        self.stdout.write(
            self.style.SUCCESS(
                f"Deleted {result.deleted_count} images, {len(result.errors)} failed."
            )
        )
