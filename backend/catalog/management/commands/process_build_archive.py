from django.core.management.base import BaseCommand, CommandError

from catalog.context import CatalogContext
from catalog.errors import CatalogError
from catalog.processing import process_build_archive


class Command(BaseCommand):
    help = "Expand the stored archive of a build variant into storage."

    def add_arguments(self, parser):
        parser.add_argument("project")
        parser.add_argument("build")
        parser.add_argument("variant", nargs="?", default="primary")

    def handle(self, *args, **options):
        context = CatalogContext.from_settings()
        try:
            count = process_build_archive(context, options["project"], options["build"], options["variant"])
        except CatalogError as exc:
            raise CommandError(exc.message) from exc
        self.stdout.write(f"Uploaded {count} files.")
