from django.core.management.base import BaseCommand, CommandError

from catalog.context import CatalogContext
from catalog.purge import purge


class Command(BaseCommand):
    help = "Delete expired builds and empty tags for one project or all projects."

    def add_arguments(self, parser):
        parser.add_argument("--project", default=None, help="Only purge this project.")

    def handle(self, *args, **options):
        context = CatalogContext.from_settings()
        outcomes = purge(context, options["project"] or None)
        failed = []
        for outcome in outcomes:
            if outcome.ok:
                self.stdout.write(
                    f"{outcome.project_id}: purged {len(outcome.deleted_builds)} builds, "
                    f"{len(outcome.deleted_tags)} tags."
                )
            else:
                failed.append(outcome.project_id)
                self.stderr.write(f"{outcome.project_id}: {outcome.error}")
        if failed and options["project"]:
            raise CommandError(f"Purge failed for project '{options['project']}'.")
