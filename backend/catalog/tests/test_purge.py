from datetime import datetime, timedelta, timezone

from django.test import SimpleTestCase

from catalog.builds import BuildLedger
from catalog.projects import ProjectLedger
from catalog.purge import purge
from catalog.tags import TagLedger
from catalog.tests.helpers import CatalogTestMixin
from catalog.utils import collection_id


def _days_ago(days: int) -> str:
    return (datetime.now(timezone.utc) - timedelta(days=days)).isoformat()


class PurgeSweepTests(CatalogTestMixin, SimpleTestCase):
    def setUp(self):
        super().setUp()
        self.create_project("p1", purgeRetentionDays=30)
        self.builds = BuildLedger(self.context, "p1")
        self.tags = TagLedger(self.context, "p1")

    def _age(self, build_id: str, days: int) -> None:
        self.context.database.update_document(self.builds.collection_id, build_id, {"updatedAt": _days_ago(days)})

    def test_expired_builds_and_empty_tags_are_removed(self):
        self.builds.create({"id": "b1", "tags": ["main"]})
        self.builds.create({"id": "b2", "tags": ["feature-x"]})
        self._age("b1", 40)
        self._age("b2", 40)
        self.assertEqual(ProjectLedger(self.context).get("p1").latestBuildId, "b1")

        outcomes = purge(self.context, "p1")

        self.assertEqual(len(outcomes), 1)
        self.assertTrue(outcomes[0].ok)
        self.assertEqual(outcomes[0].deleted_builds, ["b2"])
        self.assertEqual(outcomes[0].deleted_tags, ["feature-x"])
        self.assertTrue(self.builds.has("b1"))
        self.assertFalse(self.builds.has("b2"))
        self.assertFalse(self.tags.has("feature-x"))
        self.assertTrue(self.tags.has("main"))

    def test_recent_builds_are_kept(self):
        self.builds.create({"id": "b1", "tags": ["feature-x"]})
        self._age("b1", 5)
        purge(self.context, "p1")
        self.assertTrue(self.builds.has("b1"))
        self.assertTrue(self.tags.has("feature-x"))

    def test_default_branch_tag_survives_with_zero_builds(self):
        self.tags.create({"type": "branch", "value": "stale"})
        self.assertEqual(self.tags.get("main").buildsCount, 0)
        outcomes = purge(self.context, "p1")
        self.assertEqual(outcomes[0].deleted_tags, ["stale"])
        self.assertTrue(self.tags.has("main"))

    def test_all_projects_and_failure_isolation(self):
        self.create_project("p2")
        self.create_project("p3")
        BuildLedger(self.context, "p3").create({"id": "old", "tags": ["feature"]})
        self.context.database.update_document(collection_id("p3", "Builds"), "old", {"updatedAt": _days_ago(90)})
        self.context.database.delete_collection(collection_id("p2", "Builds"))

        with self.assertLogs("catalog.purge", level="ERROR"):
            outcomes = {outcome.project_id: outcome for outcome in purge(self.context)}

        self.assertEqual(sorted(outcomes), ["p1", "p2", "p3"])
        self.assertFalse(outcomes["p2"].ok)
        self.assertTrue(outcomes["p1"].ok)
        self.assertTrue(outcomes["p3"].ok)
        self.assertEqual(outcomes["p3"].deleted_builds, ["old"])

    def test_missing_project_is_reported(self):
        with self.assertLogs("catalog.purge", level="ERROR"):
            outcomes = purge(self.context, "ghost")
        self.assertFalse(outcomes[0].ok)

    def test_explicit_now(self):
        self.builds.create({"id": "b1", "tags": ["feature-x"]})
        purge(self.context, "p1", now=datetime.now(timezone.utc) + timedelta(days=31))
        self.assertFalse(self.builds.has("b1"))
