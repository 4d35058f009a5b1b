from unittest import mock

from django.test import SimpleTestCase

from catalog import utils
from catalog.builds import BuildLedger
from catalog.errors import AlreadyExists, NotFound, Protected, ValidationFailed
from catalog.tags import TagLedger, parse_tag_specifier
from catalog.tests.helpers import CatalogTestMixin
from catalog.utils import guess_tag_type, slugify_tag


class SlugifyTests(SimpleTestCase):
    def test_slugify_is_idempotent(self):
        for value in ["Feature/New Thing", "  main ", "JIRA-123", "release_1.2", "a--b", "???", "ÜBER cool"]:
            once = slugify_tag(value)
            self.assertEqual(slugify_tag(once), once, value)

    def test_slugify_collapses_non_word_runs(self):
        self.assertEqual(slugify_tag("  Feature/New  Thing "), "feature-new-thing")

    def test_guess_tag_type(self):
        self.assertEqual(guess_tag_type("1234"), "pr")
        self.assertEqual(guess_tag_type("JIRA-42"), "ticket")
        self.assertEqual(guess_tag_type("feature/login"), "branch")

    def test_parse_specifier(self):
        parsed = parse_tag_specifier("PROJ-9;jira;Login page")
        self.assertEqual(parsed["id"], "proj-9")
        self.assertEqual(parsed["type"], "ticket")
        self.assertEqual(parsed["display"], "Login page")

    def test_parse_specifier_without_value_has_no_id(self):
        self.assertEqual(parse_tag_specifier(";branch")["id"], "")
        self.assertEqual(parse_tag_specifier(" ;pr;Display")["id"], "")


class TagLedgerTests(CatalogTestMixin, SimpleTestCase):
    def setUp(self):
        super().setUp()
        self.project = self.create_project("p1")
        self.tags = TagLedger(self.context, "p1")

    def test_project_creation_adds_default_branch_tag(self):
        tag = self.tags.get("main")
        self.assertEqual(tag.type, "branch")
        self.assertEqual(tag.buildsCount, 0)

    def test_create_uses_slug_id(self):
        tag = self.tags.create({"type": "branch", "value": "Feature/Login"})
        self.assertEqual(tag.id, "feature-login")
        self.assertEqual(self.tags.get("feature-login").value, "Feature/Login")
        self.assertEqual(tag.buildsCount, 0)

    def test_create_counts_initial_build(self):
        tag = self.tags.create({"type": "pr", "value": "42"}, counts_as_initial_build=True)
        self.assertEqual(tag.buildsCount, 1)

    def test_create_rejects_duplicates(self):
        self.tags.create({"type": "branch", "value": "develop"})
        with self.assertRaises(AlreadyExists):
            self.tags.create({"type": "branch", "value": "Develop"})

    def test_create_validates_type(self):
        with self.assertRaises(ValidationFailed) as ctx:
            self.tags.create({"type": "label", "value": "x"})
        self.assertTrue(any(error.startswith("type:") for error in ctx.exception.errors))

    def test_resolve_creates_unseen_tags_with_inferred_type(self):
        self.assertEqual(self.tags.resolve_or_create_for_build("1234", "b1"), "1234")
        self.assertEqual(self.tags.resolve_or_create_for_build("ABC-12", "b1"), "abc-12")
        self.assertEqual(self.tags.resolve_or_create_for_build("feature/x", "b1"), "feature-x")
        self.assertEqual(self.tags.get("1234").type, "pr")
        self.assertEqual(self.tags.get("abc-12").type, "ticket")
        feature = self.tags.get("feature-x")
        self.assertEqual(feature.type, "branch")
        self.assertEqual(feature.buildsCount, 1)
        self.assertEqual(feature.latestBuildId, "b1")

    def test_resolve_increments_existing_tag(self):
        self.tags.resolve_or_create_for_build("main", "b1")
        self.tags.resolve_or_create_for_build("main", "b2")
        tag = self.tags.get("main")
        self.assertEqual(tag.buildsCount, 2)
        self.assertEqual(tag.latestBuildId, "b2")

    def test_resolve_uses_explicit_type_and_display_value(self):
        tag_id = self.tags.resolve_or_create_for_build("77;ticket;Checkout flow", "b1")
        self.assertEqual(tag_id, "77")
        tag = self.tags.get("77")
        self.assertEqual(tag.type, "ticket")
        self.assertEqual(tag.value, "Checkout flow")

    def test_resolve_returns_best_guess_on_failure(self):
        with mock.patch.object(TagLedger, "has", side_effect=RuntimeError("database offline")):
            with self.assertLogs("catalog.tags", level="ERROR"):
                tag_id = self.tags.resolve_or_create_for_build("Hotfix Branch", "b1")
        self.assertEqual(tag_id, "hotfix-branch")

    def test_release_reference_floors_at_zero_and_clears_latest(self):
        self.tags.resolve_or_create_for_build("develop", "b1")
        self.tags.release_reference("develop", "b1")
        tag = self.tags.get("develop")
        self.assertEqual(tag.buildsCount, 0)
        self.assertEqual(tag.latestBuildId, "")
        self.tags.release_reference("develop", "b1")
        self.assertEqual(self.tags.get("develop").buildsCount, 0)

    def test_release_reference_keeps_other_latest_build(self):
        self.tags.resolve_or_create_for_build("develop", "b1")
        self.tags.resolve_or_create_for_build("develop", "b2")
        self.tags.release_reference("develop", "b1")
        tag = self.tags.get("develop")
        self.assertEqual(tag.buildsCount, 1)
        self.assertEqual(tag.latestBuildId, "b2")

    def test_delete_default_branch_tag_is_protected(self):
        with self.assertRaises(Protected):
            self.tags.delete("main")
        self.assertTrue(self.tags.has("main"))

    def test_delete_missing_tag(self):
        with self.assertRaises(NotFound):
            self.tags.delete("nope")

    def test_delete_cascades_to_builds(self):
        builds = BuildLedger(self.context, "p1")
        builds.create({"id": "b1", "tags": ["feature-x"]})
        builds.create({"id": "b2", "tags": ["feature-x", "1234"]})

        self.tags.delete("feature-x")

        self.assertFalse(self.tags.has("feature-x"))
        self.assertFalse(builds.has("b1"))
        self.assertEqual(builds.get("b2").tag_ids, ["1234"])
        self.assertEqual(self.tags.get("1234").buildsCount, 1)

    def test_resolve_skips_specifier_without_value(self):
        self.assertEqual(self.tags.resolve_or_create_for_build(";branch", "b1"), "")
        self.assertFalse(self.tags.has("-branch"))

    def test_update_publishes_tag_updated(self):
        self.tags.create({"type": "branch", "value": "dev"})
        with mock.patch("catalog.tags.publish_event") as publish:
            self.tags.update("dev", {"type": "pr"})
        publish.assert_called_once()
        self.assertEqual(publish.call_args[0][1:3], ("tag:updated", "p1"))
        self.assertEqual(publish.call_args[0][3]["id"], "dev")
        self.assertEqual(self.tags.get("dev").type, "pr")

    def test_build_bookkeeping_does_not_publish_tag_updated(self):
        builds = BuildLedger(self.context, "p1")
        with mock.patch("catalog.tags.publish_event") as publish:
            builds.create({"id": "b1", "tags": ["main"]})
            builds.delete("b1")
        events = [call[0][1] for call in publish.call_args_list]
        self.assertNotIn("tag:updated", events)
        self.assertEqual(self.tags.get("main").buildsCount, 0)

    def test_lock_map_does_not_grow_across_build_cycles(self):
        builds = BuildLedger(self.context, "p1")
        before = len(utils._keyed_locks)
        for index in range(20):
            builds.create({"id": f"b{index}", "tags": [f"feature-{index}"]})
            builds.delete(f"b{index}")
        self.assertEqual(len(utils._keyed_locks), before)

    def test_delete_survives_cascade_failure(self):
        self.tags.create({"type": "branch", "value": "old"})
        with mock.patch.object(BuildLedger, "delete_by_tag", side_effect=RuntimeError("boom")):
            with self.assertLogs("catalog.utils", level="ERROR"):
                self.tags.delete("old")
        self.assertFalse(self.tags.has("old"))
