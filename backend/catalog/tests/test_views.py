import json
import shutil
import tempfile
from unittest import mock

from django.core.files.uploadedfile import SimpleUploadedFile
from django.test import SimpleTestCase, override_settings

from catalog.builds import BuildLedger
from catalog.context import reset_default_providers
from catalog.tests.helpers import make_zip


class CatalogApiTests(SimpleTestCase):
    def setUp(self):
        self.storage_root = tempfile.mkdtemp(prefix="storybooker-api-")
        self.addCleanup(shutil.rmtree, self.storage_root, True)
        platform = {
            "storage": {"providers": [{"name": "disk", "type": "local", "local": {"base_path": self.storage_root}}]},
            "database": {"providers": [{"name": "memory", "type": "local", "local": {}}]},
        }
        settings_override = override_settings(
            STORYBOOKER_PLATFORM_CONFIG=platform,
            STORYBOOKER_API_TOKEN="",
            STORYBOOKER_WEBHOOKS=[],
            STORYBOOKER_QUEUE_LARGE_ZIP_PROCESSING=False,
        )
        settings_override.enable()
        self.addCleanup(settings_override.disable)
        reset_default_providers()
        self.addCleanup(reset_default_providers)

        self._post_json("/api/projects", {"id": "p1", "name": "Project One", "gitHubDefaultBranch": "main"})
        self._post_json("/api/projects/p1/builds", {"id": "b1", "tags": ["main", "feature-x"]})

    def _post_json(self, url, payload):
        response = self.client.post(url, data=json.dumps(payload), content_type="application/json")
        self.assertIn(response.status_code, (200, 201), response.content.decode())
        return response

    def test_project_detail_and_update(self):
        response = self.client.get("/api/projects/p1")
        self.assertEqual(response.json()["latestBuildId"], "b1")
        response = self.client.patch(
            "/api/projects/p1", data=json.dumps({"name": "Renamed"}), content_type="application/json"
        )
        self.assertEqual(response.json()["name"], "Renamed")

    def test_project_create_validation(self):
        response = self.client.post("/api/projects", data=json.dumps({"id": "Bad Id"}), content_type="application/json")
        self.assertEqual(response.status_code, 400)
        body = response.json()
        self.assertEqual(body["error"], "ValidationFailed")
        self.assertTrue(body["details"])

    def test_create_and_list_builds(self):
        response = self.client.get("/api/projects/p1/builds")
        self.assertEqual(response.status_code, 200)
        builds = response.json()["builds"]
        self.assertEqual(builds[0]["id"], "b1")
        self.assertEqual(builds[0]["tagIds"], ["main", "feature-x"])
        self.assertEqual(builds[0]["primary"], "none")

    def test_duplicate_build_conflicts(self):
        response = self.client.post(
            "/api/projects/p1/builds", data=json.dumps({"id": "b1", "tags": ["main"]}), content_type="application/json"
        )
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"], "AlreadyExists")

    def test_missing_build_is_404(self):
        response = self.client.get("/api/projects/p1/builds/nope")
        self.assertEqual(response.status_code, 404)
        self.assertEqual(response.json()["error"], "NotFound")

    def test_multipart_upload_processes_inline(self):
        upload = SimpleUploadedFile("storybook.zip", make_zip(), content_type="application/zip")
        response = self.client.post("/api/projects/p1/builds/b1/upload", data={"file": upload, "variant": "primary"})
        self.assertEqual(response.status_code, 204, response.content.decode())
        build = self.client.get("/api/projects/p1/builds/b1").json()
        self.assertEqual(build["primary"], "ready")

        stories = self.client.get("/api/projects/p1/builds/b1/stories").json()["stories"]
        self.assertEqual([story["id"] for story in stories], ["button--primary"])

    def test_raw_zip_upload_uses_query_variant(self):
        response = self.client.post(
            "/api/projects/p1/builds/b1/upload?variant=coverage", data=make_zip(), content_type="application/zip"
        )
        self.assertEqual(response.status_code, 204, response.content.decode())
        self.assertEqual(self.client.get("/api/projects/p1/builds/b1").json()["coverage"], "ready")

    def test_reupload_is_rejected(self):
        self.client.post("/api/projects/p1/builds/b1/upload", data=make_zip(), content_type="application/zip")
        response = self.client.post("/api/projects/p1/builds/b1/upload", data=make_zip(), content_type="application/zip")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "InvalidState")

    def test_upload_unsupported_media_type(self):
        response = self.client.post("/api/projects/p1/builds/b1/upload", data="hello", content_type="text/plain")
        self.assertEqual(response.status_code, 415)

    def test_upload_requires_content_length(self):
        response = self.client.post("/api/projects/p1/builds/b1/upload", data=b"", content_type="application/zip")
        self.assertEqual(response.status_code, 400)

    def test_upload_unsupported_variant(self):
        response = self.client.post(
            "/api/projects/p1/builds/b1/upload?variant=videos", data=make_zip(), content_type="application/zip"
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "UnsupportedVariant")

    @override_settings(STORYBOOKER_INLINE_PROCESSING_MAX_BYTES=0)
    def test_process_zip_task_completes_deferred_upload(self):
        self.client.post("/api/projects/p1/builds/b1/upload", data=make_zip(), content_type="application/zip")
        self.assertEqual(self.client.get("/api/projects/p1/builds/b1").json()["primary"], "uploaded")

        response = self.client.post("/tasks/process-zip?projectId=p1&buildId=b1&variant=primary")
        self.assertEqual(response.status_code, 204, response.content.decode())
        self.assertEqual(self.client.get("/api/projects/p1/builds/b1").json()["primary"], "ready")

    def test_process_zip_task_requires_ids(self):
        response = self.client.post("/tasks/process-zip")
        self.assertEqual(response.status_code, 400)
        self.assertEqual(len(response.json()["details"]), 2)

    def test_tags_endpoints(self):
        tags = self.client.get("/api/projects/p1/tags").json()["tags"]
        self.assertEqual({tag["id"]: tag["buildsCount"] for tag in tags}, {"feature-x": 1, "main": 1})

        created = self._post_json("/api/projects/p1/tags", {"type": "pr", "value": "123"}).json()
        self.assertEqual(created["id"], "123")
        prs = self.client.get("/api/projects/p1/tags?type=pr").json()["tags"]
        self.assertEqual([tag["id"] for tag in prs], ["123"])

    def test_patch_tag(self):
        response = self.client.patch(
            "/api/projects/p1/tags/feature-x", data=json.dumps({"type": "ticket"}), content_type="application/json"
        )
        self.assertEqual(response.status_code, 200)
        self.assertEqual(response.json()["type"], "ticket")
        missing = self.client.patch("/api/projects/p1/tags/nope", data="{}", content_type="application/json")
        self.assertEqual(missing.status_code, 404)

    def test_build_id_with_path_separator_is_rejected(self):
        response = self.client.post(
            "/api/projects/p1/builds", data=json.dumps({"id": "b1/primary", "tags": ["main"]}), content_type="application/json"
        )
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "ValidationFailed")

    def test_default_branch_tag_cannot_be_deleted(self):
        response = self.client.delete("/api/projects/p1/tags/main")
        self.assertEqual(response.status_code, 409)
        self.assertEqual(response.json()["error"], "Protected")

    def test_delete_tag_detaches_builds(self):
        response = self.client.delete("/api/projects/p1/tags/feature-x")
        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get("/api/projects/p1/builds/b1").json()["tagIds"], ["main"])

    def test_delete_build(self):
        response = self.client.delete("/api/projects/p1/builds/b1")
        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get("/api/projects/p1").json()["latestBuildId"], "")

    def test_purge_task(self):
        response = self.client.post("/tasks/purge", data=json.dumps({"projectId": "p1"}), content_type="application/json")
        self.assertEqual(response.status_code, 204)
        self.assertEqual(self.client.get("/api/projects/p1/builds/b1").status_code, 200)

    def test_webhook_endpoints(self):
        created = self._post_json("/api/projects/p1/webhooks", {"url": "https://hooks.example/in"}).json()
        listed = self.client.get("/api/projects/p1/webhooks").json()["webhooks"]
        self.assertEqual([hook["id"] for hook in listed], [created["id"]])
        self.assertEqual(self.client.delete(f"/api/projects/p1/webhooks/{created['id']}").status_code, 204)

    def test_unexpected_errors_are_generic(self):
        with mock.patch.object(BuildLedger, "list", side_effect=RuntimeError("adapter exploded")):
            with self.assertLogs("catalog.views", level="ERROR"):
                response = self.client.get("/api/projects/p1/builds")
        self.assertEqual(response.status_code, 500)
        self.assertEqual(response.json(), {"error": "Internal", "message": "Internal server error."})

    def test_method_not_allowed(self):
        response = self.client.put("/api/projects/p1/builds/b1")
        self.assertEqual(response.status_code, 405)
