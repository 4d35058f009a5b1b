import io
import shutil
import tempfile
import zipfile
from typing import Dict

from catalog.config import CatalogConfig
from catalog.context import CatalogContext
from catalog.database.providers.local import LocalDocumentProvider
from catalog.projects import ProjectLedger
from catalog.storage.providers.local import LocalStorageProvider

SAMPLE_SITE = {
    "index.html": "<html><body>storybook</body></html>",
    "iframe.html": "<html></html>",
    "assets/main.js": "console.log('hello');",
    "assets/style.css": "body { margin: 0; }",
    "index.json": '{"v": 5, "entries": {"button--primary": {"id": "button--primary", "title": "Button"}}}',
    ".DS_Store": "junk",
    "nested/.hidden/secret.txt": "hidden",
}


def make_zip(files: Dict[str, str] = None) -> bytes:
    buffer = io.BytesIO()
    with zipfile.ZipFile(buffer, "w", zipfile.ZIP_DEFLATED) as bundle:
        for name, content in (files if files is not None else SAMPLE_SITE).items():
            bundle.writestr(name, content)
    return buffer.getvalue()


class CatalogTestMixin:
    """In-memory database and a temporary storage directory per test."""

    def setUp(self):
        super().setUp()
        self.storage_root = tempfile.mkdtemp(prefix="storybooker-test-")
        self.addCleanup(shutil.rmtree, self.storage_root, True)
        self.context = self.make_context()

    def make_context(self, **config) -> CatalogContext:
        return CatalogContext(
            database=LocalDocumentProvider({}),
            storage=LocalStorageProvider({"base_path": self.storage_root}),
            config=CatalogConfig(**config),
        )

    def create_project(self, project_id: str = "p1", **data):
        payload = {"id": project_id, "gitHubDefaultBranch": "main"}
        payload.update(data)
        return ProjectLedger(self.context).create(payload)
