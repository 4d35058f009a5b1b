import logging
from typing import Any, Callable, Dict, List, Optional

from jsonschema import Draft202012Validator

from .context import CatalogContext
from .errors import AlreadyExists, ValidationFailed
from .records import DEFAULT_BRANCH, Project, Tag
from .utils import best_effort, collection_id, container_id, now_iso, slugify_tag
from .webhooks import publish_event

logger = logging.getLogger(__name__)

PROJECTS_COLLECTION = collection_id(None, "Projects")

PROJECT_CREATE_SCHEMA = {
    "type": "object",
    "required": ["id"],
    "properties": {
        "id": {"type": "string", "pattern": "^[a-z0-9][a-z0-9-]{0,60}$"},
        "name": {"type": "string"},
        "gitHubRepository": {"type": "string"},
        "gitHubDefaultBranch": {"type": "string", "minLength": 1},
        "purgeRetentionDays": {"type": "integer", "minimum": 1},
    },
}

PROJECT_UPDATE_FIELDS = {"name", "gitHubRepository", "gitHubDefaultBranch", "purgeRetentionDays", "latestBuildId"}


def _schema_errors(schema: Dict[str, Any], payload: Dict[str, Any]) -> List[str]:
    validator = Draft202012Validator(schema)
    errors = []
    for error in sorted(validator.iter_errors(payload), key=lambda e: list(e.path)):
        path = ".".join(str(p) for p in error.path) if error.path else "root"
        errors.append(f"{path}: {error.message}")
    return errors


class ProjectLedger:
    def __init__(self, context: CatalogContext):
        self.context = context
        self.collection_id = PROJECTS_COLLECTION

    @property
    def database(self):
        self.context.raise_if_cancelled()
        return self.context.database

    @property
    def storage(self):
        self.context.raise_if_cancelled()
        return self.context.storage

    def list(self, filter: Optional[Callable[[Dict[str, Any]], bool]] = None) -> List[Project]:
        logger.debug("List projects...")
        if not self.database.has_collection(self.collection_id):
            return []
        items = self.database.list_documents(self.collection_id, filter=filter, sort=lambda item: item.get("id") or "")
        return [Project.from_document(item) for item in items]

    def get(self, project_id: str) -> Project:
        logger.debug("Get project '%s'...", project_id)
        return Project.from_document(self.database.get_document(self.collection_id, project_id))

    def has(self, project_id: str) -> bool:
        return self.database.has_document(self.collection_id, project_id)

    def create(self, data: Dict[str, Any]) -> Project:
        payload = dict(data or {})
        errors = _schema_errors(PROJECT_CREATE_SCHEMA, payload)
        if errors:
            raise ValidationFailed(errors)
        project_id = payload["id"]
        logger.info("Create project '%s'...", project_id)
        if not self.database.has_collection(self.collection_id):
            best_effort("Create projects collection", self.database.create_collection, self.collection_id)
        if self.has(project_id):
            raise AlreadyExists(f"Project '{project_id}' already exists.")

        self.storage.create_container(container_id(project_id))
        for suffix in ("Builds", "Tags", "Webhooks"):
            self.database.create_collection(collection_id(project_id, suffix))

        now = now_iso()
        project = Project(
            id=project_id,
            name=str(payload.get("name") or project_id),
            gitHubRepository=str(payload.get("gitHubRepository") or ""),
            gitHubDefaultBranch=str(payload.get("gitHubDefaultBranch") or DEFAULT_BRANCH),
            purgeRetentionDays=int(payload.get("purgeRetentionDays") or self.context.config.default_purge_after_days),
            createdAt=now,
            updatedAt=now,
        )
        best_effort(
            f"Create default branch tag '{project.gitHubDefaultBranch}'",
            self._create_default_branch_tag,
            project_id,
            project.gitHubDefaultBranch,
        )
        self.database.create_document(self.collection_id, project.to_document())
        publish_event(self.context, "project:created", project_id, project.to_document(), skip_project_hooks=True)
        return project

    def update(self, project_id: str, data: Dict[str, Any]) -> None:
        logger.debug("Update project '%s'...", project_id)
        changes = {key: value for key, value in (data or {}).items() if key in PROJECT_UPDATE_FIELDS}
        changes["updatedAt"] = now_iso()
        self.database.update_document(self.collection_id, project_id, changes)
        if changes.get("gitHubDefaultBranch"):
            branch = str(changes["gitHubDefaultBranch"])
            tag_id = slugify_tag(branch)
            if not self.database.has_document(collection_id(project_id, "Tags"), tag_id):
                best_effort(
                    f"Create default branch tag '{branch}'",
                    self._create_default_branch_tag,
                    project_id,
                    branch,
                )
        publish_event(self.context, "project:updated", project_id, dict(changes, id=project_id))

    def delete(self, project_id: str) -> None:
        logger.info("Delete project '%s'...", project_id)
        self.database.delete_document(self.collection_id, project_id)
        for suffix in ("Builds", "Tags", "Webhooks"):
            best_effort(
                f"Delete collection '{suffix}' of project '{project_id}'",
                self.database.delete_collection,
                collection_id(project_id, suffix),
            )
        self.storage.delete_container(container_id(project_id))
        publish_event(self.context, "project:deleted", project_id, {"id": project_id}, skip_project_hooks=True)

    def _create_default_branch_tag(self, project_id: str, branch: str) -> None:
        now = now_iso()
        tag = Tag(id=slugify_tag(branch), type="branch", value=branch, createdAt=now, updatedAt=now)
        self.database.create_document(collection_id(project_id, "Tags"), tag.to_document())
