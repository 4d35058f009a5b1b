import json
import logging
from typing import Any, Callable, Dict, List, Optional

from jsonschema import Draft202012Validator

from .context import CatalogContext
from .errors import AlreadyExists, UnsupportedVariant, ValidationFailed
from .records import VARIANT_STATES, VARIANTS, Build
from .utils import (
    best_effort,
    collection_id,
    container_id,
    now_iso,
    parse_tag_ids,
    run_concurrently,
    serialize_tag_ids,
    slugify_tag,
)
from .webhooks import publish_event

logger = logging.getLogger(__name__)

STORIES_MANIFEST = "primary/index.json"

BUILD_ID_PATTERN = r"^(?!.*\.\.)[A-Za-z0-9._-]+$"

BUILD_CREATE_SCHEMA = {
    "type": "object",
    "anyOf": [{"required": ["id"]}, {"required": ["sha"]}],
    "required": ["tags"],
    "properties": {
        "id": {"type": "string", "pattern": BUILD_ID_PATTERN},
        "sha": {"type": "string", "pattern": BUILD_ID_PATTERN},
        "tags": {
            "anyOf": [
                {"type": "string", "minLength": 1},
                {"type": "array", "items": {"type": "string"}, "minItems": 1},
            ]
        },
        "message": {"type": "string"},
        "authorName": {"type": "string"},
        "authorEmail": {"type": "string"},
    },
}

BUILD_UPDATE_FIELDS = {"tagIds", "message", "authorName", "authorEmail", *VARIANTS}


def _validate_create(payload: Dict[str, Any]) -> List[str]:
    validator = Draft202012Validator(BUILD_CREATE_SCHEMA)
    errors = []
    for error in sorted(validator.iter_errors(payload), key=lambda e: list(e.path)):
        path = ".".join(str(p) for p in error.path) if error.path else "root"
        errors.append(f"{path}: {error.message}")
    return errors


def check_variant(variant: str) -> str:
    if variant not in VARIANTS:
        raise UnsupportedVariant(f"Variant '{variant}' is not supported. Expected one of {', '.join(VARIANTS)}.")
    return variant


class BuildLedger:
    def __init__(self, context: CatalogContext, project_id: str):
        self.context = context
        self.project_id = project_id
        self.collection_id = collection_id(project_id, "Builds")
        self.container_id = container_id(project_id)

    @property
    def database(self):
        self.context.raise_if_cancelled()
        return self.context.database

    @property
    def storage(self):
        self.context.raise_if_cancelled()
        return self.context.storage

    def _projects(self):
        from .projects import ProjectLedger

        return ProjectLedger(self.context)

    def _tags(self):
        from .tags import TagLedger

        return TagLedger(self.context, self.project_id)

    def list(self, filter: Optional[Callable[[Dict[str, Any]], bool]] = None, limit: Optional[int] = None) -> List[Build]:
        logger.debug("List builds of project '%s'...", self.project_id)
        items = self.database.list_documents(
            self.collection_id,
            limit=limit,
            filter=filter,
            sort=lambda item: item.get("updatedAt") or "",
            reverse=True,
        )
        return [Build.from_document(item) for item in items]

    def list_by_tag(self, tag_id: str) -> List[Build]:
        return self.list(filter=lambda item: tag_id in parse_tag_ids(item.get("tagIds")))

    def get(self, build_id: str) -> Build:
        logger.debug("Get build '%s'...", build_id)
        return Build.from_document(self.database.get_document(self.collection_id, build_id))

    def has(self, build_id: str) -> bool:
        return self.database.has_document(self.collection_id, build_id)

    def create(self, data: Dict[str, Any]) -> Build:
        payload = dict(data or {})
        errors = _validate_create(payload)
        if errors:
            raise ValidationFailed(errors)
        build_id = str(payload.get("id") or payload.get("sha")).strip()
        logger.info("Create build '%s'...", build_id)
        if self.has(build_id):
            raise AlreadyExists(f"Build '{build_id}' already exists in project '{self.project_id}'.")

        project = self._projects().get(self.project_id)
        tags = self._tags()
        specifiers = payload["tags"] if isinstance(payload["tags"], list) else str(payload["tags"]).split(",")
        tag_ids: List[str] = []
        for specifier in specifiers:
            if not str(specifier or "").strip():
                continue
            tag_id = tags.resolve_or_create_for_build(str(specifier), build_id)
            if tag_id and tag_id not in tag_ids:
                tag_ids.append(tag_id)

        now = now_iso()
        build = Build(
            id=build_id,
            tag_ids=tag_ids,
            message=str(payload.get("message") or ""),
            authorName=str(payload.get("authorName") or ""),
            authorEmail=str(payload.get("authorEmail") or ""),
            createdAt=now,
            updatedAt=now,
        )
        self.database.create_document(self.collection_id, build.to_document())

        if slugify_tag(project.gitHubDefaultBranch) in tag_ids:
            best_effort(
                f"Set latest build of project '{self.project_id}' to '{build_id}'",
                self._projects().update,
                self.project_id,
                {"latestBuildId": build_id},
            )
        publish_event(self.context, "build:created", self.project_id, build.to_payload())
        return build

    def update(self, build_id: str, data: Dict[str, Any]) -> None:
        logger.debug("Update build '%s'...", build_id)
        changes = {key: value for key, value in (data or {}).items() if key in BUILD_UPDATE_FIELDS}
        if "tagIds" in changes:
            changes["tagIds"] = serialize_tag_ids(parse_tag_ids(changes["tagIds"]))
        for variant in VARIANTS:
            if variant in changes and changes[variant] not in VARIANT_STATES:
                raise ValidationFailed([f"{variant}: must be one of {', '.join(VARIANT_STATES)}"])
        changes["updatedAt"] = now_iso()
        self.database.update_document(self.collection_id, build_id, changes)

    def set_variant_state(self, build_id: str, variant: str, state: str) -> None:
        logger.debug("(%s-%s-%s) State -> %s", self.project_id, build_id, variant, state)
        self.update(build_id, {check_variant(variant): state})

    def delete(self, build_id: str, cascade_tag_update: bool = True) -> None:
        logger.info("Delete build '%s'...", build_id)
        build = self.get(build_id)
        self.database.delete_document(self.collection_id, build_id)

        best_effort(
            f"Delete files of build '{build_id}'",
            self.storage.delete_files,
            self.container_id,
            f"{build_id}/",
        )
        if cascade_tag_update:
            tags = self._tags()
            for tag_id in build.tag_ids:
                best_effort(
                    f"Release tag '{tag_id}' from build '{build_id}'",
                    tags.release_reference,
                    tag_id,
                    build_id,
                )
        best_effort(f"Clear latest build '{build_id}'", self._clear_latest_build, build_id)
        publish_event(self.context, "build:deleted", self.project_id, {"id": build_id})

    def _clear_latest_build(self, build_id: str) -> None:
        projects = self._projects()
        if projects.get(self.project_id).latestBuildId == build_id:
            projects.update(self.project_id, {"latestBuildId": ""})

    def delete_by_tag(self, tag_id: str, force: bool = False) -> List[Any]:
        """Remove ``tag_id`` from every build that references it.

        Builds that carry other tags are only detached unless ``force`` is set; the rest are
        deleted without touching tag counts, which the caller already owns.
        """
        builds = self.list_by_tag(tag_id)
        logger.info("Delete %d builds associated with tag '%s'...", len(builds), tag_id)

        def _handle(build: Build) -> None:
            if not force and len(build.tag_ids) > 1:
                self.update(build.id, {"tagIds": [value for value in build.tag_ids if value != tag_id]})
            else:
                self.delete(build.id, cascade_tag_update=False)

        return run_concurrently(
            f"Delete builds by tag '{tag_id}'",
            [lambda build=build: _handle(build) for build in builds],
        )

    def upload(self, build_id: str, variant: str, archive) -> None:
        from .uploads import handle_upload

        handle_upload(self.context, self.project_id, build_id, variant, archive)

    def get_stories(self, build: Build) -> Optional[List[Dict[str, Any]]]:
        if build.state("primary") != "ready":
            return None
        path = f"{build.id}/{STORIES_MANIFEST}"
        result = best_effort(f"Read stories manifest '{path}'", self.storage.download_file, self.container_id, path)
        if not result.ok:
            return None
        content = result.value.content
        if hasattr(content, "read"):
            content = content.read()
        if isinstance(content, (bytes, bytearray)):
            content = bytes(content).decode("utf-8", errors="replace")
        try:
            manifest = json.loads(content)
        except (TypeError, ValueError):
            logger.warning("Stories manifest of build '%s' is malformed.", build.id)
            return []
        entries = manifest.get("entries") if isinstance(manifest, dict) else None
        if not isinstance(entries, dict):
            return []
        return [entry for entry in entries.values() if isinstance(entry, dict)]
