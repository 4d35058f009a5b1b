import logging
from typing import Any, Callable, Dict, List, Optional

from .context import CatalogContext
from .errors import AlreadyExists, Protected, ValidationFailed
from .records import TAG_TYPES, Tag
from .utils import best_effort, collection_id, guess_tag_type, keyed_lock, now_iso, slugify_tag
from .webhooks import publish_event

logger = logging.getLogger(__name__)

TAG_TYPE_ALIASES = {"jira": "ticket"}
TAG_UPDATE_FIELDS = {"type", "value", "buildsCount", "latestBuildId"}


def parse_tag_specifier(specifier: str) -> Dict[str, str]:
    """Split ``value``, ``value;type`` or ``value;type;display`` into its parts."""
    parts = [part.strip() for part in str(specifier or "").split(";")]
    value = parts[0]
    tag_type = TAG_TYPE_ALIASES.get(parts[1].lower(), parts[1].lower()) if len(parts) > 1 and parts[1] else ""
    display = parts[2] if len(parts) > 2 and parts[2] else ""
    return {"id": slugify_tag(value), "value": value, "type": tag_type, "display": display}


class TagLedger:
    def __init__(self, context: CatalogContext, project_id: str):
        self.context = context
        self.project_id = project_id
        self.collection_id = collection_id(project_id, "Tags")

    @property
    def database(self):
        self.context.raise_if_cancelled()
        return self.context.database

    def _lock_key(self, tag_id: str) -> str:
        return f"tag:{self.project_id}:{tag_id}"

    def list(self, filter: Optional[Callable[[Dict[str, Any]], bool]] = None) -> List[Tag]:
        logger.debug("List tags of project '%s'...", self.project_id)
        items = self.database.list_documents(self.collection_id, filter=filter, sort=lambda item: item.get("id") or "")
        return [Tag.from_document(item) for item in items]

    def get(self, tag_id: str) -> Tag:
        logger.debug("Get tag '%s'...", tag_id)
        return Tag.from_document(self.database.get_document(self.collection_id, tag_id))

    def has(self, tag_id: str) -> bool:
        return self.database.has_document(self.collection_id, tag_id)

    def create(self, data: Dict[str, Any], counts_as_initial_build: bool = False) -> Tag:
        value = str((data or {}).get("value") or "").strip()
        tag_type = TAG_TYPE_ALIASES.get(str((data or {}).get("type") or ""), str((data or {}).get("type") or ""))
        errors = []
        if not value:
            errors.append("value: is required")
        if tag_type not in TAG_TYPES:
            errors.append(f"type: must be one of {', '.join(TAG_TYPES)}")
        if errors:
            raise ValidationFailed(errors)
        logger.info("Create tag '%s'...", value)
        tag_id = slugify_tag(value)
        if self.has(tag_id):
            raise AlreadyExists(f"Tag '{tag_id}' already exists in project '{self.project_id}'.")
        now = now_iso()
        tag = Tag(
            id=tag_id,
            type=tag_type,
            value=value,
            buildsCount=1 if counts_as_initial_build else 0,
            latestBuildId=str((data or {}).get("latestBuildId") or ""),
            createdAt=now,
            updatedAt=now,
        )
        self.database.create_document(self.collection_id, tag.to_document())
        publish_event(self.context, "tag:created", self.project_id, tag.to_document())
        return tag

    def update(self, tag_id: str, data: Dict[str, Any]) -> None:
        changes = self._write(tag_id, data)
        publish_event(self.context, "tag:updated", self.project_id, dict(changes, id=tag_id))

    def _write(self, tag_id: str, data: Dict[str, Any]) -> Dict[str, Any]:
        logger.debug("Update tag '%s'...", tag_id)
        changes = {key: value for key, value in (data or {}).items() if key in TAG_UPDATE_FIELDS}
        if "type" in changes and changes["type"] not in TAG_TYPES:
            raise ValidationFailed([f"type: must be one of {', '.join(TAG_TYPES)}"])
        if "buildsCount" in changes:
            changes["buildsCount"] = max(int(changes["buildsCount"] or 0), 0)
        changes["updatedAt"] = now_iso()
        self.database.update_document(self.collection_id, tag_id, changes)
        return changes

    def resolve_or_create_for_build(self, specifier: str, build_id: str) -> str:
        """Count ``build_id`` against the tag named by ``specifier`` and return the tag id.

        Bookkeeping failures are logged; the best-guess id is still returned so the build
        can be stored.
        """
        parsed = parse_tag_specifier(specifier)
        tag_id = parsed["id"]
        if not tag_id:
            return ""
        try:
            with keyed_lock(self._lock_key(tag_id)):
                if self._increment(tag_id, build_id):
                    return tag_id
                tag_type = parsed["type"] if parsed["type"] in TAG_TYPES else guess_tag_type(parsed["value"])
                logger.info("A new tag '%s' (%s) is being created.", parsed["display"] or parsed["value"], tag_type)
                now = now_iso()
                tag = Tag(
                    id=tag_id,
                    type=tag_type,
                    value=parsed["display"] or parsed["value"],
                    buildsCount=1,
                    latestBuildId=build_id,
                    createdAt=now,
                    updatedAt=now,
                )
                try:
                    self.database.create_document(self.collection_id, tag.to_document())
                except AlreadyExists:
                    self._increment(tag_id, build_id)
                    return tag_id
            publish_event(self.context, "tag:created", self.project_id, tag.to_document())
        except Exception as exc:
            logger.exception("Error resolving tag '%s' for build '%s': %s", specifier, build_id, exc)
        return tag_id

    def _increment(self, tag_id: str, build_id: str) -> bool:
        if not self.has(tag_id):
            return False
        existing = self.get(tag_id)
        self._write(tag_id, {"buildsCount": existing.buildsCount + 1, "latestBuildId": build_id})
        return True

    def release_reference(self, tag_id: str, build_id: str) -> None:
        with keyed_lock(self._lock_key(tag_id)):
            tag = self.get(tag_id)
            changes: Dict[str, Any] = {"buildsCount": max(tag.buildsCount - 1, 0)}
            if tag.latestBuildId == build_id:
                changes["latestBuildId"] = ""
            self._write(tag_id, changes)

    def delete(self, tag_id: str) -> None:
        from .builds import BuildLedger
        from .projects import ProjectLedger

        logger.info("Delete tag '%s'...", tag_id)
        project = ProjectLedger(self.context).get(self.project_id)
        if tag_id == slugify_tag(project.gitHubDefaultBranch):
            message = (
                f"Cannot delete the tag associated with default branch ({project.gitHubDefaultBranch}) "
                f"of the project '{self.project_id}'."
            )
            logger.error(message)
            raise Protected(message)

        self.database.delete_document(self.collection_id, tag_id)
        best_effort(
            f"Delete builds associated with tag '{tag_id}'",
            BuildLedger(self.context, self.project_id).delete_by_tag,
            tag_id,
            False,
        )
        publish_event(self.context, "tag:deleted", self.project_id, {"id": tag_id})
