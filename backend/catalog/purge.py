import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from .builds import BuildLedger
from .context import CatalogContext
from .projects import ProjectLedger
from .records import Project
from .tags import TagLedger
from .utils import parse_iso, run_concurrently, slugify_tag

logger = logging.getLogger(__name__)


@dataclass
class PurgeOutcome:
    project_id: str
    ok: bool = True
    deleted_builds: List[str] = field(default_factory=list)
    deleted_tags: List[str] = field(default_factory=list)
    error: str = ""


def _is_expired(updated_at: str, expiry: datetime) -> bool:
    parsed = parse_iso(updated_at)
    return parsed is not None and parsed < expiry


def purge_project(context: CatalogContext, project: Project, now: Optional[datetime] = None) -> PurgeOutcome:
    outcome = PurgeOutcome(project_id=project.id)
    expiry = (now or datetime.now(timezone.utc)) - timedelta(days=project.purgeRetentionDays)
    builds = BuildLedger(context, project.id)
    tags = TagLedger(context, project.id)

    expired = builds.list(
        filter=lambda item: item.get("id") != project.latestBuildId and _is_expired(item.get("updatedAt"), expiry)
    )
    for build in expired:
        builds.delete(build.id, cascade_tag_update=True)
        outcome.deleted_builds.append(build.id)
    logger.info("[Project: %s] Purged %d expired builds.", project.id, len(outcome.deleted_builds))

    default_tag = slugify_tag(project.gitHubDefaultBranch)
    empty = tags.list(filter=lambda item: int(item.get("buildsCount") or 0) <= 0 and item.get("id") != default_tag)
    for tag in empty:
        tags.delete(tag.id)
        outcome.deleted_tags.append(tag.id)
    logger.info("[Project: %s] Purged %d empty tags.", project.id, len(outcome.deleted_tags))
    return outcome


def purge(context: CatalogContext, project_id: Optional[str] = None, now: Optional[datetime] = None) -> List[PurgeOutcome]:
    """Sweep one project, or all of them concurrently. Never raises for a failed project."""
    projects = ProjectLedger(context)
    if project_id:
        targets = [project_id]
    else:
        targets = [project.id for project in projects.list()]
    logger.info("Purging %d projects...", len(targets))

    def _sweep(target: str) -> PurgeOutcome:
        return purge_project(context, projects.get(target), now=now)

    results = run_concurrently("Purge project", [lambda target=target: _sweep(target) for target in targets])
    outcomes = []
    for target, result in zip(targets, results):
        if result.ok:
            outcomes.append(result.value)
        else:
            logger.error("[Project: %s] Purge failed: %s", target, result.error)
            outcomes.append(PurgeOutcome(project_id=target, ok=False, error=str(result.error)))
    return outcomes
