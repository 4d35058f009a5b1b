import logging
from typing import Any, Dict, List, Optional

from .context import CatalogContext
from .processing import process_build_archive as _process_build_archive
from .purge import purge as _purge

logger = logging.getLogger(__name__)


def process_build_archive(project_id: str, build_id: str, variant: str) -> int:
    context = CatalogContext.from_settings()
    logger.info("(%s-%s-%s) Processing zip file from queue", project_id, build_id, variant)
    return _process_build_archive(context, project_id, build_id, variant)


def purge(project_id: Optional[str] = None) -> List[Dict[str, Any]]:
    context = CatalogContext.from_settings()
    return [
        {"projectId": outcome.project_id, "ok": outcome.ok, "builds": outcome.deleted_builds, "tags": outcome.deleted_tags}
        for outcome in _purge(context, project_id)
    ]
