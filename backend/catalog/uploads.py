import logging
from dataclasses import dataclass
from typing import IO, Any, Optional, Union
from urllib.parse import urlencode

import requests

from .builds import BuildLedger, check_variant
from .context import CatalogContext
from .errors import InvalidState
from .storage import StoredFile
from .utils import MIME_ZIP, keyed_lock, submit_background

logger = logging.getLogger(__name__)

PROCESS_ZIP_TASK = "catalog.worker_tasks.process_build_archive"


@dataclass
class ArchiveUpload:
    """Raw archive bytes for one (project, build, variant) key.

    ``size`` is ``None`` when the transferred length cannot be known up front.
    """

    content: Union[bytes, IO[bytes]]
    size: Optional[int] = None
    filename: str = ""


def archive_path(build_id: str, variant: str) -> str:
    return f"{build_id}/{variant}.zip"


def handle_upload(context: CatalogContext, project_id: str, build_id: str, variant: str, archive: ArchiveUpload) -> None:
    check_variant(variant)
    builds = BuildLedger(context, project_id)
    scope = f"{project_id}-{build_id}-{variant}"

    with keyed_lock(f"upload:{scope}"):
        state = builds.get(build_id).state(variant)
        if state != "none":
            raise InvalidState(
                f"Variant '{variant}' of build '{build_id}' is already '{state}'; only a new variant can be uploaded."
            )
        logger.info("(%s) Uploading zip file (%s bytes)", scope, archive.size if archive.size is not None else "unknown")
        context.storage.upload_files(
            builds.container_id,
            [StoredFile(path=archive_path(build_id, variant), content=archive.content, mime_type=MIME_ZIP)],
        )
        builds.set_variant_state(build_id, variant, "uploaded")

    config = context.config
    if archive.size is not None and archive.size <= config.inline_processing_max_bytes:
        from .processing import process_build_archive

        logger.info("(%s) Processing zip file inline", scope)
        try:
            process_build_archive(context, project_id, build_id, variant)
        except Exception as exc:
            logger.exception("(%s) Processing zip file failed: %s", scope, exc)
        return

    if not config.queue_large_zip_processing:
        logger.info("(%s) Zip file left for external processing", scope)
        return
    trigger_deferred_processing(context, project_id, build_id, variant)


def trigger_deferred_processing(context: CatalogContext, project_id: str, build_id: str, variant: str) -> Optional[Any]:
    """Start decompression without waiting for it. Trigger failures are only logged."""
    mode = context.config.queue_mode
    scope = f"{project_id}-{build_id}-{variant}"
    logger.info("(%s) Queueing zip file processing (%s)", scope, mode)
    try:
        if mode == "redis":
            return _enqueue_job(context.config.jobs_redis_url, PROCESS_ZIP_TASK, project_id, build_id, variant)
        if mode == "inprocess":
            from .processing import process_build_archive

            return submit_background(
                f"({scope}) Processing zip file",
                process_build_archive,
                context.child(),
                project_id,
                build_id,
                variant,
            )
        return submit_background(
            f"({scope}) Requesting zip file processing",
            _request_processing,
            context.base_url,
            dict(context.headers),
            project_id,
            build_id,
            variant,
        )
    except Exception as exc:
        logger.exception("(%s) Queueing zip file processing failed: %s", scope, exc)
        return None


def _enqueue_job(redis_url: str, func_path: str, *args) -> str:
    import redis
    from rq import Queue

    queue = Queue("default", connection=redis.Redis.from_url(redis_url))
    job = queue.enqueue(func_path, *args, job_timeout=900)
    return job.id


def _request_processing(base_url: str, headers: dict, project_id: str, build_id: str, variant: str) -> int:
    query = urlencode({"projectId": project_id, "buildId": build_id, "variant": variant})
    url = f"{base_url.rstrip('/')}/tasks/process-zip?{query}"
    forwarded = {key: value for key, value in headers.items() if key.lower() in {"authorization", "cookie"}}
    response = requests.post(url, headers=forwarded, timeout=30)
    if response.status_code >= 400:
        logger.error("Zip processing request %s failed with status %s", url, response.status_code)
    return response.status_code
