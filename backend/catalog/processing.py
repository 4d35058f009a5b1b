import logging
import mimetypes
import shutil
import tempfile
import time
import zipfile
from pathlib import Path, PurePosixPath
from typing import List

from .builds import BuildLedger, check_variant
from .context import CatalogContext
from .errors import InvalidState, ValidationFailed
from .storage import StoredFile
from .uploads import archive_path
from .utils import best_effort
from .webhooks import publish_event

logger = logging.getLogger(__name__)

CHUNK_SIZE = 1024 * 1024


def _write_download(content, target: Path) -> None:
    with open(target, "wb") as handle:
        if isinstance(content, str):
            handle.write(content.encode("utf-8"))
        elif isinstance(content, (bytes, bytearray)):
            handle.write(bytes(content))
        else:
            shutil.copyfileobj(content, handle, CHUNK_SIZE)


def _safe_extract(archive: Path, destination: Path) -> None:
    destination.mkdir(parents=True, exist_ok=True)
    with zipfile.ZipFile(archive) as bundle:
        for member in bundle.infolist():
            name = PurePosixPath(member.filename.replace("\\", "/"))
            if name.is_absolute() or ".." in name.parts:
                raise ValidationFailed([f"archive entry escapes extraction root: {member.filename}"])
        bundle.extractall(destination)


def _expanded_files(root: Path) -> List[Path]:
    files = []
    for path in sorted(root.rglob("*")):
        if not path.is_file():
            continue
        if path.name.startswith("."):
            continue
        files.append(path)
    return files


def process_build_archive(context: CatalogContext, project_id: str, build_id: str, variant: str) -> int:
    """Expand the stored archive of one build variant into the blob store.

    Leaves the variant in ``processing`` when any step fails; running it again redoes every
    step and overwrites the previous output. Returns the number of uploaded files.
    """
    check_variant(variant)
    builds = BuildLedger(context, project_id)
    scope = f"{project_id}-{build_id}-{variant}"

    state = builds.get(build_id).state(variant)
    if state == "none":
        raise InvalidState(f"Variant '{variant}' of build '{build_id}' has not been uploaded.")
    if state != "ready":
        builds.set_variant_state(build_id, variant, "processing")

    scratch = Path(tempfile.mkdtemp(prefix=f"storybooker-{scope}-{int(time.time() * 1000)}-"))
    try:
        logger.info("(%s) Downloading zip file", scope)
        context.raise_if_cancelled()
        downloaded = context.storage.download_file(builds.container_id, archive_path(build_id, variant))
        zip_path = scratch / f"{variant}.zip"
        _write_download(downloaded.content, zip_path)

        logger.info("(%s) Decompressing zip file", scope)
        output_root = scratch / variant
        _safe_extract(zip_path, output_root)

        files = _expanded_files(output_root)
        logger.info("(%s) Uploading %d files", scope, len(files))
        for path in files:
            context.raise_if_cancelled()
            relative = path.relative_to(output_root).as_posix()
            mime_type = mimetypes.guess_type(path.name)[0] or "application/octet-stream"
            with open(path, "rb") as handle:
                context.storage.upload_files(
                    builds.container_id,
                    [StoredFile(path=f"{build_id}/{variant}/{relative}", content=handle, mime_type=mime_type)],
                )

        builds.set_variant_state(build_id, variant, "ready")
        logger.info("(%s) Processed zip file", scope)
        publish_event(context, "build:updated", project_id, builds.get(build_id).to_payload())
        return len(files)
    finally:
        best_effort(f"({scope}) Cleanup scratch directory", shutil.rmtree, scratch)
