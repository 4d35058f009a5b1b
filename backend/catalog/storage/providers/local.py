import mimetypes
import os
import shutil
from pathlib import Path
from typing import Any, Dict, Iterable, List, Union

from ...errors import NotFound, ValidationFailed
from ..types import DownloadedFile, StoredFile


def _safe_parts(value: str) -> List[str]:
    parts = [part for part in str(value or "").replace("\\", "/").split("/") if part and part != "."]
    if ".." in parts:
        raise ValidationFailed([f"invalid storage path: {value}"])
    return parts


class LocalStorageProvider:
    provider_type = "local"

    def __init__(self, config: Dict[str, Any]):
        self.config = config or {}
        self.base_path = Path(
            str(self.config.get("base_path") or os.environ.get("STORYBOOKER_STORAGE_PATH") or "/tmp/storybooker-storage")
        )

    def _path(self, container_id: str, *paths: str) -> Path:
        parts = _safe_parts(container_id)
        for value in paths:
            parts.extend(_safe_parts(value))
        return self.base_path.joinpath(*parts)

    # Containers

    def create_container(self, container_id: str) -> None:
        self._path(container_id).mkdir(parents=True, exist_ok=True)

    def delete_container(self, container_id: str) -> None:
        shutil.rmtree(self._path(container_id), ignore_errors=True)

    def has_container(self, container_id: str) -> bool:
        return self._path(container_id).is_dir()

    def list_containers(self) -> List[str]:
        if not self.base_path.is_dir():
            return []
        return sorted(entry.name for entry in self.base_path.iterdir() if entry.is_dir())

    # Files

    def upload_files(self, container_id: str, files: Iterable[StoredFile]) -> None:
        for item in files:
            target = self._path(container_id, item.path)
            target.parent.mkdir(parents=True, exist_ok=True)
            content = item.content
            if isinstance(content, str):
                target.write_text(content, encoding="utf-8")
            elif isinstance(content, (bytes, bytearray)):
                target.write_bytes(bytes(content))
            else:
                with open(target, "wb") as handle:
                    shutil.copyfileobj(content, handle)

    def delete_files(self, container_id: str, paths_or_prefix: Union[str, Iterable[str]]) -> None:
        if isinstance(paths_or_prefix, str):
            targets = [self._path(container_id, paths_or_prefix)]
        else:
            targets = [self._path(container_id, value) for value in paths_or_prefix]
        for target in targets:
            if target.is_dir():
                shutil.rmtree(target, ignore_errors=True)
            elif target.exists():
                target.unlink()

    def has_file(self, container_id: str, path: str) -> bool:
        return self._path(container_id, path).is_file()

    def download_file(self, container_id: str, path: str) -> DownloadedFile:
        target = self._path(container_id, path)
        if not target.is_file():
            raise NotFound(f"File '{path}' not found in container '{container_id}'.")
        mime_type = mimetypes.guess_type(target.name)[0] or "application/octet-stream"
        return DownloadedFile(content=target.read_bytes(), mime_type=mime_type, path=str(target))
