import copy
import json
import os
import threading
from pathlib import Path
from typing import Any, Callable, Dict, List, Optional

from ...errors import AlreadyExists, NotFound

Document = Dict[str, Any]


class LocalDocumentProvider:
    """Collections of JSON documents kept in memory and mirrored to one JSON file.

    Without a ``filename`` the provider is purely in-memory.
    """

    provider_type = "local"

    def __init__(self, config: Dict[str, Any]):
        self.config = config or {}
        filename = str(self.config.get("filename") or "").strip()
        self.filename: Optional[Path] = Path(filename) if filename else None
        self._lock = threading.RLock()
        self._db: Dict[str, Dict[str, Document]] = {}
        self._load()

    def _load(self) -> None:
        if not self.filename or not self.filename.exists():
            return
        try:
            raw = json.loads(self.filename.read_text(encoding="utf-8") or "{}")
        except (OSError, json.JSONDecodeError):
            raw = {}
        self._db = raw if isinstance(raw, dict) else {}

    def _save(self) -> None:
        if not self.filename:
            return
        self.filename.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.filename.with_suffix(self.filename.suffix + ".tmp")
        tmp_path.write_text(json.dumps(self._db, indent=2, sort_keys=True), encoding="utf-8")
        os.replace(tmp_path, self.filename)

    def _collection(self, collection_id: str) -> Dict[str, Document]:
        collection = self._db.get(collection_id)
        if collection is None:
            raise NotFound(f"No collection - {collection_id}")
        return collection

    # Collections

    def list_collections(self) -> List[str]:
        with self._lock:
            return sorted(self._db.keys())

    def create_collection(self, collection_id: str) -> None:
        with self._lock:
            if collection_id in self._db:
                raise AlreadyExists(f"Collection '{collection_id}' already exists.")
            self._db[collection_id] = {}
            self._save()

    def delete_collection(self, collection_id: str) -> None:
        with self._lock:
            self._collection(collection_id)
            del self._db[collection_id]
            self._save()

    def has_collection(self, collection_id: str) -> bool:
        with self._lock:
            return collection_id in self._db

    # Documents

    def list_documents(
        self,
        collection_id: str,
        limit: Optional[int] = None,
        filter: Optional[Callable[[Document], bool]] = None,
        sort: Optional[Callable[[Document], Any]] = None,
        reverse: bool = False,
    ) -> List[Document]:
        with self._lock:
            items = [copy.deepcopy(item) for item in self._collection(collection_id).values()]
        if sort is not None:
            items.sort(key=sort, reverse=reverse)
        if filter is not None:
            items = [item for item in items if filter(item)]
        if limit is not None:
            items = items[: max(int(limit), 0)]
        return items

    def create_document(self, collection_id: str, document: Document) -> None:
        doc_id = str(document.get("id") or "").strip()
        if not doc_id:
            raise ValueError("document id is required")
        with self._lock:
            collection = self._collection(collection_id)
            if doc_id in collection:
                raise AlreadyExists(f"Item '{doc_id}' already exists in collection '{collection_id}'.")
            collection[doc_id] = copy.deepcopy(document)
            self._save()

    def get_document(self, collection_id: str, document_id: str) -> Document:
        with self._lock:
            item = self._collection(collection_id).get(document_id)
            if item is None:
                raise NotFound(f"Item '{document_id}' not found in collection '{collection_id}'.")
            return copy.deepcopy(item)

    def has_document(self, collection_id: str, document_id: str) -> bool:
        with self._lock:
            collection = self._db.get(collection_id)
            return bool(collection is not None and document_id in collection)

    def update_document(self, collection_id: str, document_id: str, data: Document) -> None:
        with self._lock:
            collection = self._collection(collection_id)
            previous = collection.get(document_id)
            if previous is None:
                raise NotFound(f"Item '{document_id}' not found in collection '{collection_id}'.")
            collection[document_id] = {**previous, **copy.deepcopy(data), "id": document_id}
            self._save()

    def delete_document(self, collection_id: str, document_id: str) -> None:
        with self._lock:
            collection = self._collection(collection_id)
            if document_id not in collection:
                raise NotFound(f"Item '{document_id}' not found in collection '{collection_id}'.")
            del collection[document_id]
            self._save()
