from typing import Any, Callable, Dict, List, Optional

from django.db import IntegrityError, transaction

from ...errors import AlreadyExists, NotFound
from ...models import StoredCollection, StoredDocument

Document = Dict[str, Any]


class OrmDocumentProvider:
    provider_type = "orm"

    def __init__(self, config: Dict[str, Any]):
        self.config = config or {}

    def _collection(self, collection_id: str) -> StoredCollection:
        collection = StoredCollection.objects.filter(name=collection_id).first()
        if not collection:
            raise NotFound(f"No collection - {collection_id}")
        return collection

    def _document(self, collection_id: str, document_id: str) -> StoredDocument:
        collection = self._collection(collection_id)
        document = StoredDocument.objects.filter(collection=collection, key=document_id).first()
        if not document:
            raise NotFound(f"Item '{document_id}' not found in collection '{collection_id}'.")
        return document

    # Collections

    def list_collections(self) -> List[str]:
        return list(StoredCollection.objects.values_list("name", flat=True))

    def create_collection(self, collection_id: str) -> None:
        try:
            with transaction.atomic():
                StoredCollection.objects.create(name=collection_id)
        except IntegrityError as exc:
            raise AlreadyExists(f"Collection '{collection_id}' already exists.") from exc

    def delete_collection(self, collection_id: str) -> None:
        self._collection(collection_id).delete()

    def has_collection(self, collection_id: str) -> bool:
        return StoredCollection.objects.filter(name=collection_id).exists()

    # Documents

    def list_documents(
        self,
        collection_id: str,
        limit: Optional[int] = None,
        filter: Optional[Callable[[Document], bool]] = None,
        sort: Optional[Callable[[Document], Any]] = None,
        reverse: bool = False,
    ) -> List[Document]:
        collection = self._collection(collection_id)
        items = [dict(row.data_json or {}, id=row.key) for row in StoredDocument.objects.filter(collection=collection)]
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
        collection = self._collection(collection_id)
        try:
            with transaction.atomic():
                StoredDocument.objects.create(collection=collection, key=doc_id, data_json=dict(document))
        except IntegrityError as exc:
            raise AlreadyExists(f"Item '{doc_id}' already exists in collection '{collection_id}'.") from exc

    def get_document(self, collection_id: str, document_id: str) -> Document:
        document = self._document(collection_id, document_id)
        return dict(document.data_json or {}, id=document.key)

    def has_document(self, collection_id: str, document_id: str) -> bool:
        return StoredDocument.objects.filter(collection__name=collection_id, key=document_id).exists()

    def update_document(self, collection_id: str, document_id: str, data: Document) -> None:
        document = self._document(collection_id, document_id)
        document.data_json = {**(document.data_json or {}), **data, "id": document_id}
        document.save(update_fields=["data_json", "updated_at"])

    def delete_document(self, collection_id: str, document_id: str) -> None:
        self._document(collection_id, document_id).delete()
