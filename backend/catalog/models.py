from django.db import models


class StoredCollection(models.Model):
    name = models.CharField(max_length=255, unique=True)
    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        ordering = ["name"]

    def __str__(self) -> str:
        return self.name


class StoredDocument(models.Model):
    collection = models.ForeignKey(StoredCollection, on_delete=models.CASCADE, related_name="documents")
    key = models.CharField(max_length=255)
    data_json = models.JSONField(default=dict, blank=True)
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        constraints = [
            models.UniqueConstraint(fields=["collection", "key"], name="uniq_stored_document_key"),
        ]
        ordering = ["key"]

    def __str__(self) -> str:
        return f"{self.collection_id}:{self.key}"
