import io
import os
from typing import Any, Dict, Iterable, List, Union

import boto3
from botocore.exceptions import ClientError

from ...errors import NotFound
from ..types import DownloadedFile, StoredFile

MISSING_CODES = {"404", "NoSuchKey", "NotFound", "NoSuchBucket"}
DELETE_BATCH_SIZE = 1000


def _is_missing(exc: ClientError) -> bool:
    code = str((exc.response or {}).get("Error", {}).get("Code") or "")
    return code in MISSING_CODES


class S3StorageProvider:
    """Stores every container as a key prefix inside a single bucket."""

    provider_type = "s3"

    def __init__(self, config: Dict[str, Any]):
        self.config = config or {}
        self.bucket = str(self.config.get("bucket") or "").strip()
        self.region = str(self.config.get("region") or os.environ.get("AWS_DEFAULT_REGION") or os.environ.get("AWS_REGION") or "").strip()
        self.prefix = str(self.config.get("prefix") or "storybooker").strip().strip("/")
        self.kms_key_id = str(self.config.get("kms_key_id") or "").strip()
        self.acl = str(self.config.get("acl") or "private").strip() or "private"
        self.client = boto3.client("s3", region_name=self.region) if self.region else boto3.client("s3")

    def _container_prefix(self, container_id: str) -> str:
        container = str(container_id).strip("/")
        return f"{self.prefix}/{container}/" if self.prefix else f"{container}/"

    def _key(self, container_id: str, path: str) -> str:
        return self._container_prefix(container_id) + str(path).lstrip("/")

    def _require_bucket(self) -> None:
        if not self.bucket:
            raise RuntimeError("s3 bucket is required")

    def _extra_args(self, mime_type: str) -> Dict[str, Any]:
        extra: Dict[str, Any] = {"ContentType": mime_type, "ACL": self.acl}
        if self.kms_key_id:
            extra["ServerSideEncryption"] = "aws:kms"
            extra["SSEKMSKeyId"] = self.kms_key_id
        return extra

    def _iter_keys(self, prefix: str) -> Iterable[str]:
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=prefix):
            for item in page.get("Contents") or []:
                yield item["Key"]

    def _delete_keys(self, keys: List[str]) -> None:
        for start in range(0, len(keys), DELETE_BATCH_SIZE):
            batch = keys[start : start + DELETE_BATCH_SIZE]
            self.client.delete_objects(
                Bucket=self.bucket,
                Delete={"Objects": [{"Key": key} for key in batch], "Quiet": True},
            )

    # Containers

    def create_container(self, container_id: str) -> None:
        self._require_bucket()
        self.client.put_object(Bucket=self.bucket, Key=self._container_prefix(container_id), Body=b"")

    def delete_container(self, container_id: str) -> None:
        self._require_bucket()
        self._delete_keys(list(self._iter_keys(self._container_prefix(container_id))))

    def has_container(self, container_id: str) -> bool:
        self._require_bucket()
        response = self.client.list_objects_v2(Bucket=self.bucket, Prefix=self._container_prefix(container_id), MaxKeys=1)
        return int(response.get("KeyCount") or 0) > 0

    def list_containers(self) -> List[str]:
        self._require_bucket()
        root = f"{self.prefix}/" if self.prefix else ""
        containers: List[str] = []
        paginator = self.client.get_paginator("list_objects_v2")
        for page in paginator.paginate(Bucket=self.bucket, Prefix=root, Delimiter="/"):
            for entry in page.get("CommonPrefixes") or []:
                name = str(entry.get("Prefix") or "")[len(root) :].strip("/")
                if name:
                    containers.append(name)
        return containers

    # Files

    def upload_files(self, container_id: str, files: Iterable[StoredFile]) -> None:
        self._require_bucket()
        for item in files:
            key = self._key(container_id, item.path)
            content = item.content
            if isinstance(content, str):
                content = content.encode("utf-8")
            if isinstance(content, (bytes, bytearray)):
                content = io.BytesIO(bytes(content))
            self.client.upload_fileobj(content, self.bucket, key, ExtraArgs=self._extra_args(item.mime_type))

    def delete_files(self, container_id: str, paths_or_prefix: Union[str, Iterable[str]]) -> None:
        self._require_bucket()
        if isinstance(paths_or_prefix, str):
            keys = list(self._iter_keys(self._key(container_id, paths_or_prefix)))
        else:
            keys = [self._key(container_id, path) for path in paths_or_prefix]
        if keys:
            self._delete_keys(keys)

    def has_file(self, container_id: str, path: str) -> bool:
        self._require_bucket()
        try:
            self.client.head_object(Bucket=self.bucket, Key=self._key(container_id, path))
        except ClientError as exc:
            if _is_missing(exc):
                return False
            raise
        return True

    def download_file(self, container_id: str, path: str) -> DownloadedFile:
        self._require_bucket()
        key = self._key(container_id, path)
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as exc:
            if _is_missing(exc):
                raise NotFound(f"File '{path}' not found in container '{container_id}'.") from exc
            raise
        return DownloadedFile(
            content=response["Body"],
            mime_type=str(response.get("ContentType") or "application/octet-stream"),
            path=key,
        )
