"""
Blob storage for uploaded schedule files.

``LocalDiskStorage`` writes under UPLOAD_DIR (served at /uploads);
``S3CompatibleStorage`` targets AWS S3 or any S3-compatible endpoint.
"""
import mimetypes
import os
from dataclasses import dataclass
from typing import Optional

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from status_tracker.config import Settings, settings

SCHEDULES_PREFIX = "schedules/"
LOCAL_URL_PREFIX = "/uploads"
MISSING_KEY_CODES = ("404", "NoSuchKey", "NotFound")


class StorageError(Exception):
    """Raised when an object cannot be written, checked or removed."""


@dataclass
class StoredObject:
    storage_key: str
    url: Optional[str]
    content_type: str
    size_bytes: int


class StorageBackend:
    def upload(
        self,
        data: bytes,
        path: str,
        overwrite: bool = True,
        content_type: Optional[str] = None,
    ) -> StoredObject:
        raise NotImplementedError

    def exists(self, path: str) -> bool:
        raise NotImplementedError

    def get_url(self, path: str, expires_seconds: int = 3600) -> Optional[str]:
        raise NotImplementedError

    def delete(self, path: str) -> None:
        raise NotImplementedError

    def close(self) -> None:
        pass

    def _stored(self, path: str, data: bytes, content_type: Optional[str]) -> StoredObject:
        return StoredObject(
            storage_key=path,
            url=self.get_url(path),
            content_type=content_type or mimetypes.guess_type(path)[0] or "application/octet-stream",
            size_bytes=len(data),
        )


class LocalDiskStorage(StorageBackend):
    def __init__(self, base_dir: Optional[str] = None, public_base_url: Optional[str] = None) -> None:
        self.base_dir = base_dir or settings.UPLOAD_DIR
        self.url_base = (public_base_url or settings.STORAGE_PUBLIC_BASE_URL or LOCAL_URL_PREFIX).rstrip("/")

    def _on_disk(self, path: str) -> str:
        return os.path.join(self.base_dir, *path.replace("\\", "/").strip("/").split("/"))

    def upload(self, data, path, overwrite=True, content_type=None):
        target = self._on_disk(path)
        if os.path.exists(target) and not overwrite:
            raise StorageError(f"Object already exists: {path}")
        try:
            os.makedirs(os.path.dirname(target), exist_ok=True)
            with open(target, "wb") as out:
                out.write(data)
        except OSError as exc:
            raise StorageError(f"Could not write {path}: {exc}") from exc
        return self._stored(path, data, content_type)

    def exists(self, path: str) -> bool:
        return os.path.isfile(self._on_disk(path))

    def get_url(self, path: str, expires_seconds: int = 3600) -> Optional[str]:
        return f"{self.url_base}/{path.lstrip('/')}"

    def delete(self, path: str) -> None:
        try:
            os.remove(self._on_disk(path))
        except FileNotFoundError:
            pass


class S3CompatibleStorage(StorageBackend):
    def __init__(self, bucket: str, client, public_base_url: Optional[str] = None) -> None:
        self.bucket = bucket
        self.client = client
        self.public_base_url = public_base_url

    @classmethod
    def from_settings(cls, config: Settings) -> Optional["S3CompatibleStorage"]:
        """None unless bucket and both keys are configured."""
        if not (config.S3_BUCKET and config.S3_ACCESS_KEY and config.S3_SECRET_KEY):
            return None
        client = boto3.client(
            "s3",
            aws_access_key_id=config.S3_ACCESS_KEY,
            aws_secret_access_key=config.S3_SECRET_KEY,
            region_name=config.S3_REGION,
            endpoint_url=config.S3_ENDPOINT_URL or None,
        )
        return cls(
            config.S3_BUCKET,
            client,
            public_base_url=config.S3_PUBLIC_BASE_URL or config.STORAGE_PUBLIC_BASE_URL,
        )

    def upload(self, data, path, overwrite=True, content_type=None):
        if not overwrite and self.exists(path):
            raise StorageError(f"Object already exists: {path}")
        stored = self._stored(path, data, content_type)
        try:
            # Public reads come from the bucket policy; ACLs are rejected on owner-enforced buckets
            self.client.put_object(Bucket=self.bucket, Key=path, Body=data, ContentType=stored.content_type)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"S3 put of {path} failed: {exc}") from exc
        return stored

    def exists(self, path: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=path)
        except ClientError as exc:
            if exc.response.get("Error", {}).get("Code") in MISSING_KEY_CODES:
                return False
            raise StorageError(f"S3 head of {path} failed: {exc}") from exc
        except BotoCoreError as exc:
            raise StorageError(f"S3 head of {path} failed: {exc}") from exc
        return True

    def get_url(self, path: str, expires_seconds: int = 3600) -> Optional[str]:
        if self.public_base_url:
            return f"{self.public_base_url.rstrip('/')}/{path}"
        try:
            return self.client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": path},
                ExpiresIn=expires_seconds,
            )
        except (BotoCoreError, ClientError):
            return None

    def delete(self, path: str) -> None:
        try:
            self.client.delete_object(Bucket=self.bucket, Key=path)
        except (BotoCoreError, ClientError) as exc:
            raise StorageError(f"S3 delete of {path} failed: {exc}") from exc


def get_storage_backend(config: Settings = settings) -> StorageBackend:
    """S3 when STORAGE_BACKEND=s3 and credentials are present, local disk otherwise."""
    if (config.STORAGE_BACKEND or "local").lower() == "s3":
        s3 = S3CompatibleStorage.from_settings(config)
        if s3 is not None:
            return s3
    return LocalDiskStorage()
