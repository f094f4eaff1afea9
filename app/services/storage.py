"""
Object storage for uploaded resource files.

Two backends share one interface: a directory on local disk (development and
tests) and an S3 bucket (production, or any S3-compatible endpoint). Routes
get the configured backend through ``get_storage()``.
"""

import mimetypes
import os
from dataclasses import dataclass
from datetime import datetime, timezone
from functools import lru_cache
from pathlib import Path
from typing import Iterator
from urllib.parse import quote

from app.core.config import settings
from app.core.logging_config import get_logger

logger = get_logger(__name__)


class StorageError(Exception):
    """Raised when the object store rejects or fails an operation."""
    pass


class ObjectNotFoundError(StorageError):
    """Raised when a key does not exist in the store."""
    pass


@dataclass(frozen=True)
class StoredObject:
    key: str
    size: int
    last_modified: datetime | None = None


class StorageBackend:
    """Common interface; ``iter_objects`` walks every page of ``list_page``."""

    def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        raise NotImplementedError

    def get(self, key: str) -> bytes:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError

    def exists(self, key: str) -> bool:
        raise NotImplementedError

    def list_page(self, prefix: str = "", token: str | None = None) -> tuple[list[StoredObject], str | None]:
        """Return one page of objects under prefix and the token for the next page (None at the end)."""
        raise NotImplementedError

    def public_url(self, key: str) -> str:
        raise NotImplementedError

    def iter_objects(self, prefix: str = "") -> Iterator[StoredObject]:
        token = None
        pages = 0
        while True:
            objects, token = self.list_page(prefix, token)
            pages += 1
            yield from objects
            if not token:
                break
        logger.debug(f"Listed storage prefix '{prefix}' in {pages} page(s)")


class LocalStorage(StorageBackend):
    """Stores objects as files below a root directory; keys use '/' separators."""

    def __init__(self, root: str | Path, public_base_url: str = "", page_size: int = 1000):
        self.root = Path(root).resolve()
        self.root.mkdir(parents=True, exist_ok=True)
        self.public_base_url = public_base_url.rstrip("/")
        self.page_size = page_size

    def _path(self, key: str) -> Path:
        if not key or key.startswith("/") or "\\" in key:
            raise StorageError(f"Invalid object key: {key!r}")
        path = (self.root / key).resolve()
        if self.root not in path.parents:
            raise StorageError(f"Invalid object key: {key!r}")
        return path

    def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(data)
        logger.debug(f"Stored {key} ({len(data)} bytes) on local disk")

    def get(self, key: str) -> bytes:
        path = self._path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        return path.read_bytes()

    def delete(self, key: str) -> None:
        path = self._path(key)
        if not path.is_file():
            raise ObjectNotFoundError(key)
        path.unlink()
        # Prune empty parent directories up to the root
        parent = path.parent
        while parent != self.root and not any(parent.iterdir()):
            parent.rmdir()
            parent = parent.parent

    def exists(self, key: str) -> bool:
        try:
            return self._path(key).is_file()
        except StorageError:
            return False

    def _all_keys(self, prefix: str) -> list[str]:
        keys = []
        for dirpath, _, filenames in os.walk(self.root):
            for name in filenames:
                key = (Path(dirpath) / name).relative_to(self.root).as_posix()
                if key.startswith(prefix):
                    keys.append(key)
        return sorted(keys)

    def list_page(self, prefix: str = "", token: str | None = None) -> tuple[list[StoredObject], str | None]:
        keys = self._all_keys(prefix)
        # Token is the last key of the previous page, like S3's StartAfter
        if token:
            keys = [k for k in keys if k > token]
        page = keys[: self.page_size]
        objects = []
        for key in page:
            stat = (self.root / key).stat()
            objects.append(StoredObject(
                key=key,
                size=stat.st_size,
                last_modified=datetime.fromtimestamp(stat.st_mtime, tz=timezone.utc),
            ))
        next_token = page[-1] if len(keys) > self.page_size else None
        return objects, next_token

    def public_url(self, key: str) -> str:
        base = self.public_base_url or f"{settings.api_url.rstrip('/')}/files"
        return f"{base}/{quote(key)}"


class S3Storage(StorageBackend):
    """Stores objects in an S3 (or S3-compatible) bucket through boto3."""

    def __init__(
        self,
        bucket: str,
        client=None,
        public_base_url: str = "",
        page_size: int = 1000,
        region: str = "",
        endpoint_url: str = "",
    ):
        if not bucket:
            raise ValueError("bucket is required")
        if client is None:
            import boto3

            client = boto3.client(
                "s3",
                region_name=region or None,
                endpoint_url=endpoint_url or None,
            )
        self.client = client
        self.bucket = bucket
        self.public_base_url = public_base_url.rstrip("/")
        self.page_size = page_size
        self.region = region
        self.endpoint_url = endpoint_url.rstrip("/")

    @staticmethod
    def _is_missing(exc: Exception) -> bool:
        response = getattr(exc, "response", None) or {}
        code = str(response.get("Error", {}).get("Code", ""))
        return code in {"404", "NoSuchKey", "NotFound"}

    def put(self, key: str, data: bytes, content_type: str | None = None) -> None:
        params = {"Bucket": self.bucket, "Key": key, "Body": data}
        if content_type:
            params["ContentType"] = content_type
        try:
            self.client.put_object(**params)
        except Exception as e:
            logger.error(f"S3 put failed | key={key} | error={e}")
            raise StorageError(f"Failed to store {key}") from e

    def get(self, key: str) -> bytes:
        try:
            response = self.client.get_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            if self._is_missing(e):
                raise ObjectNotFoundError(key) from e
            raise StorageError(f"Failed to read {key}") from e
        return response["Body"].read()

    def exists(self, key: str) -> bool:
        try:
            self.client.head_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            if self._is_missing(e):
                return False
            raise StorageError(f"Failed to stat {key}") from e
        return True

    def delete(self, key: str) -> None:
        # S3 delete_object succeeds on missing keys; check first so callers get a 404
        if not self.exists(key):
            raise ObjectNotFoundError(key)
        try:
            self.client.delete_object(Bucket=self.bucket, Key=key)
        except Exception as e:
            raise StorageError(f"Failed to delete {key}") from e

    def list_page(self, prefix: str = "", token: str | None = None) -> tuple[list[StoredObject], str | None]:
        params = {"Bucket": self.bucket, "Prefix": prefix, "MaxKeys": self.page_size}
        if token:
            params["ContinuationToken"] = token
        try:
            response = self.client.list_objects_v2(**params)
        except Exception as e:
            raise StorageError(f"Failed to list '{prefix}'") from e

        objects = [
            StoredObject(key=item["Key"], size=item.get("Size", 0), last_modified=item.get("LastModified"))
            for item in response.get("Contents", [])
            if not item["Key"].endswith("/")
        ]
        next_token = response.get("NextContinuationToken") if response.get("IsTruncated") else None
        return objects, next_token

    def public_url(self, key: str) -> str:
        if self.public_base_url:
            return f"{self.public_base_url}/{quote(key)}"
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{quote(key)}"
        region_part = f".{self.region}" if self.region else ""
        return f"https://{self.bucket}.s3{region_part}.amazonaws.com/{quote(key)}"


def guess_content_type(filename: str) -> str:
    return mimetypes.guess_type(filename)[0] or "application/octet-stream"


@lru_cache(maxsize=1)
def get_storage() -> StorageBackend:
    """Build the backend selected by STORAGE_BACKEND (cached for the process)."""
    backend = settings.storage_backend.lower()
    if backend == "s3":
        logger.info(f"Using S3 storage | bucket={settings.storage_bucket}")
        return S3Storage(
            bucket=settings.storage_bucket,
            public_base_url=settings.storage_public_base_url,
            page_size=settings.storage_page_size,
            region=settings.storage_region,
            endpoint_url=settings.storage_endpoint_url,
        )
    if backend == "local":
        logger.info(f"Using local storage | dir={settings.storage_dir}")
        return LocalStorage(
            settings.storage_dir,
            public_base_url=settings.storage_public_base_url,
            page_size=settings.storage_page_size,
        )
    raise ValueError(f"Unknown STORAGE_BACKEND: {settings.storage_backend}")
