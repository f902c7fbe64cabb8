"""
Photo file storage: local disk, Tencent COS (S3-compatible) and in-memory testing.

Keys are relative paths such as ``1712345678901-123456789.jpg`` or
``thumbnails/1712345678901-123456789.jpg``.
"""

from __future__ import annotations

import logging
import os
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Protocol

import boto3
from botocore.config import Config
from botocore.exceptions import ClientError

logger = logging.getLogger(__name__)


class StorageClient(Protocol):
    """Defines the operations the API needs from photo storage."""

    def save_bytes(self, key: str, data: bytes, content_type: str | None = None) -> None:
        ...

    def read_bytes(self, key: str) -> bytes:
        ...

    def exists(self, key: str) -> bool:
        ...

    def delete(self, key: str) -> bool:
        ...

    def url_for(self, key: str) -> str:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "/uploads"
    stored_objects: dict = field(default_factory=dict)

    def __post_init__(self):
        self._lock = threading.Lock()

    def save_bytes(self, key: str, data: bytes, content_type: str | None = None) -> None:
        with self._lock:
            self.stored_objects[key] = bytes(data)

    def read_bytes(self, key: str) -> bytes:
        with self._lock:
            stored = self.stored_objects.get(key)
        if stored is None:
            raise FileNotFoundError(key)
        return stored

    def exists(self, key: str) -> bool:
        with self._lock:
            return key in self.stored_objects

    def delete(self, key: str) -> bool:
        with self._lock:
            return self.stored_objects.pop(key, None) is not None

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"


@dataclass
class LocalStorageClient:
    """Stores files under a directory that the app serves at ``base_url``."""

    root: str
    base_url: str = "/uploads"

    def __post_init__(self):
        self._root = Path(self.root).resolve()
        self._root.mkdir(parents=True, exist_ok=True)

    def _path(self, key: str) -> Path:
        path = (self._root / key).resolve()
        if self._root not in path.parents:
            raise ValueError(f"storage key escapes root: {key}")
        return path

    def save_bytes(self, key: str, data: bytes, content_type: str | None = None) -> None:
        path = self._path(key)
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = path.with_name(f".{path.name}.part")
        with open(tmp_path, "wb") as f:
            f.write(data)
        os.replace(tmp_path, path)

    def read_bytes(self, key: str) -> bytes:
        with open(self._path(key), "rb") as f:
            return f.read()

    def exists(self, key: str) -> bool:
        return self._path(key).is_file()

    def delete(self, key: str) -> bool:
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            logger.info("File already missing from storage: %s", key)
            return False
        return True

    def url_for(self, key: str) -> str:
        return f"{self.base_url}/{key}"


@dataclass
class CosStorageClient:
    """
    S3-compatible storage client for Tencent COS.

    Photo URLs are stored with their records, so they are always built from
    the bucket's public base URL.
    """

    bucket: str
    region: str
    endpoint: str
    access_key_id: str
    secret_access_key: str
    public_url: str

    def __post_init__(self):
        if not self.public_url:
            raise ValueError("a public base URL is required for COS storage")
        # Use virtual-hosted style addressing to satisfy COS requirements.
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint,
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def save_bytes(self, key: str, data: bytes, content_type: str | None = None) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ContentType=content_type or "application/octet-stream",
        )

    def read_bytes(self, key: str) -> bytes:
        try:
            response = self._client.get_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404"):
                raise FileNotFoundError(key) from e
            raise
        return response["Body"].read()

    def exists(self, key: str) -> bool:
        try:
            self._client.head_object(Bucket=self.bucket, Key=key)
        except ClientError as e:
            if e.response.get("Error", {}).get("Code") in ("NoSuchKey", "404", "NotFound"):
                return False
            raise
        return True

    def delete(self, key: str) -> bool:
        # S3 deletes are idempotent, so check first to report whether anything went away.
        if not self.exists(key):
            logger.info("Object already missing from bucket %s: %s", self.bucket, key)
            return False
        self._client.delete_object(Bucket=self.bucket, Key=key)
        return True

    def url_for(self, key: str) -> str:
        return f"{self.public_url.rstrip('/')}/{key}"
