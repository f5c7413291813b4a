"""
Storage abstraction for DigitalOcean Spaces (S3-compatible) and in-memory testing.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Protocol
from urllib.parse import urlparse

import boto3
from botocore.config import Config


def key_from_url(url: str) -> str:
    """Turn a public object URL (or a bare key) into an object key."""
    if url.startswith("http://") or url.startswith("https://"):
        return urlparse(url).path.lstrip("/")
    return url.lstrip("/")


class StorageClient(Protocol):
    """Defines the operations the API needs from object storage."""

    def upload_bytes(
        self, key: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        ...

    def delete(self, key_or_url: str) -> None:
        ...

    def public_url(self, key: str) -> str:
        ...


@dataclass
class InMemoryStorageClient:
    """Test double for storage interactions."""

    base_url: str = "https://example.test/storage"
    stored_objects: dict = None

    def __post_init__(self):
        if self.stored_objects is None:
            self.stored_objects = {}

    def upload_bytes(
        self, key: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        self.stored_objects[key] = data

    def delete(self, key_or_url: str) -> None:
        self.stored_objects.pop(key_from_url(key_or_url), None)

    def public_url(self, key: str) -> str:
        return f"{self.base_url}/{key}"

    def get_bytes(self, key_or_url: str) -> bytes:
        stored = self.stored_objects.get(key_from_url(key_or_url))
        if stored is None:
            raise FileNotFoundError(key_or_url)
        return stored


@dataclass
class S3StorageClient:
    """
    S3-compatible storage client for DigitalOcean Spaces. Objects are
    uploaded public-read and served straight from the bucket host.
    """

    bucket: str
    region: str
    endpoint: Optional[str]
    access_key_id: str
    secret_access_key: str

    def __post_init__(self):
        config = Config(
            s3={"addressing_style": "virtual"},
            signature_version="s3v4",
        )
        self._client = boto3.client(
            "s3",
            endpoint_url=self.endpoint or f"https://{self.region}.digitaloceanspaces.com",
            region_name=self.region,
            aws_access_key_id=self.access_key_id,
            aws_secret_access_key=self.secret_access_key,
            config=config,
        )

    def upload_bytes(
        self, key: str, data: bytes, content_type: str = "application/octet-stream"
    ) -> None:
        self._client.put_object(
            Bucket=self.bucket,
            Key=key,
            Body=data,
            ACL="public-read",
            ContentType=content_type,
        )

    def delete(self, key_or_url: str) -> None:
        self._client.delete_object(Bucket=self.bucket, Key=key_from_url(key_or_url))

    def public_url(self, key: str) -> str:
        return f"https://{self.bucket}.{self.region}.digitaloceanspaces.com/{key}"
