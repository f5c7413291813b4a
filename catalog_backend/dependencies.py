"""
Dependency wiring for the FastAPI app.
"""

from __future__ import annotations

from typing import Iterator

from sqlalchemy.orm import Session

from catalog_backend.cache import ResponseCache
from catalog_backend.config import get_settings
from catalog_backend.db import Database
from catalog_backend.storage import InMemoryStorageClient, S3StorageClient, StorageClient

IN_MEMORY_DATABASE_URL = "sqlite+pysqlite:///:memory:"

_database: Database | None = None
_storage_client: StorageClient | None = None
_response_cache: ResponseCache | None = None


def get_database() -> Database:
    """
    Return a singleton database so the engine and its pool are shared across
    requests.
    """
    global _database
    if _database:
        return _database

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.database_url:
        _database = Database(IN_MEMORY_DATABASE_URL)
    else:
        _database = Database(settings.database_url)
    return _database


def get_session() -> Iterator[Session]:
    database = get_database()
    with database.Session() as session:
        yield session


def get_storage_client() -> StorageClient:
    global _storage_client
    if _storage_client:
        return _storage_client

    settings = get_settings()
    if settings.use_in_memory_backends or not settings.spaces_bucket:
        _storage_client = InMemoryStorageClient()
    else:
        _storage_client = S3StorageClient(
            bucket=settings.spaces_bucket,
            region=settings.spaces_region or "",
            endpoint=settings.spaces_endpoint,
            access_key_id=settings.aws_access_key_id or "",
            secret_access_key=settings.aws_secret_access_key or "",
        )
    return _storage_client


def get_response_cache() -> ResponseCache:
    global _response_cache
    if _response_cache is None:
        _response_cache = ResponseCache()
    return _response_cache


def reset_singletons() -> None:
    """Forget the cached clients so the next call rebuilds them."""
    global _database, _storage_client, _response_cache
    _database = None
    _storage_client = None
    _response_cache = None
