from __future__ import annotations

from typing import Dict, Protocol

from storyreel.clients.s3_storage import S3StorageClient
from storyreel.clients.supabase_storage import SupabaseStorageClient
from storyreel.config import StorageConfig
from storyreel.errors import ConfigurationError


class ObjectStorage(Protocol):
    def upload_bytes(self, path: str, content: bytes, content_type: str = ...) -> str: ...

    def public_url(self, path: str) -> str: ...


class MemoryStorageClient:
    """Process-local object store for tests and offline runs."""

    def __init__(self, config: StorageConfig) -> None:
        self.bucket = config.bucket.strip("/")
        self.public_url_base = (config.public_url or "").rstrip("/") or f"memory://{self.bucket}"
        self.objects: Dict[str, bytes] = {}

    def upload_bytes(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        key = path.strip().lstrip("/")
        self.objects[key] = content
        return self.public_url(key)

    def public_url(self, path: str) -> str:
        return f"{self.public_url_base}/{path.strip().lstrip('/')}"


def build_storage_client(config: StorageConfig) -> ObjectStorage:
    if config.provider == "memory":
        return MemoryStorageClient(config)
    if config.provider == "s3":
        client: S3StorageClient | SupabaseStorageClient = S3StorageClient(config)
    elif config.provider == "supabase":
        client = SupabaseStorageClient(config)
    else:
        raise ConfigurationError(f"unknown storage provider '{config.provider}'")
    if not client.is_configured():
        raise ConfigurationError(f"storage provider '{config.provider}' is missing credentials")
    return client
