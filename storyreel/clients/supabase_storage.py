from __future__ import annotations

import httpx

from storyreel.config import StorageConfig
from storyreel.errors import ConfigurationError, ProviderError


class SupabaseStorageClient:
    def __init__(
        self,
        config: StorageConfig,
        timeout: float = 60.0,
        transport: httpx.BaseTransport | None = None,
    ) -> None:
        self.api_url = (config.supabase_url or "").rstrip("/")
        self.public_url_base = (config.public_url or "").rstrip("/")
        self.bucket = config.bucket.strip("/")
        self.api_key = (config.supabase_key or "").strip()
        self.timeout = timeout
        self._transport = transport

    def is_configured(self) -> bool:
        return bool(self.api_url and self.api_key)

    def upload_bytes(self, path: str, content: bytes, content_type: str = "application/octet-stream") -> str:
        if not self.is_configured():
            raise ConfigurationError("Supabase storage requires url and service role key")
        object_path = self._normalize_path(path)
        url = f"{self.api_url}/storage/v1/object/{self.bucket}/{object_path}"
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": content_type,
            "x-upsert": "true",
        }
        try:
            with httpx.Client(timeout=self.timeout, transport=self._transport) as client:
                response = client.post(url, headers=headers, content=content)
        except httpx.HTTPError as exc:
            raise ProviderError("supabase", f"Supabase upload failed: {exc}") from exc
        if response.status_code not in (200, 201):
            raise ProviderError(
                "supabase",
                f"Supabase upload failed: {response.status_code} {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        return self.public_url(object_path)

    def public_url(self, path: str) -> str:
        base = self.public_url_base or f"{self.api_url}/storage/v1/object/public"
        joined_path = "/".join(part.strip("/") for part in (self.bucket, path))
        return f"{base.rstrip('/')}/{joined_path}"

    def _normalize_path(self, path: str) -> str:
        return path.strip().lstrip("/")
