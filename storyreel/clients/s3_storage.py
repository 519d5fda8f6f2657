from __future__ import annotations

import boto3
from botocore.config import Config as BotoConfig
from botocore.exceptions import BotoCoreError, ClientError

from storyreel.config import StorageConfig
from storyreel.errors import ConfigurationError, ProviderError


class S3StorageClient:
    def __init__(self, config: StorageConfig, timeout: float = 30.0) -> None:
        self.bucket = (config.bucket or "").strip()
        self.access_key = (config.access_key or "").strip()
        self.secret_key = (config.secret_key or "").strip()
        self.endpoint_url = (config.endpoint_url or "").rstrip("/") or None
        self.region_name = (config.region or "").strip() or None
        self.public_url_base = (config.public_url or "").rstrip("/")
        self.timeout = timeout
        self._client = None
        if self.is_configured():
            session = boto3.session.Session(
                aws_access_key_id=self.access_key,
                aws_secret_access_key=self.secret_key,
                region_name=self.region_name,
            )
            boto_config = BotoConfig(
                s3={"addressing_style": (config.addressing_style or "virtual").lower()},
                connect_timeout=timeout,
                read_timeout=timeout,
            )
            self._client = session.client("s3", endpoint_url=self.endpoint_url, config=boto_config)

    def is_configured(self) -> bool:
        return bool(self.bucket and self.access_key and self.secret_key)

    def upload_bytes(
        self,
        path: str,
        content: bytes,
        content_type: str = "application/octet-stream",
    ) -> str:
        # put_object replaces an existing key, which gives upsert semantics.
        if self._client is None:
            raise ConfigurationError("S3 storage requires bucket, access key and secret key")
        key = self._normalize_path(path)
        try:
            self._client.put_object(
                Bucket=self.bucket,
                Key=key,
                Body=content,
                ContentType=content_type,
            )
        except (BotoCoreError, ClientError) as exc:  # pragma: no cover - AWS error surface
            raise ProviderError("s3", f"S3 upload failed: {exc}") from exc
        return self.public_url(key)

    def public_url(self, path: str) -> str:
        clean = self._normalize_path(path)
        if self.public_url_base:
            return f"{self.public_url_base}/{clean}"
        if self.endpoint_url:
            return f"{self.endpoint_url}/{self.bucket}/{clean}"
        region = self.region_name or "us-east-1"
        return f"https://{self.bucket}.s3.{region}.amazonaws.com/{clean}"

    def _normalize_path(self, path: str | None) -> str:
        if not path:
            return ""
        return "/".join(part for part in path.strip().split("/") if part)
