from __future__ import annotations

import base64
import binascii
import logging
from typing import Optional

import httpx

from storyreel.config import ImageProviderConfig
from storyreel.errors import ConfigurationError, ProviderError, RateLimitedError


class StabilityClient:
    def __init__(
        self,
        config: ImageProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api_key = (config.api_key or "").strip()
        self.engine_id = (config.engine_id or "").strip()
        self.base_url = config.base_url.rstrip("/")
        self.timeout = config.timeout
        self._transport = transport
        self.log = logger or logging.getLogger(__name__)

    def enabled(self) -> bool:
        return bool(self.api_key and self.engine_id)

    async def text_to_image(self, prompt: str, width: int, height: int) -> bytes:
        if not self.api_key:
            raise ConfigurationError("Stability API key is not configured")
        if not self.engine_id:
            raise ConfigurationError("Stability engine id is not configured")
        url = f"{self.base_url}/v1/generation/{self.engine_id}/text-to-image"
        payload = {
            "text_prompts": [{"text": prompt, "weight": 1}],
            "width": width,
            "height": height,
            "samples": 1,
            "cfg_scale": 7,
            "steps": 30,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Accept": "application/json",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(url, headers=headers, json=payload)
        if response.is_error:
            error_cls = RateLimitedError if response.status_code == 429 else ProviderError
            raise error_cls(
                "stability",
                f"Stability API error ({response.status_code}): {response.text or 'No error body'}",
                status_code=response.status_code,
                body=response.text,
            )
        artifacts = response.json().get("artifacts") or []
        encoded = artifacts[0].get("base64") if artifacts else None
        if not encoded:
            raise ProviderError("stability", "Stability API returned no image artifacts")
        try:
            image = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError) as exc:
            raise ProviderError("stability", "Stability API returned an invalid base64 payload") from exc
        self.log.info(
            "stability image generated",
            extra={"engine_id": self.engine_id, "width": width, "height": height, "bytes": len(image)},
        )
        return image
