from __future__ import annotations

import logging
from typing import Optional

import httpx

from storyreel.config import SpeechProviderConfig
from storyreel.errors import ConfigurationError, ProviderError, RateLimitedError


class ElevenLabsClient:
    def __init__(
        self,
        config: SpeechProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api_key = (config.api_key or "").strip()
        self.model_id = config.model_id
        self.base_url = config.base_url.rstrip("/")
        self.timeout = config.timeout
        self._transport = transport
        self.log = logger or logging.getLogger(__name__)

    def enabled(self) -> bool:
        return bool(self.api_key)

    async def synthesize(self, text: str, voice_id: str | None) -> bytes:
        if not self.enabled():
            raise ConfigurationError("ElevenLabs API key is not configured")
        if not voice_id:
            raise ConfigurationError("voice id is required for speech synthesis")
        url = f"{self.base_url}/v1/text-to-speech/{voice_id}"
        payload = {
            "text": text,
            "model_id": self.model_id,
            "voice_settings": {
                "stability": 0.5,
                "similarity_boost": 0.8,
                "speed": 1.1,
            },
        }
        headers = {
            "xi-api-key": self.api_key,
            "Accept": "audio/mpeg",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(url, json=payload, headers=headers)
        if response.status_code == 429:
            raise RateLimitedError(
                "elevenlabs",
                f"TTS rate limited: {response.status_code} {response.text}",
                status_code=429,
                body=response.text,
            )
        if response.is_error:
            self.log.error(
                "elevenlabs HTTP error",
                extra={"status": response.status_code, "body": response.text, "voice_id": voice_id},
            )
            raise ProviderError(
                "elevenlabs",
                f"TTS failed: {response.status_code} {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        audio = response.content
        self.log.info(
            "elevenlabs synthesis completed",
            extra={
                "voice_id": voice_id,
                "model_id": self.model_id,
                "content_length": len(audio),
            },
        )
        return audio
