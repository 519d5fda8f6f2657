from __future__ import annotations

import logging
from typing import Any, Optional

import httpx

from storyreel.config import ChatProviderConfig
from storyreel.errors import ConfigurationError, ProviderError, RateLimitedError


class OpenAIChatClient:
    def __init__(
        self,
        config: ChatProviderConfig,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.api_key = (config.api_key or "").strip()
        self.base_url = config.base_url.rstrip("/")
        self.script_model = config.script_model
        self.visual_model = config.visual_model
        self.timeout = config.timeout
        self._transport = transport
        self.log = logger or logging.getLogger(__name__)

    def enabled(self) -> bool:
        return bool(self.api_key)

    async def complete(
        self,
        messages: list[dict[str, str]],
        *,
        model: str,
        max_tokens: int,
        temperature: float,
    ) -> str:
        if not self.enabled():
            raise ConfigurationError("OpenAI API key is not configured")
        url = f"{self.base_url}/v1/chat/completions"
        payload = {
            "model": model,
            "messages": messages,
            "max_tokens": max_tokens,
            "temperature": temperature,
        }
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        async with httpx.AsyncClient(timeout=self.timeout, transport=self._transport) as client:
            response = await client.post(url, headers=headers, json=payload)
        if response.is_error:
            self.log.error(
                "openai HTTP error",
                extra={"status": response.status_code, "body": response.text, "model": model},
            )
            error_cls = RateLimitedError if response.status_code == 429 else ProviderError
            raise error_cls(
                "openai",
                f"chat completion failed: {response.status_code} {response.text}",
                status_code=response.status_code,
                body=response.text,
            )
        body = response.json()
        text = self._extract_text(body)
        self.log.debug("openai response", extra={"model": model, "length": len(text)})
        return text

    def _extract_text(self, payload: dict[str, Any]) -> str:
        choices = payload.get("choices") or []
        if not choices:
            raise ProviderError("openai", "chat completion response missing choices")
        message = choices[0].get("message") or {}
        content = message.get("content")
        if not content:
            raise ProviderError("openai", "chat completion response missing message content")
        return content
