from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

from storyreel.clients.tts import ElevenLabsClient
from storyreel.services.retry import BackoffPolicy, Sleep, call_with_backoff


class SpeechSynthesizer:
    """Throttled, retrying front for the TTS provider shared by segmentation and narration."""

    def __init__(
        self,
        client: ElevenLabsClient,
        backoff: BackoffPolicy,
        request_delay: float = 1.5,
        sleep: Sleep = asyncio.sleep,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.client = client
        self.backoff = backoff
        self.request_delay = request_delay
        self._sleep = sleep
        self.log = logger or logging.getLogger(__name__)

    async def synthesize_to_file(self, text: str, voice_id: str | None, output_path: str | Path) -> Path:
        try:
            audio = await call_with_backoff(
                lambda: self.client.synthesize(text, voice_id),
                self.backoff,
                sleep=self._sleep,
                logger=self.log,
                context={"voice_id": voice_id},
            )
        finally:
            if self.request_delay > 0:
                await self._sleep(self.request_delay)
        path = Path(output_path)
        path.write_bytes(audio)
        return path
