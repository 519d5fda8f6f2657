from __future__ import annotations

import asyncio
import logging
from pathlib import Path
from typing import Optional

import httpx

from storyreel.clients.storage import ObjectStorage
from storyreel.errors import DataError, MissingJobFieldError, ProviderError
from storyreel.services.media import FFmpegRunner

VOICE_VOLUME = 1.5
MUSIC_VOLUME = 0.35

MIX_FILTER = (
    f"[0:a]volume={VOICE_VOLUME}[voice];"
    f"[1:a]volume={MUSIC_VOLUME}[music];"
    "[voice][music]amix=inputs=2:duration=first:dropout_transition=2[aout]"
)


def final_object_key(job_id: str) -> str:
    return f"final_{job_id}.mp4"


class Assembler:
    """Joins scene clips, lays the background track under the narration and publishes the result."""

    def __init__(
        self,
        media: FFmpegRunner,
        storage: ObjectStorage,
        download_timeout: float = 60.0,
        transport: httpx.AsyncBaseTransport | None = None,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.media = media
        self.storage = storage
        self.download_timeout = download_timeout
        self._transport = transport
        self.log = logger or logging.getLogger(__name__)

    async def assemble(self, job_id: str, clips: list[Path], music_url: str | None, workdir: Path) -> str:
        if not music_url:
            raise MissingJobFieldError("music_track")
        narration = workdir / f"narration_{job_id}.mp4"
        await self.media.concat(clips, narration, manifest_path=workdir / "scenes.txt", label="assemble:concat")

        music = await self.download_music(music_url, workdir / f"music_{job_id}.mp3")
        final = workdir / final_object_key(job_id)
        await self.mix(narration, music, final)

        key = final_object_key(job_id)
        content = await asyncio.to_thread(final.read_bytes)
        url = await asyncio.to_thread(self.storage.upload_bytes, key, content, "video/mp4")
        self.log.info("final video uploaded", extra={"job_id": job_id, "key": key, "url": url})
        return url

    async def download_music(self, url: str, output: Path) -> Path:
        try:
            async with httpx.AsyncClient(timeout=self.download_timeout, transport=self._transport) as client:
                response = await client.get(url, follow_redirects=True)
        except httpx.HTTPError as exc:
            raise ProviderError("music", f"music download failed: {exc}") from exc
        if response.status_code >= 500:
            raise ProviderError("music", "music host unavailable", response.status_code, response.text[:500])
        if response.status_code >= 300:
            raise DataError(f"music track {url} could not be fetched (status {response.status_code})")
        output.write_bytes(response.content)
        self.log.info("music downloaded", extra={"url": url, "bytes": len(response.content)})
        return output

    async def mix(self, narration: Path, music: Path, output: Path) -> Path:
        await self.media.run(
            [
                "-i", str(narration),
                "-i", str(music),
                "-filter_complex", MIX_FILTER,
                "-map", "0:v",
                "-map", "[aout]",
                "-c:v", "copy",
                "-c:a", "aac",
                "-b:a", "192k",
                str(output),
            ],
            label="assemble:mix",
        )
        return output
