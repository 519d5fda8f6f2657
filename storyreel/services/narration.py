from __future__ import annotations

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Optional

from storyreel.models.domain import SceneGroup
from storyreel.services.media import FFmpegRunner
from storyreel.services.scheduling import StagePolicy, run_stage
from storyreel.services.segmenter import split_sentences
from storyreel.services.speech import SpeechSynthesizer


def with_pause(sentence: str, pause_seconds: float) -> str:
    text = sentence.strip()
    if not text.endswith((".", "!", "?")):
        text += "."
    if pause_seconds > 0:
        return f'{text} <break time="{pause_seconds:g}s" /> '
    return f"{text} "


class NarrationSynthesizer:
    def __init__(
        self,
        speech: SpeechSynthesizer,
        media: FFmpegRunner,
        policy: StagePolicy,
        pause_seconds: float = 0.3,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.speech = speech
        self.media = media
        self.policy = policy
        self.pause_seconds = pause_seconds
        self.log = logger or logging.getLogger(__name__)

    async def synthesize_all(self, groups: list[SceneGroup], voice_id: str | None, workdir: Path) -> list[Path]:
        async def worker(index: int, group: SceneGroup) -> Path:
            try:
                path = await self.synthesize_scene(group, voice_id, workdir / f"clip_{index}.mp3", workdir)
            except Exception:
                self.log.error("scene narration failed", extra={"scene": index}, exc_info=True)
                raise
            self.log.info("scene narration ready", extra={"scene": index, "path": str(path)})
            return path

        return await run_stage(groups, worker, self.policy)

    async def synthesize_scene(self, group: SceneGroup, voice_id: str | None, output: Path, workdir: Path) -> Path:
        sentences = list(group.sentences) or split_sentences(group.text)
        with tempfile.TemporaryDirectory(prefix=f"{output.stem}_", dir=workdir) as scratch:
            scratch_dir = Path(scratch)
            sentence_files: list[Path] = []
            for index, sentence in enumerate(sentences):
                path = scratch_dir / f"sentence_{index}.mp3"
                await self.speech.synthesize_to_file(with_pause(sentence, self.pause_seconds), voice_id, path)
                sentence_files.append(path)
            if len(sentence_files) == 1:
                shutil.copyfile(sentence_files[0], output)
                return output
            await self.media.concat(
                sentence_files,
                output,
                manifest_path=scratch_dir / "sentences.txt",
                label=f"narration:{output.stem}",
            )
        return output
