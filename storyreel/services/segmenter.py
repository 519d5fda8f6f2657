from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import Optional

from storyreel.models.domain import SceneGroup
from storyreel.services.media import FFmpegRunner
from storyreel.services.speech import SpeechSynthesizer

MIN_SCENE_DURATION = 4.5

# A run of text closed by terminal punctuation, or a leading run of bare punctuation.
_SENTENCE_RE = re.compile(r"[^.!?]+[.!?]*|[.!?]+")


def normalize_narration(script: str) -> str:
    return " ".join(line.strip() for line in script.splitlines() if line.strip())


def split_sentences(text: str) -> list[str]:
    """Split ``text`` on ``.``, ``!`` and ``?``.

    Every non-whitespace character ends up in exactly one sentence: trailing
    text without punctuation becomes the last sentence and a leading run of
    punctuation is folded into the sentence after it.
    """
    sentences: list[str] = []
    carry = ""
    for piece in _SENTENCE_RE.findall(text):
        stripped = piece.strip()
        if not stripped:
            continue
        if not stripped.strip(".!?"):
            if sentences:
                sentences[-1] += stripped
            else:
                carry += stripped
            continue
        sentences.append(carry + stripped)
        carry = ""
    if carry:
        sentences.append(carry)
    return sentences


class SceneSegmenter:
    def __init__(
        self,
        speech: SpeechSynthesizer,
        media: FFmpegRunner,
        min_duration: float = MIN_SCENE_DURATION,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.speech = speech
        self.media = media
        self.min_duration = min_duration
        self.log = logger or logging.getLogger(__name__)

    async def segment(self, sentences: list[str], voice_id: str | None, workdir: Path) -> list[SceneGroup]:
        groups: list[SceneGroup] = []
        current: list[str] = []
        duration = 0.0
        for index, sentence in enumerate(sentences):
            duration += await self._measure(sentence, voice_id, workdir / f"probe_{index}.mp3")
            current.append(sentence)
            if duration >= self.min_duration or index == len(sentences) - 1:
                groups.append(SceneGroup(sentences=tuple(current), text=" ".join(current), duration=duration))
                current = []
                duration = 0.0

        self.log.info(
            "grouped sentences into scenes",
            extra={"sentences": len(sentences), "scenes": len(groups)},
        )
        for index, group in enumerate(groups):
            self.log.debug(
                "scene group",
                extra={"scene": index, "duration": round(group.duration, 2), "excerpt": group.text[:50]},
            )
        return groups

    async def _measure(self, sentence: str, voice_id: str | None, probe_path: Path) -> float:
        try:
            await self.speech.synthesize_to_file(sentence, voice_id, probe_path)
            return await self.media.probe_duration(probe_path)
        finally:
            probe_path.unlink(missing_ok=True)
