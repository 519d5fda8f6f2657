"""Per-scene pan/zoom rendering of a still image over its narration clip."""

from __future__ import annotations

import logging
import math
from pathlib import Path
from typing import Optional

from storyreel.errors import MediaProcessingError
from storyreel.models.domain import AspectRatio, SceneArtifact
from storyreel.services.media import FFmpegRunner
from storyreel.services.scheduling import StagePolicy, run_stage

FPS = 25
MIN_FRAMES = 75
MIN_EFFECT_DURATION = 3.0
PACING_TARGET_SECONDS = 50.0
PACING_BOUNDS = (0.9, 1.1)
FALLBACK_EFFECT = "zoomIn"

EFFECTS: tuple[str, ...] = ("zoomIn", "zoomOut", "panLeft", "panRight", "zoomInSlow", "zoomOutSlow")

VIDEO_SIZES: dict[str, tuple[int, int]] = {
    AspectRatio.LANDSCAPE.value: (1280, 720),
    AspectRatio.PORTRAIT.value: (720, 1280),
    AspectRatio.SQUARE.value: (1080, 1080),
}
DEFAULT_VIDEO_SIZE = (1280, 720)

# effect -> (start zoom, per-frame step, zoom limit); negative steps zoom out
_ZOOMS: dict[str, tuple[float, float, float]] = {
    "zoomIn": (1.0, 0.002, 1.2),
    "zoomOut": (1.2, -0.002, 1.0),
    "zoomInSlow": (1.0, 0.001, 1.1),
    "zoomOutSlow": (1.1, -0.001, 1.0),
}
_PAN_ZOOM = 1.15


def video_size(aspect_ratio: str) -> tuple[int, int]:
    return VIDEO_SIZES.get(aspect_ratio, DEFAULT_VIDEO_SIZE)


def effect_for_scene(index: int) -> str:
    return EFFECTS[index % len(EFFECTS)]


def frame_count(duration: float) -> int:
    return max(math.floor(duration * FPS), MIN_FRAMES)


def pacing_scale(total_duration: float) -> float:
    low, high = PACING_BOUNDS
    if total_duration <= 0:
        return high
    return min(max(PACING_TARGET_SECONDS / total_duration, low), high)


def effect_scale(duration: float, scale: float) -> float:
    if duration <= 0:
        return max(scale, 1.0)
    effective = max(duration * scale, MIN_EFFECT_DURATION)
    return effective / duration


def build_effect_filter(effect: str, frames: int, size: tuple[int, int], scale: float = 1.0) -> str:
    """zoompan filter chain for ``effect``; ``scale`` > 1 stretches the motion over more frames."""
    width, height = size
    scale = scale if scale > 0 else 1.0
    prepare = (
        f"scale={width * 2}:{height * 2}:force_original_aspect_ratio=increase,"
        f"crop={width * 2}:{height * 2}"
    )
    center = "x='iw/2-(iw/zoom/2)':y='ih/2-(ih/zoom/2)'"
    if effect in ("panLeft", "panRight"):
        progress = f"min(on/({frames}*{scale:.4f}),1)"
        travel = f"(1-{progress})" if effect == "panLeft" else progress
        motion = f"z={_PAN_ZOOM}:x='(iw-iw/zoom)*{travel}':y='ih/2-(ih/zoom/2)'"
    else:
        start, step, limit = _ZOOMS.get(effect, _ZOOMS[FALLBACK_EFFECT])
        step = step / scale
        if step >= 0:
            zoom = f"min(zoom+{step:.6f},{limit})"
        else:
            zoom = f"max(zoom-{-step:.6f},{limit})"
        if start != 1.0:
            zoom = f"if(eq(on,0),{start},{zoom})"
        motion = f"z='{zoom}':{center}"
    return f"{prepare},zoompan={motion}:d={frames}:s={width}x{height}:fps={FPS},format=yuv420p"


class SceneCompositor:
    def __init__(
        self,
        media: FFmpegRunner,
        policy: StagePolicy,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.media = media
        self.policy = policy
        self.log = logger or logging.getLogger(__name__)

    async def render_scene(
        self,
        image: Path,
        audio: Path,
        duration: float,
        effect: str,
        scale: float,
        aspect_ratio: str,
        output: Path,
    ) -> Path:
        size = video_size(aspect_ratio)
        graph = build_effect_filter(effect, frame_count(duration), size, scale)
        await self.media.run(
            [
                "-i", str(image),
                "-i", str(audio),
                "-filter_complex", f"[0:v]{graph}[v]",
                "-map", "[v]",
                "-map", "1:a",
                "-c:v", "libx264",
                "-preset", "veryfast",
                "-pix_fmt", "yuv420p",
                "-r", str(FPS),
                "-c:a", "aac",
                "-ar", "44100",
                "-b:a", "192k",
                "-t", f"{duration:.3f}",
                str(output),
            ],
            label=f"scene:{output.stem}:{effect}",
        )
        return output

    async def compose_all(
        self,
        images: list[Path],
        audios: list[Path],
        durations: list[float],
        aspect_ratio: str,
        workdir: Path,
    ) -> list[SceneArtifact]:
        scale_factor = pacing_scale(sum(durations))
        artifacts = [
            SceneArtifact(
                index=index,
                audio_path=str(audio),
                image_path=str(image),
                effect=effect_for_scene(index),
                audio_duration=duration,
                effect_scale=effect_scale(duration, scale_factor),
            )
            for index, (image, audio, duration) in enumerate(zip(images, audios, durations))
        ]

        async def worker(index: int, artifact: SceneArtifact) -> SceneArtifact:
            output = workdir / f"scene_{index}.mp4"
            self.log.info(
                "rendering scene",
                extra={
                    "scene": index,
                    "effect": artifact.effect,
                    "duration": round(artifact.audio_duration, 2),
                    "effective_duration": round(artifact.audio_duration * artifact.effect_scale, 2),
                },
            )
            try:
                await self.render_scene(
                    Path(artifact.image_path),
                    Path(artifact.audio_path),
                    artifact.audio_duration,
                    artifact.effect,
                    artifact.effect_scale,
                    aspect_ratio,
                    output,
                )
            except MediaProcessingError:
                self.log.warning(
                    "scene effect failed, using fallback",
                    extra={"scene": index, "effect": artifact.effect},
                    exc_info=True,
                )
                artifact.effect = FALLBACK_EFFECT
                artifact.effect_scale = max(scale_factor, 1.0)
                await self.render_scene(
                    Path(artifact.image_path),
                    Path(artifact.audio_path),
                    artifact.audio_duration,
                    artifact.effect,
                    artifact.effect_scale,
                    aspect_ratio,
                    output,
                )
            artifact.clip_path = str(output)
            return artifact

        return await run_stage(artifacts, worker, self.policy)
