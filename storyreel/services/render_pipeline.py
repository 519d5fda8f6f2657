"""Render orchestration: script, scenes, narration, images, clips, final mix."""

from __future__ import annotations

import logging
import shutil
from pathlib import Path
from typing import Callable, Mapping, Optional
from uuid import uuid4

from storyreel.clients.openai_chat import OpenAIChatClient
from storyreel.clients.stability import StabilityClient
from storyreel.clients.storage import ObjectStorage
from storyreel.clients.tts import ElevenLabsClient
from storyreel.config import Settings
from storyreel.errors import DataError
from storyreel.models.domain import VideoJob
from storyreel.services.assembler import Assembler
from storyreel.services.compositor import SceneCompositor
from storyreel.services.imagery import ImageSynthesizer, VisualPromptWriter
from storyreel.services.media import FFmpegRunner, MediaEventListener
from storyreel.services.narration import NarrationSynthesizer
from storyreel.services.retry import BackoffPolicy
from storyreel.services.scheduling import PipelinePolicies
from storyreel.services.script_writer import ScriptWriter
from storyreel.services.segmenter import SceneSegmenter, normalize_narration, split_sentences
from storyreel.services.speech import SpeechSynthesizer

ScriptCallback = Callable[[str], None]


class RenderPipeline:
    def __init__(
        self,
        script_writer: ScriptWriter,
        segmenter: SceneSegmenter,
        narration: NarrationSynthesizer,
        imagery: ImageSynthesizer,
        compositor: SceneCompositor,
        assembler: Assembler,
        media: FFmpegRunner,
        media_root: str | Path = "media",
        keep_workdir: bool = False,
        logger: Optional[logging.Logger] = None,
    ) -> None:
        self.script_writer = script_writer
        self.segmenter = segmenter
        self.narration = narration
        self.imagery = imagery
        self.compositor = compositor
        self.assembler = assembler
        self.media = media
        self.media_root = Path(media_root)
        self.keep_workdir = keep_workdir
        self.log = logger or logging.getLogger(__name__)

    def workdir_for(self, job: VideoJob) -> Path:
        return self.media_root / str(job.id) / uuid4().hex

    async def run(self, job: VideoJob, on_script: ScriptCallback | None = None) -> str:
        """Render ``job`` end to end and return the public URL of the uploaded video.

        The working directory is private to this attempt. It is removed once
        the upload succeeds and kept after a failure for inspection.
        """
        job_id = str(job.id)
        workdir = self.workdir_for(job)
        workdir.mkdir(parents=True, exist_ok=True)
        context = {"job_id": job_id, "workdir": str(workdir)}
        succeeded = False
        try:
            script = job.script
            if not script:
                script = await self.script_writer.write(job.topic, job.video_length)
                if on_script is not None:
                    on_script(script)
            else:
                self.log.info("reusing stored script", extra=context)
            sentences = split_sentences(normalize_narration(script))
            if not sentences:
                raise DataError(f"script for video job {job_id} has no narration")
            self.log.info("script ready", extra={**context, "sentences": len(sentences)})

            groups = await self.segmenter.segment(sentences, job.voice, workdir)
            audio = await self.narration.synthesize_all(groups, job.voice, workdir)
            durations = [await self.media.probe_duration(path) for path in audio]
            self.log.info(
                "narration ready",
                extra={**context, "scenes": len(groups), "seconds": round(sum(durations), 2)},
            )

            images = await self.imagery.generate_all(groups, job.art_style, job.aspect_ratio.value, workdir)
            self.log.info("images ready", extra={**context, "images": len(images)})

            scenes = await self.compositor.compose_all(images, audio, durations, job.aspect_ratio.value, workdir)
            clips = [Path(scene.clip_path) for scene in scenes if scene.clip_path]

            url = await self.assembler.assemble(job_id, clips, job.music_track, workdir)
            succeeded = True
            return url
        finally:
            if succeeded and not self.keep_workdir:
                shutil.rmtree(workdir, ignore_errors=True)
            elif not succeeded:
                self.log.info("render workdir kept after failure", extra=context)


def build_render_pipeline(
    settings: Settings,
    storage: ObjectStorage,
    style_catalog: Mapping[str, Mapping[str, str]],
    listener: MediaEventListener | None = None,
    logger: Optional[logging.Logger] = None,
) -> RenderPipeline:
    log = logger or logging.getLogger(__name__)
    policies = PipelinePolicies.from_settings(settings)
    media = FFmpegRunner(settings.ffmpeg_path, settings.ffprobe_path, listener=listener, logger=log)
    chat = OpenAIChatClient(settings.chat_provider(), logger=log)
    speech = SpeechSynthesizer(
        ElevenLabsClient(settings.speech_provider(), logger=log),
        BackoffPolicy(
            max_retries=settings.tts_max_retries,
            rate_limit_base=settings.tts_rate_limit_backoff,
            transient_base=settings.tts_retry_backoff,
            multiplier=settings.tts_backoff_multiplier,
        ),
        request_delay=policies.narration.delay_after_request,
        logger=log,
    )
    return RenderPipeline(
        script_writer=ScriptWriter(chat, logger=log),
        segmenter=SceneSegmenter(speech, media, min_duration=settings.min_scene_duration, logger=log),
        narration=NarrationSynthesizer(
            speech,
            media,
            policies.narration,
            pause_seconds=settings.sentence_pause_seconds,
            logger=log,
        ),
        imagery=ImageSynthesizer(
            VisualPromptWriter(chat),
            StabilityClient(settings.image_provider(), logger=log),
            policies.images,
            style_catalog,
            logger=log,
        ),
        compositor=SceneCompositor(media, policies.composition, logger=log),
        assembler=Assembler(media, storage, download_timeout=settings.music_download_timeout, logger=log),
        media=media,
        media_root=settings.media_root,
        keep_workdir=settings.keep_workdir,
        logger=log,
    )
