from __future__ import annotations

import asyncio
import logging
import threading
from uuid import UUID, uuid4

from storyreel.clients.storage import ObjectStorage, build_storage_client
from storyreel.config import Settings
from storyreel.errors import (
    InvalidStatusTransition,
    JobNotFoundError,
    MissingJobFieldError,
    RenderInProgressError,
    RenderTimeoutError,
    StoryreelError,
)
from storyreel.events.publisher import JobEventPublisher
from storyreel.models.api import ArtStyleInfo, MusicInfo, VideoCreateRequest, VoiceInfo
from storyreel.models.domain import VideoJob, VideoJobStatus, VideoJobStatusHistory
from storyreel.queue.queue import BaseQueue
from storyreel.services.media import MediaEvent
from storyreel.services.render_pipeline import RenderPipeline, build_render_pipeline
from storyreel.storage.catalog import CatalogStore
from storyreel.storage.repository import VideoJobRepository


class VideoService:
    def __init__(
        self,
        repo: VideoJobRepository,
        settings: Settings,
        pipeline: RenderPipeline | None = None,
        storage: ObjectStorage | None = None,
        catalog: CatalogStore | None = None,
    ) -> None:
        self.repo = repo
        self.queue: BaseQueue | None = None
        self.settings = settings
        self.log = logging.getLogger(__name__)
        self.catalog = catalog or CatalogStore(settings.catalog_dir or None, logger=self.log)
        self.storage = storage or build_storage_client(settings.storage())
        self.pipeline = pipeline or build_render_pipeline(
            settings,
            self.storage,
            self.catalog.style_prompts(),
            listener=self._on_media_event,
            logger=self.log,
        )
        self.events: JobEventPublisher | None = None
        if settings.kafka_enabled and settings.kafka_updates_topic:
            try:
                self.events = JobEventPublisher(
                    bootstrap_servers=settings.kafka_bootstrap_servers,
                    topic=settings.kafka_updates_topic,
                    logger=self.log,
                )
            except Exception:  # pragma: no cover - best effort logging
                self.log.warning(
                    "job event publisher unavailable",
                    extra={"topic": settings.kafka_updates_topic},
                    exc_info=True,
                )
        self._active: set[UUID] = set()
        self._active_lock = threading.Lock()

    def bind_queue(self, queue: BaseQueue) -> None:
        self.queue = queue

    def create_job(self, payload: VideoCreateRequest) -> VideoJob:
        job = VideoJob(
            id=uuid4(),
            user_id=payload.user_id,
            topic=payload.topic,
            voice=payload.voice,
            art_style=payload.art_style,
            aspect_ratio=payload.aspect_ratio,
            video_length=payload.video_length,
            music_track=payload.music_track,
            status=VideoJobStatus.PENDING,
            status_history=[VideoJobStatusHistory(status=VideoJobStatus.PENDING, message="Job enqueued")],
        )
        self.repo.save(job)
        self.log.info("video job created", extra={"job_id": str(job.id), "user_id": job.user_id})
        if self.queue is not None:
            self.queue.enqueue(job.id)
        self._emit_job_update(job)
        return job

    def get_job(self, job_id: UUID) -> VideoJob:
        job = self.repo.get(job_id)
        if not job:
            raise JobNotFoundError(f"video job {job_id} not found")
        return job

    def list_user_jobs(self, user_id: str) -> list[VideoJob]:
        return self.repo.list_by_user(user_id)

    async def render(self, job_id: UUID) -> str:
        """Render one job and return its public video URL.

        Raises ``JobNotFoundError`` for unknown ids, ``InvalidStatusTransition``
        for failed jobs and ``RenderInProgressError`` while another render of
        the same job is running. Any render failure marks the job failed and
        propagates.
        """
        job = self.get_job(job_id)
        if job.status == VideoJobStatus.FAILED:
            raise InvalidStatusTransition(f"video job {job_id} has failed and cannot be rendered again")
        self._claim(job.id)
        try:
            return await self._render_claimed(job)
        finally:
            self._release(job.id)

    async def process_job(self, job_id: UUID) -> None:
        try:
            await self.render(job_id)
        except StoryreelError as exc:
            self.log.warning("video job not rendered", extra={"job_id": str(job_id), "error": str(exc)})
        except Exception:
            self.log.exception("video job failed unexpectedly", extra={"job_id": str(job_id)})

    def list_voices(self) -> list[VoiceInfo]:
        return self.catalog.voices()

    def list_art_styles(self) -> list[ArtStyleInfo]:
        return self.catalog.art_styles()

    def list_music(self) -> list[MusicInfo]:
        return self.catalog.music()

    async def _render_claimed(self, job: VideoJob) -> str:
        context = {"job_id": str(job.id), "status": job.status.value}
        self.log.info("render started", extra=context)
        try:
            if not job.music_track:
                raise MissingJobFieldError("music_track")
            if job.status == VideoJobStatus.PENDING:
                self._update_status(job, VideoJobStatus.PROCESSING, "Render started")

            def store_script(script: str) -> None:
                job.script = script
                self._save_job(job)

            run = self.pipeline.run(job, on_script=store_script)
            timeout = self.settings.render_timeout_seconds
            if timeout and timeout > 0:
                try:
                    url = await asyncio.wait_for(run, timeout=timeout)
                except asyncio.TimeoutError as exc:
                    raise RenderTimeoutError(str(job.id), timeout) from exc
            else:
                url = await run
        except Exception as exc:
            self.log.error("render failed", extra={**context, "error": str(exc)}, exc_info=True)
            self._mark_failed(job, exc)
            raise

        job.error = None
        self._update_status(job, VideoJobStatus.COMPLETED, "Video rendered", video_url=url)
        self.log.info("render completed", extra={"job_id": str(job.id), "video_url": url})
        return url

    def _claim(self, job_id: UUID) -> None:
        with self._active_lock:
            if job_id in self._active:
                raise RenderInProgressError(f"video job {job_id} is already rendering")
            self._active.add(job_id)

    def _release(self, job_id: UUID) -> None:
        with self._active_lock:
            self._active.discard(job_id)

    def _mark_failed(self, job: VideoJob, exc: BaseException) -> None:
        message = str(exc) or exc.__class__.__name__
        if not job.can_transition(VideoJobStatus.FAILED):
            self.log.warning("job already terminal, failure not recorded", extra={"job_id": str(job.id)})
            return
        self._update_status(job, VideoJobStatus.FAILED, "Render failed", error=message)

    def _update_status(
        self,
        job: VideoJob,
        status: VideoJobStatus,
        message: str,
        video_url: str | None = None,
        error: str | None = None,
    ) -> None:
        previous = job.status
        job.transition(status, message)
        if status == VideoJobStatus.FAILED:
            # a failed job never advertises an earlier render
            job.video_url = None
        elif video_url:
            job.video_url = video_url
        if error:
            job.error = error
        self._save_job(job)
        self._emit_job_update(job, previous)

    def _save_job(self, job: VideoJob) -> None:
        self.repo.save(job)

    def _emit_job_update(self, job: VideoJob, previous: VideoJobStatus | None = None) -> None:
        if not self.events:
            return
        try:
            self.events.publish_status(job, previous)
        except Exception:  # pragma: no cover
            self.log.warning("job event emission failed", extra={"job_id": str(job.id)}, exc_info=True)

    def _on_media_event(self, event: MediaEvent) -> None:
        if event.kind == "error":
            self.log.warning("media step failed", extra={"label": event.label, "detail": event.detail})
        elif event.kind == "end":
            self.log.debug("media step finished", extra={"label": event.label})
