from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from uuid import UUID

from fastapi import Depends, FastAPI, HTTPException, status
from fastapi.middleware.cors import CORSMiddleware

from storyreel.config import Settings, get_settings
from storyreel.errors import (
    InvalidStatusTransition,
    JobNotFoundError,
    RenderInProgressError,
    StoryreelError,
)
from storyreel.models.api import (
    ArtStyleListResponse,
    MusicListResponse,
    RenderResponse,
    VideoCreateRequest,
    VideoJobListResponse,
    VideoJobResponse,
    VoiceListResponse,
)
from storyreel.queue.queue import KafkaQueue, LocalQueue
from storyreel.services.video_service import VideoService
from storyreel.storage.repository import VideoJobRepository

logging.basicConfig(
    level=getattr(logging, get_settings().log_level.upper(), logging.INFO),
    format="%(asctime)s %(levelname)s [%(name)s] %(message)s",
)


def _close_events() -> None:
    if _service is not None and _service.events is not None:
        _service.events.close()


@asynccontextmanager
async def lifespan(_app: FastAPI):
    try:
        yield
    finally:
        _close_events()


app = FastAPI(title="storyreel", lifespan=lifespan)
app.add_middleware(
    CORSMiddleware,
    allow_origins=[get_settings().frontend_url],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

_repo = VideoJobRepository()
_service: VideoService | None = None


def get_video_service(settings: Settings = Depends(get_settings)) -> VideoService:
    global _service
    if _service is None:
        service = VideoService(repo=_repo, settings=settings)
        queue = _build_queue(settings, service)
        service.bind_queue(queue)
        _service = service
    return _service


def _build_queue(settings: Settings, service: VideoService):
    if settings.kafka_enabled:
        return KafkaQueue(
            bootstrap_servers=settings.kafka_bootstrap_servers,
            topic=settings.kafka_topic,
            group_id=settings.kafka_group_id,
            processor=service.process_job,
        )
    return LocalQueue(processor=service.process_job)


@app.get("/")
def health() -> str:
    return "storyreel render service is running"


@app.post("/videos", response_model=VideoJobResponse, status_code=status.HTTP_202_ACCEPTED)
def create_video(
    payload: VideoCreateRequest,
    service: VideoService = Depends(get_video_service),
) -> VideoJobResponse:
    job = service.create_job(payload)
    return VideoJobResponse(job=job)


@app.get("/videos/user/{user_id}", response_model=VideoJobListResponse)
def list_user_videos(user_id: str, service: VideoService = Depends(get_video_service)) -> VideoJobListResponse:
    return VideoJobListResponse(items=service.list_user_jobs(user_id))


@app.get("/videos/{job_id}", response_model=VideoJobResponse)
def get_video(job_id: UUID, service: VideoService = Depends(get_video_service)) -> VideoJobResponse:
    try:
        job = service.get_job(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    return VideoJobResponse(job=job)


@app.post("/render/{job_id}", response_model=RenderResponse)
async def render_video(job_id: UUID, service: VideoService = Depends(get_video_service)) -> RenderResponse:
    try:
        video_url = await service.render(job_id)
    except JobNotFoundError as exc:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(exc)) from exc
    except (RenderInProgressError, InvalidStatusTransition) as exc:
        raise HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc)) from exc
    except StoryreelError as exc:
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    except Exception as exc:
        logging.getLogger(__name__).exception("unexpected render error", extra={"job_id": str(job_id)})
        raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail=str(exc)) from exc
    return RenderResponse(video_url=video_url)


@app.get("/voices", response_model=VoiceListResponse)
def list_voices(service: VideoService = Depends(get_video_service)) -> VoiceListResponse:
    return VoiceListResponse(items=service.list_voices())


@app.get("/artstyles", response_model=ArtStyleListResponse)
def list_art_styles(service: VideoService = Depends(get_video_service)) -> ArtStyleListResponse:
    return ArtStyleListResponse(items=service.list_art_styles())


@app.get("/music", response_model=MusicListResponse)
def list_music(service: VideoService = Depends(get_video_service)) -> MusicListResponse:
    return MusicListResponse(items=service.list_music())
