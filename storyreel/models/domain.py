from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

from storyreel.errors import InvalidStatusTransition


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class VideoJobStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


# completed -> completed covers re-rendering a finished job in place.
ALLOWED_TRANSITIONS: dict[VideoJobStatus, frozenset[VideoJobStatus]] = {
    VideoJobStatus.PENDING: frozenset({VideoJobStatus.PROCESSING, VideoJobStatus.FAILED}),
    VideoJobStatus.PROCESSING: frozenset({VideoJobStatus.COMPLETED, VideoJobStatus.FAILED}),
    VideoJobStatus.COMPLETED: frozenset({VideoJobStatus.COMPLETED, VideoJobStatus.FAILED}),
    VideoJobStatus.FAILED: frozenset(),
}


class AspectRatio(str, Enum):
    LANDSCAPE = "16:9"
    PORTRAIT = "9:16"
    SQUARE = "1:1"


class VideoLength(str, Enum):
    SHORT = "short"
    LONG = "long"


class VideoJobStatusHistory(BaseModel):
    status: VideoJobStatus
    message: str
    occurred_at: datetime = Field(default_factory=_utcnow)


class VideoJob(BaseModel):
    id: UUID
    user_id: str
    topic: str
    voice: Optional[str]
    art_style: str
    aspect_ratio: AspectRatio = AspectRatio.LANDSCAPE
    video_length: VideoLength = VideoLength.SHORT
    music_track: Optional[str] = None
    status: VideoJobStatus = VideoJobStatus.PENDING
    status_history: List[VideoJobStatusHistory] = Field(default_factory=list)
    script: Optional[str] = None
    video_url: Optional[str] = None
    error: Optional[str] = None
    created_at: datetime = Field(default_factory=_utcnow)
    updated_at: datetime = Field(default_factory=_utcnow)

    def can_transition(self, target: VideoJobStatus) -> bool:
        return target in ALLOWED_TRANSITIONS[self.status]

    def transition(self, target: VideoJobStatus, message: str) -> None:
        if not self.can_transition(target):
            raise InvalidStatusTransition(
                f"video job {self.id} cannot move from {self.status.value} to {target.value}"
            )
        self.status = target
        self.status_history.append(VideoJobStatusHistory(status=target, message=message))
        self.updated_at = _utcnow()


class SceneGroup(BaseModel):
    model_config = ConfigDict(frozen=True)

    sentences: tuple[str, ...]
    text: str
    duration: float


class SceneArtifact(BaseModel):
    index: int
    audio_path: Optional[str] = None
    image_path: Optional[str] = None
    effect: Optional[str] = None
    clip_path: Optional[str] = None
    audio_duration: float = 0.0
    effect_scale: float = 1.0
