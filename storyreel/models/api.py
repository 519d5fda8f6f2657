from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from .domain import AspectRatio, VideoJob, VideoLength


class VideoCreateRequest(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    user_id: str = Field(..., validation_alias="user_id")
    topic: str = Field(..., validation_alias="topic")
    voice: Optional[str] = Field(default=None, validation_alias="voice")
    art_style: str = Field(default="cinematic", validation_alias="art_style")
    aspect_ratio: AspectRatio = Field(default=AspectRatio.LANDSCAPE, validation_alias="aspect_ratio")
    video_length: VideoLength = Field(default=VideoLength.SHORT, validation_alias="video_length")
    music_track: Optional[str] = Field(default=None, validation_alias="music_track")

    @field_validator("topic")
    @classmethod
    def validate_topic(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("topic must not be empty")
        return value.strip()

    @field_validator("user_id")
    @classmethod
    def validate_user_id(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("user_id must not be empty")
        return value.strip()


class VideoJobResponse(BaseModel):
    job: VideoJob


class VideoJobListResponse(BaseModel):
    items: List[VideoJob]


class RenderResponse(BaseModel):
    video_url: str


class VoiceInfo(BaseModel):
    voice_id: str
    name: Optional[str] = None
    description: Optional[str] = None
    preview_url: Optional[str] = None
    tags: List[str] = Field(default_factory=list)


class VoiceListResponse(BaseModel):
    items: List[VoiceInfo]


class ArtStyleInfo(BaseModel):
    id: str
    name: str
    prompt: str
    preview_url: Optional[str] = None


class ArtStyleListResponse(BaseModel):
    items: List[ArtStyleInfo]


class MusicInfo(BaseModel):
    id: str
    name: str
    description: Optional[str] = None
    author: Optional[str] = None
    url: str


class MusicListResponse(BaseModel):
    items: List[MusicInfo]
