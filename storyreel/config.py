from __future__ import annotations

from dataclasses import dataclass
from functools import lru_cache

from pydantic_settings import BaseSettings, SettingsConfigDict


@dataclass(frozen=True)
class ChatProviderConfig:
    api_key: str
    base_url: str
    script_model: str
    visual_model: str
    timeout: float


@dataclass(frozen=True)
class SpeechProviderConfig:
    api_key: str
    base_url: str
    model_id: str
    timeout: float


@dataclass(frozen=True)
class ImageProviderConfig:
    api_key: str
    base_url: str
    engine_id: str
    timeout: float


@dataclass(frozen=True)
class StorageConfig:
    provider: str
    bucket: str
    endpoint_url: str
    region: str | None
    public_url: str
    access_key: str
    secret_key: str
    addressing_style: str | None
    supabase_url: str
    supabase_key: str


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_prefix="STORYREEL_", env_file=".env", env_file_encoding="utf-8")

    app_name: str = "storyreel"
    host: str = "0.0.0.0"
    port: int = 3000
    log_level: str = "INFO"
    frontend_url: str = "http://localhost:3001"

    kafka_enabled: bool = False
    kafka_bootstrap_servers: str = "localhost:9092"
    kafka_topic: str = "render_jobs"
    kafka_updates_topic: str = "video_updates"
    kafka_group_id: str = "storyreel-render-consumer"

    # Script generation and visual prompt rewriting
    openai_api_key: str = ""
    openai_base_url: str = "https://api.openai.com"
    openai_script_model: str = "gpt-4"
    openai_visual_model: str = "gpt-4o-mini"
    openai_timeout: float = 60.0

    # Speech synthesis
    elevenlabs_api_key: str = ""
    elevenlabs_base_url: str = "https://api.elevenlabs.io"
    elevenlabs_model_id: str = "eleven_multilingual_v2"
    elevenlabs_timeout: float = 30.0
    tts_request_delay: float = 1.5
    tts_max_retries: int = 3
    tts_rate_limit_backoff: float = 2.0
    tts_retry_backoff: float = 1.0
    tts_backoff_multiplier: float = 2.0
    sentence_pause_seconds: float = 0.3

    # Image synthesis
    stability_api_key: str = ""
    stability_base_url: str = "https://api.stability.ai"
    stability_engine_id: str = "sdxl-1.0"
    stability_timeout: float = 120.0
    image_concurrency: int = 0

    # Object storage: s3, supabase, or memory for tests and offline runs
    storage_provider: str = "s3"
    storage_bucket: str = "videos"
    s3_endpoint_url: str = ""
    s3_region: str | None = None
    s3_public_url: str = ""
    s3_access_key: str = ""
    s3_secret_key: str = ""
    s3_addressing_style: str | None = None
    supabase_url: str = ""
    supabase_service_role_key: str = ""

    # Media processing
    ffmpeg_path: str = "ffmpeg"
    ffprobe_path: str = "ffprobe"
    media_root: str = "media"
    keep_workdir: bool = False
    min_scene_duration: float = 4.5
    render_timeout_seconds: float = 1800.0
    music_download_timeout: float = 60.0

    # Bundled catalogs; empty means the packaged storyreel/data files
    catalog_dir: str = ""

    def chat_provider(self) -> ChatProviderConfig:
        return ChatProviderConfig(
            api_key=self.openai_api_key,
            base_url=self.openai_base_url,
            script_model=self.openai_script_model,
            visual_model=self.openai_visual_model,
            timeout=self.openai_timeout,
        )

    def speech_provider(self) -> SpeechProviderConfig:
        return SpeechProviderConfig(
            api_key=self.elevenlabs_api_key,
            base_url=self.elevenlabs_base_url,
            model_id=self.elevenlabs_model_id,
            timeout=self.elevenlabs_timeout,
        )

    def image_provider(self) -> ImageProviderConfig:
        return ImageProviderConfig(
            api_key=self.stability_api_key,
            base_url=self.stability_base_url,
            engine_id=self.stability_engine_id,
            timeout=self.stability_timeout,
        )

    def storage(self) -> StorageConfig:
        return StorageConfig(
            provider=self.storage_provider.lower(),
            bucket=self.storage_bucket,
            endpoint_url=self.s3_endpoint_url,
            region=self.s3_region,
            public_url=self.s3_public_url,
            access_key=self.s3_access_key,
            secret_key=self.s3_secret_key,
            addressing_style=self.s3_addressing_style,
            supabase_url=self.supabase_url,
            supabase_key=self.supabase_service_role_key,
        )


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
