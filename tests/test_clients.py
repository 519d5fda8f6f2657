import base64
import json

import httpx
import pytest

from conftest import png_bytes
from storyreel.clients.openai_chat import OpenAIChatClient
from storyreel.clients.stability import StabilityClient
from storyreel.clients.storage import MemoryStorageClient, build_storage_client
from storyreel.clients.s3_storage import S3StorageClient
from storyreel.clients.supabase_storage import SupabaseStorageClient
from storyreel.clients.tts import ElevenLabsClient
from storyreel.config import ImageProviderConfig, Settings, SpeechProviderConfig
from storyreel.errors import ConfigurationError, ProviderError, RateLimitedError

SPEECH = SpeechProviderConfig(
    api_key="xi-test", base_url="https://tts.example.test", model_id="eleven_multilingual_v2", timeout=5.0
)
IMAGES = ImageProviderConfig(api_key="sk-img", base_url="https://img.example.test", engine_id="sdxl-1.0", timeout=5.0)


@pytest.mark.asyncio
async def test_elevenlabs_posts_voice_settings():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["key"] = request.headers["xi-api-key"]
        seen["body"] = json.loads(request.content)
        return httpx.Response(200, content=b"ID3mp3")

    client = ElevenLabsClient(SPEECH, transport=httpx.MockTransport(handler))
    audio = await client.synthesize("Hello there.", "v1")

    assert audio == b"ID3mp3"
    assert seen["url"] == "https://tts.example.test/v1/text-to-speech/v1"
    assert seen["key"] == "xi-test"
    assert seen["body"]["voice_settings"] == {"stability": 0.5, "similarity_boost": 0.8, "speed": 1.1}
    assert seen["body"]["model_id"] == "eleven_multilingual_v2"


@pytest.mark.asyncio
async def test_elevenlabs_rate_limit_and_errors():
    responses = iter([httpx.Response(429, text="slow down"), httpx.Response(401, text="bad key")])
    client = ElevenLabsClient(SPEECH, transport=httpx.MockTransport(lambda request: next(responses)))

    with pytest.raises(RateLimitedError) as limited:
        await client.synthesize("Hi.", "v1")
    assert limited.value.retryable

    with pytest.raises(ProviderError) as failed:
        await client.synthesize("Hi.", "v1")
    assert failed.value.status_code == 401
    assert not failed.value.retryable


@pytest.mark.asyncio
async def test_elevenlabs_requires_key_and_voice():
    unconfigured = ElevenLabsClient(
        SpeechProviderConfig(api_key="", base_url="https://tts.example.test", model_id="m", timeout=1.0)
    )
    with pytest.raises(ConfigurationError):
        await unconfigured.synthesize("Hi.", "v1")
    with pytest.raises(ConfigurationError):
        await ElevenLabsClient(SPEECH).synthesize("Hi.", None)


@pytest.mark.asyncio
async def test_chat_completion_returns_message_content(chat_config):
    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert request.headers["Authorization"] == "Bearer sk-test"
        assert body["model"] == "gpt-4"
        assert body["temperature"] == 0.7
        return httpx.Response(200, json={"choices": [{"message": {"content": "A script."}}]})

    client = OpenAIChatClient(chat_config, transport=httpx.MockTransport(handler))
    text = await client.complete(
        [{"role": "user", "content": "go"}], model=client.script_model, max_tokens=400, temperature=0.7
    )

    assert text == "A script."


@pytest.mark.asyncio
async def test_chat_completion_without_choices_is_provider_error(chat_config):
    client = OpenAIChatClient(chat_config, transport=httpx.MockTransport(lambda r: httpx.Response(200, json={})))
    with pytest.raises(ProviderError):
        await client.complete([], model="gpt-4", max_tokens=10, temperature=0.0)


@pytest.mark.asyncio
async def test_stability_decodes_first_artifact():
    image = png_bytes()

    def handler(request: httpx.Request) -> httpx.Response:
        body = json.loads(request.content)
        assert request.url.path == "/v1/generation/sdxl-1.0/text-to-image"
        assert (body["width"], body["height"], body["samples"]) == (1024, 1024, 1)
        assert body["text_prompts"][0]["text"] == "a fox"
        return httpx.Response(200, json={"artifacts": [{"base64": base64.b64encode(image).decode()}]})

    client = StabilityClient(IMAGES, transport=httpx.MockTransport(handler))
    assert await client.text_to_image("a fox", 1024, 1024) == image


@pytest.mark.asyncio
async def test_stability_errors():
    client = StabilityClient(IMAGES, transport=httpx.MockTransport(lambda r: httpx.Response(200, json={"artifacts": []})))
    with pytest.raises(ProviderError):
        await client.text_to_image("a fox", 1024, 1024)

    busy = StabilityClient(IMAGES, transport=httpx.MockTransport(lambda r: httpx.Response(503, text="busy")))
    with pytest.raises(ProviderError) as excinfo:
        await busy.text_to_image("a fox", 1024, 1024)
    assert excinfo.value.retryable


def test_supabase_upload_overwrites():
    seen = {}

    def handler(request: httpx.Request) -> httpx.Response:
        seen["url"] = str(request.url)
        seen["upsert"] = request.headers["x-upsert"]
        seen["type"] = request.headers["Content-Type"]
        return httpx.Response(200, json={"Key": "videos/final_1.mp4"})

    settings = Settings(
        storage_provider="supabase",
        supabase_url="https://proj.supabase.test",
        supabase_service_role_key="service-key",
    )
    client = SupabaseStorageClient(settings.storage(), transport=httpx.MockTransport(handler))
    url = client.upload_bytes("final_1.mp4", b"video", "video/mp4")

    assert seen["url"] == "https://proj.supabase.test/storage/v1/object/videos/final_1.mp4"
    assert seen["upsert"] == "true"
    assert seen["type"] == "video/mp4"
    assert url == "https://proj.supabase.test/storage/v1/object/public/videos/final_1.mp4"


def test_supabase_upload_failure_is_provider_error():
    settings = Settings(
        storage_provider="supabase",
        supabase_url="https://proj.supabase.test",
        supabase_service_role_key="service-key",
    )
    client = SupabaseStorageClient(
        settings.storage(), transport=httpx.MockTransport(lambda r: httpx.Response(403, text="denied"))
    )
    with pytest.raises(ProviderError) as excinfo:
        client.upload_bytes("final_1.mp4", b"video", "video/mp4")
    assert excinfo.value.status_code == 403


@pytest.mark.parametrize("provider", ["s3", "supabase"])
def test_storage_without_credentials_is_configuration_error(provider):
    with pytest.raises(ConfigurationError):
        build_storage_client(Settings(storage_provider=provider).storage())


def test_unconfigured_clients_refuse_uploads():
    config = Settings().storage()
    with pytest.raises(ConfigurationError):
        S3StorageClient(config).upload_bytes("final_1.mp4", b"video", "video/mp4")
    with pytest.raises(ConfigurationError):
        SupabaseStorageClient(config).upload_bytes("final_1.mp4", b"video", "video/mp4")


def test_configured_s3_client_is_built():
    settings = Settings(storage_provider="s3", s3_access_key="AKIA", s3_secret_key="secret", s3_region="eu-west-1")
    client = build_storage_client(settings.storage())

    assert isinstance(client, S3StorageClient)
    assert client.public_url("/final_1.mp4") == "https://videos.s3.eu-west-1.amazonaws.com/final_1.mp4"


def test_memory_storage_is_explicit_opt_in():
    client = build_storage_client(Settings(storage_provider="memory", s3_public_url="https://cdn.test").storage())
    assert isinstance(client, MemoryStorageClient)

    first = client.upload_bytes("final_1.mp4", b"one", "video/mp4")
    second = client.upload_bytes("/final_1.mp4", b"two", "video/mp4")

    assert first == second == "https://cdn.test/final_1.mp4"
    assert client.objects == {"final_1.mp4": b"two"}


def test_unknown_storage_provider():
    with pytest.raises(ConfigurationError):
        build_storage_client(Settings(storage_provider="ftp").storage())
