from __future__ import annotations

import io
from pathlib import Path

import pytest
from PIL import Image

from storyreel.config import ChatProviderConfig, Settings
from storyreel.errors import MediaProcessingError, ProviderError


def png_bytes(width: int = 64, height: int = 36) -> bytes:
    buffer = io.BytesIO()
    Image.new("RGB", (width, height), color=(40, 90, 160)).save(buffer, format="PNG")
    return buffer.getvalue()


def words(count: int) -> str:
    """A script of ``count`` words, ten words to a sentence."""
    sentences = []
    remaining = count
    while remaining > 0:
        size = min(10, remaining)
        sentences.append(" ".join(["fact"] * size) + ".")
        remaining -= size
    return " ".join(sentences)


class FakeChat:
    """Chat client stand-in: scripted answers for the script model, a fixed prompt for visuals."""

    script_model = "script-model"
    visual_model = "visual-model"

    def __init__(self, scripts: list[str] | None = None, visual: str = "A lighthouse on a cliff at dusk") -> None:
        self.scripts = list(scripts or [])
        self.visual = visual
        self.calls: list[dict] = []

    async def complete(self, messages, *, model, max_tokens, temperature):
        self.calls.append(
            {"messages": messages, "model": model, "max_tokens": max_tokens, "temperature": temperature}
        )
        if model == self.script_model:
            return self.scripts.pop(0)
        return self.visual

    @property
    def script_calls(self) -> list[dict]:
        return [call for call in self.calls if call["model"] == self.script_model]


class FakeSpeech:
    def __init__(self, fail_at: int | None = None) -> None:
        self.texts: list[str] = []
        self.fail_at = fail_at

    async def synthesize_to_file(self, text, voice_id, output_path):
        if self.fail_at is not None and len(self.texts) == self.fail_at:
            raise ProviderError("elevenlabs", "TTS failed: 401 unauthorized", status_code=401)
        self.texts.append(text)
        path = Path(output_path)
        path.write_bytes(b"ID3audio")
        return path


class FakeTTSClient:
    def __init__(self) -> None:
        self.calls: list[tuple[str, str | None]] = []

    async def synthesize(self, text, voice_id):
        self.calls.append((text, voice_id))
        return b"ID3audio"


class FakeStability:
    def __init__(self, error: Exception | None = None) -> None:
        self.error = error
        self.calls: list[tuple[str, int, int]] = []

    async def text_to_image(self, prompt, width, height):
        self.calls.append((prompt, width, height))
        if self.error is not None:
            raise self.error
        return png_bytes()


class FakeMedia:
    """ffmpeg stand-in that writes every output file it is asked for."""

    def __init__(self, durations: list[float] | None = None, default_duration: float = 2.0) -> None:
        self.durations = list(durations or [])
        self.default_duration = default_duration
        self.runs: list[tuple[list[str], str]] = []
        self.concats: list[tuple[list[Path], Path]] = []
        self.probes: list[Path] = []
        self.fail_labels: set[str] = set()
        self.probe_error: Exception | None = None

    async def run(self, args, label):
        self.runs.append((list(args), label))
        if label in self.fail_labels:
            raise MediaProcessingError(["ffmpeg", *args], 1, "Invalid filter graph")
        Path(args[-1]).write_bytes(b"media")

    async def probe_duration(self, path):
        self.probes.append(Path(path))
        if self.probe_error is not None:
            raise self.probe_error
        if self.durations:
            return self.durations.pop(0)
        return self.default_duration

    async def concat(self, inputs, output, manifest_path, label="concat"):
        self.concats.append(([Path(item) for item in inputs], Path(output)))
        if label in self.fail_labels:
            raise MediaProcessingError(["ffmpeg", "-f", "concat", str(output)], 1, "Invalid data found")
        Path(output).write_bytes(b"joined")
        return Path(output)


class FakeStorage:
    def __init__(self) -> None:
        self.objects: dict[str, bytes] = {}
        self.uploads: list[tuple[str, str]] = []

    def upload_bytes(self, path, content, content_type="application/octet-stream"):
        self.objects[path] = content
        self.uploads.append((path, content_type))
        return self.public_url(path)

    def public_url(self, path):
        return f"https://cdn.example.test/videos/{path}"


async def no_sleep(_seconds: float) -> None:
    return None


@pytest.fixture
def settings(tmp_path) -> Settings:
    return Settings(
        media_root=str(tmp_path / "media"),
        tts_request_delay=0.0,
        render_timeout_seconds=0,
        kafka_enabled=False,
    )


@pytest.fixture
def chat_config() -> ChatProviderConfig:
    return ChatProviderConfig(
        api_key="sk-test",
        base_url="https://chat.example.test",
        script_model="gpt-4",
        visual_model="gpt-4o-mini",
        timeout=5.0,
    )
