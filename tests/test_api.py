import uuid

import pytest
from fastapi.testclient import TestClient

from conftest import FakeStorage
from storyreel import main
from storyreel.errors import ProviderError
from storyreel.main import app, get_video_service
from storyreel.services.video_service import VideoService
from storyreel.storage.repository import VideoJobRepository

MUSIC_URL = "https://music.example.test/rise-up.mp3"


class RecordingQueue:
    def __init__(self):
        self.job_ids = []

    def enqueue(self, job_id):
        self.job_ids.append(job_id)


class StubPipeline:
    def __init__(self, error=None):
        self.error = error

    async def run(self, job, on_script=None):
        if on_script is not None:
            on_script("Octopuses have three hearts.")
        if self.error is not None:
            raise self.error
        return f"https://cdn.example.test/videos/final_{job.id}.mp4"


@pytest.fixture
def service(settings):
    service = VideoService(
        repo=VideoJobRepository(), settings=settings, pipeline=StubPipeline(), storage=FakeStorage()
    )
    service.bind_queue(RecordingQueue())
    app.dependency_overrides[get_video_service] = lambda: service
    yield service
    app.dependency_overrides.clear()


@pytest.fixture
def client(service):
    return TestClient(app)


def _create(client, **overrides):
    payload = {
        "user_id": "user-1",
        "topic": "Fun Facts",
        "voice": "v1",
        "art_style": "cinematic",
        "aspect_ratio": "1:1",
        "video_length": "short",
        "music_track": MUSIC_URL,
    }
    payload.update(overrides)
    return client.post("/videos", json=payload)


def test_health(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert "running" in resp.json()


def test_frontend_origin_is_allowed(client):
    resp = client.options(
        "/videos",
        headers={"Origin": "http://localhost:3001", "Access-Control-Request-Method": "POST"},
    )
    assert resp.status_code == 200
    assert resp.headers["access-control-allow-origin"] == "http://localhost:3001"
    assert resp.headers["access-control-allow-credentials"] == "true"


def test_unknown_origin_is_not_allowed(client):
    resp = client.get("/", headers={"Origin": "https://elsewhere.example.test"})
    assert "access-control-allow-origin" not in resp.headers


def test_create_enqueues_pending_job(client, service):
    resp = _create(client)
    assert resp.status_code == 202
    job = resp.json()["job"]
    assert job["status"] == "pending"
    assert job["aspect_ratio"] == "1:1"
    assert job["video_url"] is None
    assert [str(job_id) for job_id in service.queue.job_ids] == [job["id"]]


def test_create_rejects_bad_payload(client):
    assert _create(client, topic="   ").status_code == 422
    assert _create(client, aspect_ratio="4:3").status_code == 422
    assert _create(client, video_length="medium").status_code == 422


def test_get_and_list_videos(client):
    job_id = _create(client).json()["job"]["id"]
    _create(client, user_id="user-2")

    get_resp = client.get(f"/videos/{job_id}")
    assert get_resp.status_code == 200
    assert get_resp.json()["job"]["topic"] == "Fun Facts"

    list_resp = client.get("/videos/user/user-1")
    assert list_resp.status_code == 200
    assert [item["id"] for item in list_resp.json()["items"]] == [job_id]

    assert client.get(f"/videos/{uuid.uuid4()}").status_code == 404


def test_render_completes_job(client):
    job_id = _create(client).json()["job"]["id"]

    resp = client.post(f"/render/{job_id}")

    assert resp.status_code == 200
    assert resp.json()["video_url"] == f"https://cdn.example.test/videos/final_{job_id}.mp4"
    job = client.get(f"/videos/{job_id}").json()["job"]
    assert job["status"] == "completed"
    assert job["script"] == "Octopuses have three hearts."


def test_render_without_music_fails_then_conflicts(client):
    job_id = _create(client, music_track=None).json()["job"]["id"]

    resp = client.post(f"/render/{job_id}")
    assert resp.status_code == 500
    assert "music_track" in resp.json()["detail"]
    assert client.get(f"/videos/{job_id}").json()["job"]["status"] == "failed"

    assert client.post(f"/render/{job_id}").status_code == 409


def test_render_provider_failure_maps_to_500(client, service):
    service.pipeline = StubPipeline(error=ProviderError("elevenlabs", "TTS failed: 401 unauthorized", 401))
    job_id = _create(client).json()["job"]["id"]

    resp = client.post(f"/render/{job_id}")

    assert resp.status_code == 500
    assert "TTS failed" in resp.json()["detail"]
    job = client.get(f"/videos/{job_id}").json()["job"]
    assert job["status"] == "failed"
    assert job["video_url"] is None


def test_render_unknown_job(client):
    assert client.post(f"/render/{uuid.uuid4()}").status_code == 404


def test_catalogs(client):
    voices = client.get("/voices").json()["items"]
    styles = client.get("/artstyles").json()["items"]
    music = client.get("/music").json()["items"]

    assert voices and all(voice["voice_id"] for voice in voices)
    assert any(style["id"] == "cinematic" for style in styles)
    assert all(track["url"].startswith("https://") for track in music)


class RecordingEvents:
    def __init__(self):
        self.closed = False

    def close(self):
        self.closed = True


def test_shutdown_closes_event_publisher(service, monkeypatch):
    events = RecordingEvents()
    service.events = events
    monkeypatch.setattr(main, "_service", service)

    with TestClient(app) as client:
        assert client.get("/").status_code == 200

    assert events.closed
