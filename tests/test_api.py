import importlib.util
import sys
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from video_transcoding_api.config import Config
from video_transcoding_api.errors import BackendRequestError, InvalidConfigurationError, ProviderUnhealthyError
from video_transcoding_api.job_store import JobStore
from video_transcoding_api.models.job import JobSpec, JobStatus, Status, StatusDetail
from video_transcoding_api.models.preset import Preset
from video_transcoding_api.models.provider import Capabilities
from video_transcoding_api.provider import TranscodingProvider
from video_transcoding_api.registry import ProviderRegistry

API_MAIN = Path(__file__).resolve().parents[1] / "services" / "api" / "main.py"


def load_api_module(monkeypatch):
    monkeypatch.setenv("ENVIRONMENT", "dev")
    monkeypatch.delenv("PROJECT_ID", raising=False)
    spec = importlib.util.spec_from_file_location("transcoding_api_main", API_MAIN)
    module = importlib.util.module_from_spec(spec)
    monkeypatch.setitem(sys.modules, spec.name, module)
    spec.loader.exec_module(module)
    return module


class RecordingProvider(TranscodingProvider):
    name = "fake"

    def __init__(self) -> None:
        self.submitted = []
        self.canceled = []
        self.presets = {}
        self.poll_error = None
        self.status = Status.started

    def submit(self, job_spec: JobSpec) -> JobStatus:
        self.submitted.append(job_spec)
        return JobStatus(provider_name=self.name, provider_job_id=f"fake-{len(self.submitted)}", status=Status.queued)

    def poll_status(self, provider_job_id: str) -> JobStatus:
        if self.poll_error is not None:
            raise self.poll_error
        return JobStatus(
            provider_name=self.name,
            provider_job_id=provider_job_id,
            status=self.status,
            status_detail=StatusDetail(native_status=self.status.value, percent_complete="50"),
        )

    def cancel(self, provider_job_id: str) -> None:
        self.canceled.append(provider_job_id)
        self.status = Status.canceled

    def capabilities(self) -> Capabilities:
        return Capabilities(input_formats=["h264"], output_formats=["mp4"], destinations=["s3"])

    def create_preset(self, preset: Preset) -> str:
        self.presets[preset.name] = preset
        return f"fake-{preset.name}"

    def get_preset(self, preset_id: str) -> Preset:
        return self.presets[preset_id]

    def delete_preset(self, preset_id: str) -> None:
        self.presets.pop(preset_id, None)

    def healthcheck(self) -> None:
        raise ProviderUnhealthyError("no active nodes")


def misconfigured_factory(config: Config) -> TranscodingProvider:
    raise InvalidConfigurationError("missing api key")


@pytest.fixture
def api(monkeypatch):
    module = load_api_module(monkeypatch)
    provider = RecordingProvider()
    registry = ProviderRegistry()
    registry.register("fake", lambda config: provider)
    registry.register("disabled", misconfigured_factory)
    monkeypatch.setattr(module, "registry", registry)
    monkeypatch.setattr(module, "job_store", JobStore())
    return TestClient(module.app), provider


def test_submit_and_poll_job(api):
    client, provider = api

    response = client.post(
        "/v1/jobs",
        json={"provider": "fake", "source": "s3://in/video.mp4", "presets": ["preset-a", "preset-b"]},
    )

    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "queued"
    assert body["provider_job_id"] == "fake-1"
    assert list(provider.submitted[0].presets) == ["preset-a", "preset-b"]

    polled = client.get(f"/v1/jobs/{body['id']}")
    assert polled.status_code == 200
    assert polled.json()["status"] == "started"
    assert polled.json()["status_detail"] == {"native_status": "started", "percent_complete": "50"}

    listed = client.get("/v1/jobs", params={"provider": "fake"})
    assert [job["id"] for job in listed.json()["jobs"]] == [body["id"]]


def test_cancel_job(api):
    client, provider = api
    job_id = client.post("/v1/jobs", json={"provider": "fake", "source": "s3://in/video.mp4"}).json()["id"]

    response = client.post(f"/v1/jobs/{job_id}/cancel")

    assert response.status_code == 200
    assert response.json()["status"] == "canceled"
    assert provider.canceled == ["fake-1"]


def test_unknown_provider_is_404(api):
    client, _ = api

    response = client.post("/v1/jobs", json={"provider": "nope", "source": "s3://in/video.mp4"})

    assert response.status_code == 404
    assert "nope" in response.json()["error"]


def test_invalid_configuration_is_400(api):
    client, _ = api

    response = client.post("/v1/jobs", json={"provider": "disabled", "source": "s3://in/video.mp4"})

    assert response.status_code == 400
    assert response.json()["error"] == "missing api key"


def test_backend_failure_is_502_with_backend_text(api):
    client, provider = api
    job_id = client.post("/v1/jobs", json={"provider": "fake", "source": "s3://in/video.mp4"}).json()["id"]
    provider.poll_error = BackendRequestError("Elemental Conductor returned 500: boom")

    response = client.get(f"/v1/jobs/{job_id}")

    assert response.status_code == 502
    assert response.json()["error"] == "Elemental Conductor returned 500: boom"


def test_missing_job_is_404(api):
    client, _ = api

    assert client.get("/v1/jobs/unknown").status_code == 404


def test_providers(api):
    client, _ = api

    assert client.get("/v1/providers").json() == {"providers": ["fake"]}

    described = client.get("/v1/providers/fake").json()
    assert described["enabled"] is True
    assert described["health"] == {"ok": False, "message": "no active nodes"}

    assert client.get("/v1/providers/disabled").json()["enabled"] is False
    assert client.get("/v1/providers/nope").status_code == 404


def test_presets(api):
    client, provider = api
    preset = {"name": "720p", "container": "mp4", "video": {"width": 1280, "height": 720}}

    created = client.post("/v1/presets", json={"providers": ["fake", "disabled"], "preset": preset})

    assert created.status_code == 200
    assert created.json() == {"preset_ids": {"fake": "fake-720p"}, "errors": {"disabled": "missing api key"}}

    fetched = client.get("/v1/presets/fake/720p")
    assert fetched.json()["video"]["width"] == 1280

    assert client.delete("/v1/presets/fake/720p").json() == {"deleted": "720p"}
    assert provider.presets == {}


def test_health(api):
    client, _ = api

    assert client.get("/health").json() == {"status": "ok"}


def test_provider_is_built_once_and_reused(monkeypatch):
    module = load_api_module(monkeypatch)
    provider = RecordingProvider()
    built = []

    def factory(config):
        built.append(config)
        return provider

    registry = ProviderRegistry()
    registry.register("fake", factory)
    monkeypatch.setattr(module, "registry", registry)
    monkeypatch.setattr(module, "job_store", JobStore())
    client = TestClient(module.app)

    job_id = client.post("/v1/jobs", json={"provider": "fake", "source": "s3://in/video.mp4"}).json()["id"]
    for _ in range(3):
        assert client.get(f"/v1/jobs/{job_id}").status_code == 200

    assert len(built) == 1


@pytest.mark.parametrize("limit", [0, -1, 1001])
def test_list_jobs_rejects_out_of_range_limit(api, limit):
    client, _ = api

    assert client.get("/v1/jobs", params={"limit": limit}).status_code == 422
