from __future__ import annotations

import asyncio
import logging
import os
import uuid
from typing import Any

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from video_transcoding_api.config import Config, SecretManagerLoader
from video_transcoding_api.errors import (
    BackendRequestError,
    InvalidConfigurationError,
    ProviderError,
    ProviderUnhealthyError,
    UnknownProviderError,
    UnsupportedPresetError,
)
from video_transcoding_api.firestore_job_store import FirestoreJobStore
from video_transcoding_api.job_store import JobStore, TranscodeJobStore
from video_transcoding_api.logging_config import set_trace_id, setup_logging
from video_transcoding_api.models.job import JobSpec, Status, TranscodeJob
from video_transcoding_api.models.preset import Preset
from video_transcoding_api.models.provider import ProviderDescription
from video_transcoding_api.provider import TranscodingProvider
from video_transcoding_api.providers import elementalconductor, mediaconvert  # noqa: F401  registers providers
from video_transcoding_api.registry import default_registry


class CreateJobRequest(BaseModel):
    provider: str
    source: str
    presets: list[str] = Field(default_factory=list)


class JobResponse(BaseModel):
    id: str
    provider_name: str
    provider_job_id: str
    source: str
    presets: list[str]
    status: Status
    status_detail: dict[str, Any]

    @staticmethod
    def from_record(record: TranscodeJob) -> "JobResponse":
        return JobResponse(
            id=record.id,
            provider_name=record.provider_name,
            provider_job_id=record.provider_job_id,
            source=record.source,
            presets=list(record.presets),
            status=record.status,
            status_detail=record.status_detail.to_dict(),
        )


class JobListResponse(BaseModel):
    jobs: list[JobResponse]


class ProviderListResponse(BaseModel):
    providers: list[str]


class CreatePresetRequest(BaseModel):
    providers: list[str]
    preset: Preset


class CreatePresetResponse(BaseModel):
    preset_ids: dict[str, str] = Field(default_factory=dict)
    errors: dict[str, str] = Field(default_factory=dict)


# Environment configuration
ENVIRONMENT = os.getenv("ENVIRONMENT", "dev")
PROJECT_ID = os.getenv("PROJECT_ID")

# Setup logging
setup_logging(environment=ENVIRONMENT, project_id=PROJECT_ID, level=os.getenv("LOG_LEVEL"))
logger = logging.getLogger(__name__)

config = Config.from_env(secret_loader=SecretManagerLoader(PROJECT_ID) if PROJECT_ID else None)
registry = default_registry

# Use Firestore in production, in-memory for dev
job_store: TranscodeJobStore
if ENVIRONMENT == "dev":
    job_store = JobStore()
else:
    job_store = FirestoreJobStore(project_id=PROJECT_ID)

# Providers are built once per name and shared by every request
_providers: dict[str, TranscodingProvider] = {}

app = FastAPI(title="Video Transcoding API", version="0.1.0")

_ERROR_STATUS_CODES: list[tuple[type[ProviderError], int]] = [
    (UnknownProviderError, 404),
    (InvalidConfigurationError, 400),
    (UnsupportedPresetError, 400),
    (ProviderUnhealthyError, 503),
    (BackendRequestError, 502),
]


@app.middleware("http")
async def trace_requests(request: Request, call_next):
    trace_header = request.headers.get("X-Cloud-Trace-Context", "")
    set_trace_id(trace_header.split("/")[0] or uuid.uuid4().hex)
    return await call_next(request)


@app.exception_handler(ProviderError)
async def provider_error_handler(request: Request, exc: ProviderError) -> JSONResponse:
    status_code = next((code for error_type, code in _ERROR_STATUS_CODES if isinstance(exc, error_type)), 500)
    logger.warning(
        "Provider call failed",
        extra={"path": request.url.path, "error": str(exc), "status_code": status_code},
    )
    return JSONResponse({"error": str(exc)}, status_code=status_code)


@app.post("/v1/jobs", response_model=JobResponse)
async def create_job(request: CreateJobRequest) -> JobResponse:
    provider = _provider(request.provider)
    job_spec = JobSpec(source=request.source, presets=request.presets)
    job_status = await asyncio.to_thread(provider.submit, job_spec)
    record = job_store.create_job(job_spec, job_status)
    return JobResponse.from_record(record)


@app.get("/v1/jobs", response_model=JobListResponse)
async def list_jobs(
    provider: str | None = None,
    limit: int = Query(100, ge=1, le=1000),
) -> JobListResponse:
    records = job_store.list_jobs(provider_name=provider, limit=limit)
    return JobListResponse(jobs=[JobResponse.from_record(record) for record in records])


@app.get("/v1/jobs/{job_id}", response_model=JobResponse)
async def get_job(job_id: str) -> JobResponse:
    record = _get_record(job_id)
    provider = _provider(record.provider_name)
    job_status = await asyncio.to_thread(provider.poll_status, record.provider_job_id)
    return JobResponse.from_record(job_store.update_job(job_id, job_status))


@app.post("/v1/jobs/{job_id}/cancel", response_model=JobResponse)
async def cancel_job(job_id: str) -> JobResponse:
    record = _get_record(job_id)
    provider = _provider(record.provider_name)
    await asyncio.to_thread(provider.cancel, record.provider_job_id)
    job_status = await asyncio.to_thread(provider.poll_status, record.provider_job_id)
    return JobResponse.from_record(job_store.update_job(job_id, job_status))


@app.get("/v1/providers", response_model=ProviderListResponse)
async def list_providers() -> ProviderListResponse:
    return ProviderListResponse(providers=registry.list_enabled(config))


@app.get("/v1/providers/{name}", response_model=ProviderDescription)
async def describe_provider(name: str) -> ProviderDescription:
    return await asyncio.to_thread(registry.describe, name, config)


@app.post("/v1/presets", response_model=CreatePresetResponse)
async def create_preset(request: CreatePresetRequest) -> CreatePresetResponse:
    response = CreatePresetResponse()
    for name in request.providers:
        try:
            provider = _provider(name)
            response.preset_ids[name] = await asyncio.to_thread(provider.create_preset, request.preset)
        except ProviderError as exc:
            logger.warning("Failed to create preset", extra={"provider": name, "error": str(exc)})
            response.errors[name] = str(exc)
    return response


@app.get("/v1/presets/{provider_name}/{preset_id}", response_model=Preset)
async def get_preset(provider_name: str, preset_id: str) -> Preset:
    provider = _provider(provider_name)
    return await asyncio.to_thread(provider.get_preset, preset_id)


@app.delete("/v1/presets/{provider_name}/{preset_id}")
async def delete_preset(provider_name: str, preset_id: str) -> JSONResponse:
    provider = _provider(provider_name)
    await asyncio.to_thread(provider.delete_preset, preset_id)
    return JSONResponse({"deleted": preset_id})


@app.get("/health")
async def healthcheck() -> JSONResponse:
    return JSONResponse({"status": "ok"})


def _provider(name: str) -> TranscodingProvider:
    provider = _providers.get(name)
    if provider is None:
        provider = _providers[name] = registry.resolve(name, config)
    return provider


def _get_record(job_id: str) -> TranscodeJob:
    record = job_store.get_job(job_id)
    if not record:
        raise HTTPException(status_code=404, detail="Job not found")
    return record
