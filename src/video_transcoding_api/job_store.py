from __future__ import annotations

import threading
import uuid
from datetime import datetime, timezone
from typing import Dict, Protocol

from .models.job import JobSpec, JobStatus, TranscodeJob


class TranscodeJobStore(Protocol):
    def create_job(self, job_spec: JobSpec, job_status: JobStatus) -> TranscodeJob:
        ...

    def get_job(self, job_id: str) -> TranscodeJob | None:
        ...

    def update_job(self, job_id: str, job_status: JobStatus) -> TranscodeJob:
        ...

    def list_jobs(self, *, provider_name: str | None = None, limit: int = 100) -> list[TranscodeJob]:
        ...


class JobStore:
    """In-memory job store for local development."""

    def __init__(self) -> None:
        self._jobs: Dict[str, TranscodeJob] = {}
        self._lock = threading.Lock()

    def create_job(self, job_spec: JobSpec, job_status: JobStatus) -> TranscodeJob:
        with self._lock:
            job_id = self._generate_id(job_status.provider_name)
            job = TranscodeJob(
                id=job_id,
                provider_name=job_status.provider_name,
                provider_job_id=job_status.provider_job_id,
                source=job_spec.source,
                presets=list(job_spec.presets),
                status=job_status.status,
                status_detail=job_status.status_detail,
            )
            self._jobs[job_id] = job
            return job

    def get_job(self, job_id: str) -> TranscodeJob | None:
        with self._lock:
            return self._jobs.get(job_id)

    def update_job(self, job_id: str, job_status: JobStatus) -> TranscodeJob:
        with self._lock:
            job = self._jobs[job_id].model_copy(
                update={
                    "status": job_status.status,
                    "status_detail": job_status.status_detail,
                    "updated_at": datetime.now(timezone.utc),
                }
            )
            self._jobs[job_id] = job
            return job

    def list_jobs(self, *, provider_name: str | None = None, limit: int = 100) -> list[TranscodeJob]:
        with self._lock:
            jobs = [
                job
                for job in self._jobs.values()
                if provider_name is None or job.provider_name == provider_name
            ]
        jobs.sort(key=lambda job: job.created_at, reverse=True)
        return jobs[:limit]

    def _generate_id(self, provider_name: str) -> str:
        ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        suffix = uuid.uuid4().hex[:6]
        return f"job_{provider_name}_{ts}_{suffix}"


__all__ = ["JobStore", "TranscodeJobStore"]
