from __future__ import annotations

import logging
from datetime import datetime, timezone

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter

from .models.job import JobSpec, JobStatus, Status, StatusDetail, TranscodeJob

logger = logging.getLogger(__name__)


class FirestoreJobStore:
    """Firestore-backed job store for production use."""

    COLLECTION_NAME = "transcode_jobs"

    def __init__(self, project_id: str | None = None) -> None:
        self._db = firestore.Client(project=project_id)
        self._collection = self._db.collection(self.COLLECTION_NAME)

    def create_job(self, job_spec: JobSpec, job_status: JobStatus) -> TranscodeJob:
        """Create a new job record in Firestore."""
        now = datetime.now(timezone.utc)
        doc_ref = self._collection.document()
        job = TranscodeJob(
            id=self._generate_id(job_status.provider_name, doc_ref.id),
            provider_name=job_status.provider_name,
            provider_job_id=job_status.provider_job_id,
            source=job_spec.source,
            presets=list(job_spec.presets),
            status=job_status.status,
            status_detail=job_status.status_detail,
            created_at=now,
            updated_at=now,
        )

        self._collection.document(job.id).set(self._to_firestore_dict(job))

        logger.info(
            "Created job",
            extra={
                "job_id": job.id,
                "provider": job.provider_name,
                "provider_job_id": job.provider_job_id,
            },
        )

        return job

    def get_job(self, job_id: str) -> TranscodeJob | None:
        """Retrieve a job by ID from Firestore."""
        doc = self._collection.document(job_id).get()

        if not doc.exists:
            return None

        return self._from_firestore_dict(doc.id, doc.to_dict())

    def update_job(self, job_id: str, job_status: JobStatus) -> TranscodeJob:
        """Record the latest provider status for a job."""
        doc_ref = self._collection.document(job_id)
        doc_ref.update(
            {
                "status": job_status.status.value,
                "status_detail": job_status.status_detail.to_dict(),
                "updated_at": datetime.now(timezone.utc),
            }
        )

        logger.info(
            "Updated job",
            extra={"job_id": job_id, "status": job_status.status.value},
        )

        updated_doc = doc_ref.get()
        return self._from_firestore_dict(updated_doc.id, updated_doc.to_dict())

    def list_jobs(self, *, provider_name: str | None = None, limit: int = 100) -> list[TranscodeJob]:
        """List jobs, newest first, optionally for a single provider."""
        query = self._collection

        if provider_name is not None:
            query = query.where(filter=FieldFilter("provider_name", "==", provider_name))

        query = query.order_by("created_at", direction=firestore.Query.DESCENDING).limit(limit)

        return [self._from_firestore_dict(doc.id, doc.to_dict()) for doc in query.stream()]

    def _generate_id(self, provider_name: str, auto_id: str) -> str:
        ts = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S")
        return f"job_{provider_name}_{ts}_{auto_id[:6]}"

    def _to_firestore_dict(self, job: TranscodeJob) -> dict:
        return {
            "provider_name": job.provider_name,
            "provider_job_id": job.provider_job_id,
            "source": job.source,
            "presets": list(job.presets),
            "status": job.status.value,
            "status_detail": job.status_detail.to_dict(),
            "created_at": job.created_at,
            "updated_at": job.updated_at,
        }

    def _from_firestore_dict(self, job_id: str, data: dict) -> TranscodeJob:
        return TranscodeJob(
            id=job_id,
            provider_name=data["provider_name"],
            provider_job_id=data["provider_job_id"],
            source=data["source"],
            presets=data.get("presets", []),
            status=Status(data["status"]),
            status_detail=StatusDetail.model_validate(data.get("status_detail") or {}),
            created_at=data["created_at"],
            updated_at=data["updated_at"],
        )


__all__ = ["FirestoreJobStore"]
