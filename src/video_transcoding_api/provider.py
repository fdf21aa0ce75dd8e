from __future__ import annotations

from abc import ABC, abstractmethod

from .models.job import JobSpec, JobStatus
from .models.preset import Preset
from .models.provider import Capabilities


class TranscodingProvider(ABC):
    """Contract shared by every transcoding backend.

    Implementations hold nothing but an immutable client handle, so a single
    instance may serve concurrent calls for unrelated jobs. Every method makes
    at most one round trip to the backend and never retries.
    """

    name: str = "base"

    @abstractmethod
    def submit(self, job_spec: JobSpec) -> JobStatus:
        """Submit a transcode job and return its initial (queued) status."""

    @abstractmethod
    def poll_status(self, provider_job_id: str) -> JobStatus:
        """Fetch the current status of a previously submitted job."""

    @abstractmethod
    def cancel(self, provider_job_id: str) -> None:
        """Ask the backend to cancel a job. Completion is not awaited."""

    @abstractmethod
    def capabilities(self) -> Capabilities:
        ...

    @abstractmethod
    def create_preset(self, preset: Preset) -> str:
        """Create a preset on the backend and return its backend id."""

    @abstractmethod
    def get_preset(self, preset_id: str) -> Preset:
        ...

    @abstractmethod
    def delete_preset(self, preset_id: str) -> None:
        ...

    @abstractmethod
    def healthcheck(self) -> None:
        """Raise ProviderUnhealthyError or BackendRequestError when the backend is unusable."""


__all__ = ["TranscodingProvider"]
