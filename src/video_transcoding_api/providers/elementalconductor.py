"""Elemental Conductor provider.

Importing this module registers the provider under ``NAME`` in the default
registry::

    from video_transcoding_api.providers import elementalconductor
    from video_transcoding_api.registry import resolve

    provider = resolve(elementalconductor.NAME, config)
"""
from __future__ import annotations

import logging
from typing import Callable, Sequence

from ..config import Config
from ..destinations import build_full_destination
from ..elementalconductor_client import (
    PRODUCT_SERVER,
    ElementalConductorClient,
    ElementalPreset,
    FileGroupSettings,
    Input,
    Job,
    JobInfo,
    Location,
    Output,
    OutputGroup,
    StreamAssembly,
)
from ..errors import InvalidConfigurationError, ProviderUnhealthyError
from ..models.job import JobSpec, JobStatus, Status, StatusDetail
from ..models.preset import AudioPreset, Preset, VideoPreset
from ..models.provider import Capabilities
from ..provider import TranscodingProvider
from ..registry import register
from ..status import StatusNormalizer

logger = logging.getLogger(__name__)

NAME = "elementalconductor"

DEFAULT_JOB_PRIORITY = 50
DEFAULT_OUTPUT_GROUP_ORDER = 1
DEFAULT_EXTENSION = ".mp4"

STATUS_NORMALIZER = StatusNormalizer(
    NAME,
    {
        "pending": Status.queued,
        "preprocessing": Status.started,
        "running": Status.started,
        "postprocessing": Status.started,
        "complete": Status.finished,
        "cancelled": Status.canceled,
        "archived": Status.archived,
    },
)

ClientFactory = Callable[..., ElementalConductorClient]


def stream_assembly_name(index: int) -> str:
    return f"stream_{index}"


def build_outputs_and_stream_assemblies(
    presets: Sequence[str],
) -> tuple[list[Output], list[StreamAssembly]]:
    """Pair every preset with an output through a shared ``stream_<i>`` name."""
    outputs: list[Output] = []
    stream_assemblies: list[StreamAssembly] = []
    for index, preset in enumerate(presets):
        name = stream_assembly_name(index)
        outputs.append(Output(stream_assembly_name=name, order=index, extension=DEFAULT_EXTENSION))
        stream_assemblies.append(StreamAssembly(name=name, preset=preset))
    return outputs, stream_assemblies


def build_job(job_spec: JobSpec, client: ElementalConductorClient) -> Job:
    """Translate a generic job into the Conductor's job payload.

    Pure function of ``job_spec`` and the client's credentials and destination
    root, so the same inputs always give the same payload.
    """
    input_location = Location(
        uri=job_spec.source,
        username=client.access_key_id,
        password=client.secret_access_key,
    )
    output_location = Location(
        uri=build_full_destination(job_spec.source, client.destination),
        username=client.access_key_id,
        password=client.secret_access_key,
    )
    outputs, stream_assemblies = build_outputs_and_stream_assemblies(job_spec.presets)
    return Job(
        input=Input(file_input=input_location),
        priority=DEFAULT_JOB_PRIORITY,
        output_group=OutputGroup(
            order=DEFAULT_OUTPUT_GROUP_ORDER,
            type="file_group_settings",
            file_group_settings=FileGroupSettings(destination=output_location),
            outputs=outputs,
        ),
        stream_assemblies=stream_assemblies,
    )


def normalize_job(job: JobInfo) -> tuple[Status, StatusDetail]:
    detail = StatusDetail(
        native_status=job.status,
        percent_complete=str(job.pct_complete),
        submitted=job.submitted,
        start_time=job.start_time,
        complete_time=job.complete_time,
        errored_time=job.errored_time,
        error_messages=list(job.error_messages) or None,
    )
    return STATUS_NORMALIZER.normalize(job.status), detail


def preset_to_native(preset: Preset) -> ElementalPreset:
    return ElementalPreset(
        name=preset.name,
        description=preset.description,
        container=preset.container,
        width=preset.video.width,
        height=preset.video.height,
        bitrate=preset.video.bitrate,
        gop_size=preset.video.gop_size,
        gop_mode=preset.video.gop_mode,
        profile=preset.video.profile,
        level=preset.video.profile_level,
        rate_control=preset.rate_control,
        interlace_mode=preset.video.interlace_mode,
        passes=2 if preset.two_pass else 1,
        audio_codec=preset.audio.codec,
        audio_bitrate=preset.audio.bitrate,
    )


def preset_from_native(native: ElementalPreset) -> Preset:
    return Preset(
        name=native.name,
        description=native.description,
        container=native.container,
        rate_control=native.rate_control,
        two_pass=native.passes > 1,
        video=VideoPreset(
            profile=native.profile,
            profile_level=native.level,
            width=native.width,
            height=native.height,
            codec="h264" if native.video_codec in ("h.264", "h264") else native.video_codec,
            bitrate=native.bitrate,
            gop_size=native.gop_size,
            gop_mode=native.gop_mode,
            interlace_mode=native.interlace_mode,
        ),
        audio=AudioPreset(codec=native.audio_codec, bitrate=native.audio_bitrate),
    )


class ElementalConductorProvider(TranscodingProvider):
    name = NAME

    def __init__(self, client: ElementalConductorClient) -> None:
        self._client = client

    def submit(self, job_spec: JobSpec) -> JobStatus:
        job = build_job(job_spec, self._client)
        response = self._client.post_job(job)
        logger.info(
            "Submitted job to Elemental Conductor",
            extra={"provider_job_id": response.id, "source": job_spec.source, "presets": list(job_spec.presets)},
        )
        return JobStatus(provider_name=NAME, provider_job_id=response.id, status=Status.queued)

    def poll_status(self, provider_job_id: str) -> JobStatus:
        response = self._client.get_job(provider_job_id)
        status, detail = normalize_job(response)
        return JobStatus(
            provider_name=NAME,
            provider_job_id=response.id or provider_job_id,
            status=status,
            status_detail=detail,
        )

    def cancel(self, provider_job_id: str) -> None:
        self._client.cancel_job(provider_job_id)
        logger.info("Requested job cancellation", extra={"provider": NAME, "provider_job_id": provider_job_id})

    def capabilities(self) -> Capabilities:
        return Capabilities(
            input_formats=["prores", "h264"],
            output_formats=["mp4", "hls"],
            destinations=["akamai", "s3"],
        )

    def create_preset(self, preset: Preset) -> str:
        created = self._client.post_preset(preset_to_native(preset))
        logger.info("Created preset", extra={"provider": NAME, "preset": created.name})
        return created.name

    def get_preset(self, preset_id: str) -> Preset:
        return preset_from_native(self._client.get_preset(preset_id))

    def delete_preset(self, preset_id: str) -> None:
        self._client.delete_preset(preset_id)
        logger.info("Deleted preset", extra={"provider": NAME, "preset": preset_id})

    def healthcheck(self) -> None:
        for node in self._client.get_nodes():
            if node.product == PRODUCT_SERVER and node.status == "active":
                return
        raise ProviderUnhealthyError("there are no active Elemental Server nodes")


def elemental_conductor_factory(
    config: Config,
    *,
    client_factory: ClientFactory = ElementalConductorClient,
) -> ElementalConductorProvider:
    settings = config.elemental_conductor
    if not settings.host or not settings.user_login or not settings.api_key or settings.auth_expires <= 0:
        raise InvalidConfigurationError(
            "missing Elemental user login or api key. Please define the environment variables "
            "ELEMENTALCONDUCTOR_USER_LOGIN and ELEMENTALCONDUCTOR_API_KEY or set these values "
            "in the configuration"
        )
    client = client_factory(
        settings.host,
        settings.user_login,
        settings.api_key,
        settings.auth_expires,
        settings.access_key_id,
        settings.secret_access_key,
        settings.destination,
    )
    return ElementalConductorProvider(client)


register(NAME, elemental_conductor_factory)


__all__ = [
    "DEFAULT_EXTENSION",
    "DEFAULT_JOB_PRIORITY",
    "DEFAULT_OUTPUT_GROUP_ORDER",
    "ElementalConductorProvider",
    "NAME",
    "build_job",
    "build_outputs_and_stream_assemblies",
    "elemental_conductor_factory",
    "normalize_job",
]
