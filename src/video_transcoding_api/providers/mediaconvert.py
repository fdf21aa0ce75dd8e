"""AWS Elemental MediaConvert provider.

Importing this module registers the provider under ``NAME`` in the default
registry.
"""
from __future__ import annotations

import logging
from typing import Any, Callable, Mapping

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from ..config import DEFAULT_AWS_REGION, Config, MediaConvertConfig
from ..destinations import build_full_destination
from ..errors import (
    BackendRequestError,
    InvalidConfigurationError,
    ProviderUnhealthyError,
    UnsupportedPresetError,
)
from ..models.job import JobSpec, JobStatus, Status, StatusDetail
from ..models.preset import AudioPreset, Preset, VideoPreset
from ..models.provider import Capabilities
from ..provider import TranscodingProvider
from ..registry import register
from ..status import StatusNormalizer

logger = logging.getLogger(__name__)

NAME = "mediaconvert"

DEFAULT_JOB_PRIORITY = 0
OUTPUT_GROUP_NAME = "File Group"

STATUS_NORMALIZER = StatusNormalizer(
    NAME,
    {
        "submitted": Status.queued,
        "progressing": Status.started,
        "complete": Status.finished,
        "canceled": Status.canceled,
        "error": Status.failed,
    },
)

_CONTAINERS = {"mp4": "MP4", "mov": "MOV", "m3u8": "M3U8", "hls": "M3U8"}
_RATE_CONTROL_MODES = {"cbr": "CBR", "vbr": "VBR"}
_GOP_UNITS = {"frames": "FRAMES", "seconds": "SECONDS"}

ClientFactory = Callable[[MediaConvertConfig], Any]


def build_create_job_params(job_spec: JobSpec, config: MediaConvertConfig) -> dict[str, Any]:
    """Keyword arguments for ``create_job``, derived only from the job and config."""
    destination = build_full_destination(job_spec.source, config.destination) + "/"
    outputs = [
        {"Preset": preset, "NameModifier": f"_stream_{index}"}
        for index, preset in enumerate(job_spec.presets)
    ]
    return {
        "Queue": config.queue,
        "Role": config.role,
        "Priority": DEFAULT_JOB_PRIORITY,
        "Settings": {
            "Inputs": [
                {
                    "FileInput": job_spec.source,
                    "AudioSelectors": {"Audio Selector 1": {"DefaultSelection": "DEFAULT"}},
                    "VideoSelector": {},
                    "TimecodeSource": "ZEROBASED",
                }
            ],
            "OutputGroups": [
                {
                    "Name": OUTPUT_GROUP_NAME,
                    "OutputGroupSettings": {
                        "Type": "FILE_GROUP_SETTINGS",
                        "FileGroupSettings": {"Destination": destination},
                    },
                    "Outputs": outputs,
                }
            ],
        },
    }


def normalize_job(job: Mapping[str, Any]) -> tuple[Status, StatusDetail]:
    native_status = job.get("Status")
    status = STATUS_NORMALIZER.normalize(native_status)
    timing = job.get("Timing") or {}

    percent = job.get("JobPercentComplete")
    if percent is None:
        percent = 100 if status is Status.finished else 0

    finish_time = timing.get("FinishTime")
    error_message = job.get("ErrorMessage")
    detail = StatusDetail(
        native_status=native_status,
        percent_complete=str(percent),
        submitted=timing.get("SubmitTime"),
        start_time=timing.get("StartTime"),
        complete_time=finish_time if status is Status.finished else None,
        errored_time=finish_time if status is Status.failed else None,
        error_messages=[error_message] if error_message else None,
    )
    return status, detail


def preset_settings(preset: Preset) -> dict[str, Any]:
    """MediaConvert ``PresetSettings`` for a canonical preset."""
    container = _CONTAINERS.get(preset.container.lower())
    if container is None:
        raise UnsupportedPresetError(f"container {preset.container!r} is not supported with mediaconvert")
    if preset.video.codec.lower() not in ("h264", "h.264"):
        raise UnsupportedPresetError(f"video codec {preset.video.codec!r} is not supported with mediaconvert")
    if preset.audio.codec.lower() != "aac":
        raise UnsupportedPresetError(f"audio codec {preset.audio.codec!r} is not supported with mediaconvert")

    video = preset.video
    h264: dict[str, Any] = {
        "RateControlMode": _RATE_CONTROL_MODES.get((preset.rate_control or "cbr").lower(), "CBR"),
        "CodecLevel": _codec_level(video.profile_level),
        "QualityTuningLevel": "MULTI_PASS_HQ" if preset.two_pass else "SINGLE_PASS_HQ",
    }
    if video.bitrate is not None:
        h264["Bitrate"] = video.bitrate
    if video.profile:
        h264["CodecProfile"] = video.profile.upper()
    if video.gop_size is not None:
        h264["GopSize"] = float(video.gop_size)
        h264["GopSizeUnits"] = _GOP_UNITS.get((video.gop_mode or "frames").lower(), "FRAMES")
    if video.interlace_mode:
        h264["InterlaceMode"] = video.interlace_mode.upper()

    video_description: dict[str, Any] = {"CodecSettings": {"Codec": "H_264", "H264Settings": h264}}
    if video.width is not None:
        video_description["Width"] = video.width
    if video.height is not None:
        video_description["Height"] = video.height

    aac: dict[str, Any] = {"CodingMode": "CODING_MODE_2_0", "SampleRate": 48000}
    if preset.audio.bitrate is not None:
        aac["Bitrate"] = preset.audio.bitrate

    return {
        "ContainerSettings": {"Container": container},
        "VideoDescription": video_description,
        "AudioDescriptions": [{"CodecSettings": {"Codec": "AAC", "AacSettings": aac}}],
    }


def preset_from_native(native: Mapping[str, Any]) -> Preset:
    settings = native.get("Settings") or {}
    video_description = settings.get("VideoDescription") or {}
    h264 = (video_description.get("CodecSettings") or {}).get("H264Settings") or {}
    audio_descriptions = settings.get("AudioDescriptions") or [{}]
    aac = (audio_descriptions[0].get("CodecSettings") or {}).get("AacSettings") or {}
    container = (settings.get("ContainerSettings") or {}).get("Container", "MP4")

    gop_size = h264.get("GopSize")
    level = h264.get("CodecLevel")
    return Preset(
        name=native["Name"],
        description=native.get("Description", ""),
        container=container.lower(),
        rate_control=(h264.get("RateControlMode") or "").lower() or None,
        two_pass=h264.get("QualityTuningLevel") == "MULTI_PASS_HQ",
        video=VideoPreset(
            profile=(h264.get("CodecProfile") or "").lower() or None,
            profile_level=_profile_level(level),
            width=video_description.get("Width"),
            height=video_description.get("Height"),
            codec="h264",
            bitrate=h264.get("Bitrate"),
            gop_size=int(gop_size) if gop_size is not None else None,
            gop_mode=(h264.get("GopSizeUnits") or "").lower() or None,
            interlace_mode=(h264.get("InterlaceMode") or "").lower() or None,
        ),
        audio=AudioPreset(codec="aac", bitrate=aac.get("Bitrate")),
    )


def _codec_level(profile_level: str | None) -> str:
    if not profile_level:
        return "AUTO"
    return "LEVEL_" + profile_level.replace(".", "_")


def _profile_level(codec_level: str | None) -> str | None:
    if not codec_level or codec_level == "AUTO":
        return None
    return codec_level.removeprefix("LEVEL_").replace("_", ".")


def queue_name(queue: str) -> str:
    """Queue name from either a bare name or a queue ARN."""
    return queue.rsplit("/", 1)[-1]


def new_mediaconvert_client(config: MediaConvertConfig) -> Any:
    session = boto3.session.Session(
        aws_access_key_id=config.access_key_id,
        aws_secret_access_key=config.secret_access_key,
        region_name=config.region or DEFAULT_AWS_REGION,
    )
    return session.client("mediaconvert", endpoint_url=config.endpoint)


class MediaConvertProvider(TranscodingProvider):
    name = NAME

    def __init__(self, client: Any, config: MediaConvertConfig) -> None:
        self._client = client
        self._config = config

    def submit(self, job_spec: JobSpec) -> JobStatus:
        params = build_create_job_params(job_spec, self._config)
        response = self._call("create_job", **params)
        job_id = response["Job"]["Id"]
        logger.info(
            "Submitted job to MediaConvert",
            extra={"provider_job_id": job_id, "source": job_spec.source, "presets": list(job_spec.presets)},
        )
        return JobStatus(provider_name=NAME, provider_job_id=job_id, status=Status.queued)

    def poll_status(self, provider_job_id: str) -> JobStatus:
        job = self._call("get_job", Id=provider_job_id)["Job"]
        status, detail = normalize_job(job)
        return JobStatus(
            provider_name=NAME,
            provider_job_id=job.get("Id", provider_job_id),
            status=status,
            status_detail=detail,
        )

    def cancel(self, provider_job_id: str) -> None:
        self._call("cancel_job", Id=provider_job_id)
        logger.info("Requested job cancellation", extra={"provider": NAME, "provider_job_id": provider_job_id})

    def capabilities(self) -> Capabilities:
        return Capabilities(
            input_formats=["h264"],
            output_formats=["mp4", "hls", "webm"],
            destinations=["s3"],
        )

    def create_preset(self, preset: Preset) -> str:
        response = self._call(
            "create_preset",
            Name=preset.name,
            Description=preset.description,
            Settings=preset_settings(preset),
        )
        name = response["Preset"]["Name"]
        logger.info("Created preset", extra={"provider": NAME, "preset": name})
        return name

    def get_preset(self, preset_id: str) -> Preset:
        return preset_from_native(self._call("get_preset", Name=preset_id)["Preset"])

    def delete_preset(self, preset_id: str) -> None:
        self._call("delete_preset", Name=preset_id)
        logger.info("Deleted preset", extra={"provider": NAME, "preset": preset_id})

    def healthcheck(self) -> None:
        queue = self._call("get_queue", Name=queue_name(self._config.queue))["Queue"]
        if queue.get("Status") != "ACTIVE":
            raise ProviderUnhealthyError(f"queue {queue.get('Name')!r} is {queue.get('Status')}")

    def _call(self, operation: str, **params: Any) -> dict[str, Any]:
        try:
            return getattr(self._client, operation)(**params)
        except ClientError as exc:
            status_code = exc.response.get("ResponseMetadata", {}).get("HTTPStatusCode")
            raise BackendRequestError(str(exc), status_code=status_code) from exc
        except BotoCoreError as exc:
            raise BackendRequestError(str(exc)) from exc


def mediaconvert_factory(
    config: Config,
    *,
    client_factory: ClientFactory = new_mediaconvert_client,
) -> MediaConvertProvider:
    settings = config.media_convert
    missing = [
        name
        for name, value in (
            ("MEDIACONVERT_AWS_ACCESS_KEY_ID", settings.access_key_id),
            ("MEDIACONVERT_AWS_SECRET_ACCESS_KEY", settings.secret_access_key),
            ("MEDIACONVERT_ENDPOINT", settings.endpoint),
            ("MEDIACONVERT_QUEUE_ARN", settings.queue),
            ("MEDIACONVERT_ROLE_ARN", settings.role),
        )
        if not value
    ]
    if missing:
        raise InvalidConfigurationError(
            f"invalid MediaConvert config, missing: {', '.join(missing)}. Please define the "
            "configuration entries in the config file or environment variables"
        )
    if not settings.region:
        settings = settings.model_copy(update={"region": DEFAULT_AWS_REGION})
    return MediaConvertProvider(client_factory(settings), settings)


register(NAME, mediaconvert_factory)


__all__ = [
    "DEFAULT_JOB_PRIORITY",
    "MediaConvertProvider",
    "NAME",
    "build_create_job_params",
    "mediaconvert_factory",
    "normalize_job",
    "preset_from_native",
    "preset_settings",
]
