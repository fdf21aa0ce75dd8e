from __future__ import annotations

import hashlib
import logging
import time
import xml.etree.ElementTree as ET
from datetime import datetime
from typing import Callable, Sequence

import requests
from pydantic import BaseModel, Field

from .errors import BackendRequestError

logger = logging.getLogger(__name__)

PRODUCT_SERVER = "Elemental Server"

_DATETIME_FORMATS = ("%Y-%m-%d %H:%M:%S %z", "%Y-%m-%dT%H:%M:%S%z")


class Location(BaseModel):
    uri: str
    username: str = ""
    password: str = ""

    def to_element(self, tag: str) -> ET.Element:
        element = ET.Element(tag)
        _sub(element, "uri", self.uri)
        _sub(element, "username", self.username)
        _sub(element, "password", self.password)
        return element


class Input(BaseModel):
    file_input: Location


class Output(BaseModel):
    stream_assembly_name: str
    order: int
    extension: str


class StreamAssembly(BaseModel):
    name: str
    preset: str


class FileGroupSettings(BaseModel):
    destination: Location


class OutputGroup(BaseModel):
    order: int
    type: str = "file_group_settings"
    file_group_settings: FileGroupSettings
    outputs: Sequence[Output] = Field(default_factory=list)


class Job(BaseModel):
    """Job creation payload as accepted by ``POST /api/jobs``."""

    input: Input
    priority: int
    output_group: OutputGroup
    stream_assemblies: Sequence[StreamAssembly] = Field(default_factory=list)

    def to_xml(self) -> bytes:
        root = ET.Element("job")
        input_element = ET.SubElement(root, "input")
        input_element.append(self.input.file_input.to_element("file_input"))
        _sub(root, "priority", self.priority)

        group = ET.SubElement(root, "output_group")
        _sub(group, "order", self.output_group.order)
        settings = ET.SubElement(group, "file_group_settings")
        settings.append(self.output_group.file_group_settings.destination.to_element("destination"))
        _sub(group, "type", self.output_group.type)
        for output in self.output_group.outputs:
            output_element = ET.SubElement(group, "output")
            _sub(output_element, "stream_assembly_name", output.stream_assembly_name)
            _sub(output_element, "order", output.order)
            _sub(output_element, "extension", output.extension)

        for assembly in self.stream_assemblies:
            assembly_element = ET.SubElement(root, "stream_assembly")
            _sub(assembly_element, "name", assembly.name)
            _sub(assembly_element, "preset", assembly.preset)
        return ET.tostring(root, encoding="utf-8")


class JobInfo(BaseModel):
    """A job as reported back by the Conductor."""

    href: str = ""
    status: str = ""
    pct_complete: int = 0
    submitted: datetime | None = None
    start_time: datetime | None = None
    complete_time: datetime | None = None
    errored_time: datetime | None = None
    error_messages: Sequence[str] = Field(default_factory=list)

    @property
    def id(self) -> str:
        return self.href.rstrip("/").split("/")[-1]

    @classmethod
    def from_element(cls, element: ET.Element) -> "JobInfo":
        errors_element = element.find("error_messages")
        messages: list[str] = []
        if errors_element is not None:
            for error in errors_element.iter("error"):
                message = _text(error, "message") or (error.text or "").strip()
                if message:
                    messages.append(message)
        return cls(
            href=element.get("href", ""),
            status=_text(element, "status"),
            pct_complete=_percent(_text(element, "pct_complete")),
            submitted=_datetime(_text(element, "submitted")),
            start_time=_datetime(_text(element, "start_time")),
            complete_time=_datetime(_text(element, "complete_time")),
            errored_time=_datetime(_text(element, "errored_time")),
            error_messages=messages,
        )


class Node(BaseModel):
    name: str = ""
    product: str = ""
    status: str = ""


class ElementalPreset(BaseModel):
    name: str
    description: str = ""
    container: str = ""
    video_codec: str = "h.264"
    width: int | None = None
    height: int | None = None
    bitrate: int | None = None
    gop_size: int | None = None
    gop_mode: str | None = None
    profile: str | None = None
    level: str | None = None
    rate_control: str | None = None
    interlace_mode: str | None = None
    passes: int = 1
    audio_codec: str = "aac"
    audio_bitrate: int | None = None

    def to_xml(self) -> bytes:
        root = ET.Element("preset")
        _sub(root, "name", self.name)
        _sub(root, "description", self.description)
        _sub(root, "container", self.container)

        video = ET.SubElement(root, "video_description")
        _sub(video, "codec", self.video_codec)
        _sub(video, "width", self.width)
        _sub(video, "height", self.height)
        h264 = ET.SubElement(video, "h264_settings")
        _sub(h264, "bitrate", self.bitrate)
        _sub(h264, "gop_size", self.gop_size)
        _sub(h264, "gop_mode", self.gop_mode)
        _sub(h264, "profile", self.profile)
        _sub(h264, "level", self.level)
        _sub(h264, "rate_control_mode", self.rate_control)
        _sub(h264, "interlace_mode", self.interlace_mode)
        _sub(h264, "passes", self.passes)

        audio = ET.SubElement(root, "audio_description")
        _sub(audio, "codec", self.audio_codec)
        aac = ET.SubElement(audio, "aac_settings")
        _sub(aac, "bitrate", self.audio_bitrate)
        return ET.tostring(root, encoding="utf-8")

    @classmethod
    def from_element(cls, element: ET.Element) -> "ElementalPreset":
        video = element.find("video_description")
        h264 = video.find("h264_settings") if video is not None else None
        audio = element.find("audio_description")
        aac = audio.find("aac_settings") if audio is not None else None
        return cls(
            name=_text(element, "name"),
            description=_text(element, "description"),
            container=_text(element, "container"),
            video_codec=_text(video, "codec") or "h.264",
            width=_int(_text(video, "width")),
            height=_int(_text(video, "height")),
            bitrate=_int(_text(h264, "bitrate")),
            gop_size=_int(_text(h264, "gop_size")),
            gop_mode=_text(h264, "gop_mode") or None,
            profile=_text(h264, "profile") or None,
            level=_text(h264, "level") or None,
            rate_control=_text(h264, "rate_control_mode") or None,
            interlace_mode=_text(h264, "interlace_mode") or None,
            passes=_int(_text(h264, "passes")) or 1,
            audio_codec=_text(audio, "codec") or "aac",
            audio_bitrate=_int(_text(aac, "bitrate")),
        )


class ElementalConductorClient:
    """Thin HTTP client for the Elemental Conductor REST API.

    Requests are signed with the user login and API key; a signature stays
    valid for ``auth_expires`` minutes.
    """

    def __init__(
        self,
        host: str,
        user_login: str,
        api_key: str,
        auth_expires: int,
        access_key_id: str = "",
        secret_access_key: str = "",
        destination: str = "",
        *,
        session: requests.Session | None = None,
        timeout: float | None = 60.0,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.host = host.rstrip("/")
        self.user_login = user_login
        self.api_key = api_key
        self.auth_expires = auth_expires
        self.access_key_id = access_key_id
        self.secret_access_key = secret_access_key
        self.destination = destination
        self.timeout = timeout
        self._session = session or requests.Session()
        self._clock = clock

    def post_job(self, job: Job) -> JobInfo:
        return JobInfo.from_element(self._request("POST", "/jobs", job.to_xml()))

    def get_job(self, job_id: str) -> JobInfo:
        return JobInfo.from_element(self._request("GET", f"/jobs/{job_id}"))

    def cancel_job(self, job_id: str) -> JobInfo:
        return JobInfo.from_element(self._request("POST", f"/jobs/{job_id}/cancel", b"<cancel></cancel>"))

    def post_preset(self, preset: ElementalPreset) -> ElementalPreset:
        return ElementalPreset.from_element(self._request("POST", "/presets", preset.to_xml()))

    def get_preset(self, preset_id: str) -> ElementalPreset:
        return ElementalPreset.from_element(self._request("GET", f"/presets/{preset_id}"))

    def delete_preset(self, preset_id: str) -> None:
        self._request("DELETE", f"/presets/{preset_id}", expect_body=False)

    def get_nodes(self) -> list[Node]:
        root = self._request("GET", "/nodes")
        return [
            Node(
                name=_text(node, "name"),
                product=_text(node, "product"),
                status=_text(node, "status"),
            )
            for node in root.iter("node")
        ]

    def auth_headers(self, path: str) -> dict[str, str]:
        expires = str(int(self._clock()) + self.auth_expires * 60)
        inner = _md5(path + self.user_login + self.api_key + expires)
        return {
            "X-Auth-User": self.user_login,
            "X-Auth-Expires": expires,
            "X-Auth-Key": _md5(self.api_key + inner),
        }

    def _request(
        self,
        method: str,
        path: str,
        body: bytes | None = None,
        *,
        expect_body: bool = True,
    ) -> ET.Element | None:
        headers = {
            "Accept": "application/xml",
            "Content-Type": "application/xml",
            **self.auth_headers(path),
        }
        url = f"{self.host}/api{path}"
        try:
            response = self._session.request(method, url, data=body, headers=headers, timeout=self.timeout)
        except requests.RequestException as exc:
            logger.error("Elemental Conductor request failed", extra={"method": method, "path": path, "error": str(exc)})
            raise BackendRequestError(str(exc)) from exc

        if response.status_code >= 400:
            raise BackendRequestError(
                f"Elemental Conductor returned {response.status_code} for {method} {path}: {response.text}",
                status_code=response.status_code,
            )

        if not response.content or not response.content.strip():
            if expect_body:
                raise BackendRequestError(f"empty response from Elemental Conductor for {method} {path}")
            return None
        try:
            return ET.fromstring(response.content)
        except ET.ParseError as exc:
            raise BackendRequestError(f"invalid XML from Elemental Conductor: {response.text}") from exc


def _sub(parent: ET.Element, tag: str, value: object) -> None:
    if value is None:
        return
    ET.SubElement(parent, tag).text = str(value)


def _text(element: ET.Element | None, tag: str) -> str:
    if element is None:
        return ""
    child = element.find(tag)
    if child is None or child.text is None:
        return ""
    return child.text.strip()


def _int(value: str) -> int | None:
    if not value:
        return None
    try:
        return int(value)
    except ValueError:
        return None


def _percent(value: str) -> int:
    if not value:
        return 0
    try:
        return int(float(value))
    except ValueError:
        return 0


def _datetime(value: str) -> datetime | None:
    if not value:
        return None
    try:
        return datetime.fromisoformat(value)
    except ValueError:
        pass
    for fmt in _DATETIME_FORMATS:
        try:
            return datetime.strptime(value, fmt)
        except ValueError:
            continue
    logger.warning("Unparseable Elemental Conductor timestamp", extra={"value": value})
    return None


def _md5(value: str) -> str:
    return hashlib.md5(value.encode("utf-8")).hexdigest()


__all__ = [
    "ElementalConductorClient",
    "ElementalPreset",
    "FileGroupSettings",
    "Input",
    "Job",
    "JobInfo",
    "Location",
    "Node",
    "Output",
    "OutputGroup",
    "PRODUCT_SERVER",
    "StreamAssembly",
]
