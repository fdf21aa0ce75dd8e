import hashlib
import xml.etree.ElementTree as ET
from datetime import datetime, timedelta, timezone

import pytest
import requests

from video_transcoding_api.elementalconductor_client import (
    ElementalConductorClient,
    ElementalPreset,
    FileGroupSettings,
    Input,
    Job,
    Location,
    Output,
    OutputGroup,
    StreamAssembly,
)
from video_transcoding_api.errors import BackendRequestError

JOB_XML = b"""<?xml version="1.0" encoding="UTF-8"?>
<job href="/jobs/1">
  <status>Error</status>
  <pct_complete>40</pct_complete>
  <submitted>2016-01-20T10:00:00-05:00</submitted>
  <start_time>2016-01-20 10:01:00 -0500</start_time>
  <complete_time></complete_time>
  <errored_time>2016-01-20T10:03:00-05:00</errored_time>
  <error_messages>
    <error><code>1040</code><message>Failed to open input</message></error>
  </error_messages>
</job>
"""


class FakeResponse:
    def __init__(self, status_code=200, content=b""):
        self.status_code = status_code
        self.content = content
        self.text = content.decode("utf-8")


class FakeSession:
    def __init__(self, *responses, error=None):
        self.responses = list(responses)
        self.error = error
        self.requests = []

    def request(self, method, url, data=None, headers=None, timeout=None):
        self.requests.append({"method": method, "url": url, "data": data, "headers": headers, "timeout": timeout})
        if self.error is not None:
            raise self.error
        return self.responses.pop(0)


def make_client(session):
    return ElementalConductorClient(
        "https://conductor.example.com/",
        "user",
        "key",
        30,
        "AKIA123",
        "secret",
        "s3://bucket/out/",
        session=session,
        clock=lambda: 1000.0,
    )


def sample_job() -> Job:
    location = Location(uri="s3://in/video.mp4", username="AKIA123", password="secret")
    return Job(
        input=Input(file_input=location),
        priority=50,
        output_group=OutputGroup(
            order=1,
            file_group_settings=FileGroupSettings(destination=Location(uri="s3://bucket/out/video")),
            outputs=[Output(stream_assembly_name="stream_0", order=0, extension=".mp4")],
        ),
        stream_assemblies=[StreamAssembly(name="stream_0", preset="preset-a")],
    )


def test_auth_headers_sign_path_and_expiry():
    client = make_client(FakeSession())

    headers = client.auth_headers("/jobs")

    expires = str(1000 + 30 * 60)
    inner = hashlib.md5(("/jobs" + "user" + "key" + expires).encode()).hexdigest()
    assert headers == {
        "X-Auth-User": "user",
        "X-Auth-Expires": expires,
        "X-Auth-Key": hashlib.md5(("key" + inner).encode()).hexdigest(),
    }


def test_post_job_sends_xml_and_parses_id():
    session = FakeSession(FakeResponse(201, b'<job href="/jobs/99"><status>pending</status></job>'))

    info = make_client(session).post_job(sample_job())

    assert info.id == "99"
    assert info.status == "pending"
    request = session.requests[0]
    assert request["method"] == "POST"
    assert request["url"] == "https://conductor.example.com/api/jobs"
    assert request["headers"]["Content-Type"] == "application/xml"
    assert request["timeout"] == 60.0

    body = ET.fromstring(request["data"])
    assert body.findtext("input/file_input/uri") == "s3://in/video.mp4"
    assert body.findtext("output_group/file_group_settings/destination/uri") == "s3://bucket/out/video"
    assert body.findtext("output_group/type") == "file_group_settings"
    assert body.findtext("output_group/output/stream_assembly_name") == "stream_0"
    assert body.findtext("stream_assembly/preset") == "preset-a"
    assert body.findtext("priority") == "50"


def test_get_job_parses_status_fields():
    session = FakeSession(FakeResponse(200, JOB_XML))

    info = make_client(session).get_job("1")

    eastern = timezone(timedelta(hours=-5))
    assert info.id == "1"
    assert info.status == "Error"
    assert info.pct_complete == 40
    assert info.submitted == datetime(2016, 1, 20, 10, 0, tzinfo=eastern)
    assert info.start_time == datetime(2016, 1, 20, 10, 1, tzinfo=eastern)
    assert info.complete_time is None
    assert info.errored_time == datetime(2016, 1, 20, 10, 3, tzinfo=eastern)
    assert list(info.error_messages) == ["Failed to open input"]
    assert session.requests[0]["url"] == "https://conductor.example.com/api/jobs/1"


def test_cancel_job_posts_cancel_document():
    session = FakeSession(FakeResponse(200, b'<job href="/jobs/5"><status>cancelled</status></job>'))

    make_client(session).cancel_job("5")

    assert session.requests[0]["url"] == "https://conductor.example.com/api/jobs/5/cancel"
    assert session.requests[0]["data"] == b"<cancel></cancel>"


def test_error_status_keeps_backend_text():
    session = FakeSession(FakeResponse(422, b"<errors><error>Input is invalid</error></errors>"))

    with pytest.raises(BackendRequestError) as excinfo:
        make_client(session).get_job("1")

    assert excinfo.value.status_code == 422
    assert "Input is invalid" in str(excinfo.value)


def test_transport_error_is_wrapped():
    session = FakeSession(error=requests.ConnectionError("connection refused"))

    with pytest.raises(BackendRequestError) as excinfo:
        make_client(session).get_job("1")

    assert "connection refused" in str(excinfo.value)
    assert isinstance(excinfo.value.__cause__, requests.ConnectionError)


def test_empty_body_is_an_error_except_for_delete():
    client = make_client(FakeSession(FakeResponse(200, b""), FakeResponse(204, b"")))

    with pytest.raises(BackendRequestError):
        client.get_job("1")
    assert client.delete_preset("720p") is None


def test_preset_xml_round_trip_through_client():
    preset = ElementalPreset(name="720p", container="mp4", width=1280, height=720, bitrate=2500000, passes=2, audio_bitrate=128000)
    session = FakeSession(FakeResponse(201, preset.to_xml()))

    created = make_client(session).post_preset(preset)

    assert created == preset
    assert session.requests[0]["url"] == "https://conductor.example.com/api/presets"


def test_get_nodes():
    session = FakeSession(
        FakeResponse(
            200,
            b"<node_list><node><name>enc1</name><product>Elemental Server</product><status>active</status></node>"
            b"<node><name>cond</name><product>Conductor</product><status>active</status></node></node_list>",
        )
    )

    nodes = make_client(session).get_nodes()

    assert [(node.name, node.product, node.status) for node in nodes] == [
        ("enc1", "Elemental Server", "active"),
        ("cond", "Conductor", "active"),
    ]


def test_get_job_truncates_fractional_progress():
    session = FakeSession(FakeResponse(200, JOB_XML.replace(b"<pct_complete>40<", b"<pct_complete>45.5<")))

    info = make_client(session).get_job("1")

    assert info.pct_complete == 45
