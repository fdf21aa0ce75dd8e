import json
import logging

import pytest

from video_transcoding_api.logging_config import StructuredFormatter, get_trace_id, set_trace_id, setup_logging


def test_structured_formatter_includes_extra_fields_and_trace():
    record = logging.makeLogRecord(
        {
            "name": "video_transcoding_api.providers.elementalconductor",
            "levelname": "INFO",
            "levelno": logging.INFO,
            "msg": "Submitted job",
            "provider_job_id": "42",
        }
    )
    set_trace_id("trace-123")

    payload = json.loads(StructuredFormatter().format(record))

    assert get_trace_id() == "trace-123"
    assert payload["message"] == "Submitted job"
    assert payload["severity"] == "INFO"
    assert payload["provider_job_id"] == "42"
    assert payload["logging.googleapis.com/trace"] == "trace-123"
    assert "msg" not in payload


def test_setup_logging_rejects_unknown_level():
    with pytest.raises(ValueError):
        setup_logging(level="chatty", use_cloud_logging=False)
