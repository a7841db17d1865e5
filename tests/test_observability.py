from __future__ import annotations

import json
import logging

from pawtrack.observability import JsonLogFormatter, LogContextFilter, _parse_header_pairs


def _record(msg: str, *args, **extra) -> logging.LogRecord:
    record = logging.LogRecord("pawtrack.test", logging.INFO, __file__, 1, msg, args, None)
    for key, value in extra.items():
        setattr(record, key, value)
    LogContextFilter("pawtrack-server").filter(record)
    return record


def test_telemetry_ids_are_top_level_fields():
    payload = json.loads(JsonLogFormatter().format(_record("Ingested %s", "b1", device_id="dev1", beacon_id="b1")))

    assert payload["msg"] == "Ingested b1"
    assert payload["service"] == "pawtrack-server"
    assert payload["level"] == "INFO"
    assert payload["device_id"] == "dev1"
    assert payload["beacon_id"] == "b1"
    assert "extra" not in payload
    assert "request_id" not in payload


def test_unknown_extras_are_grouped():
    payload = json.loads(JsonLogFormatter().format(_record("Queued", device_id="dev1", led=True)))

    assert payload["device_id"] == "dev1"
    assert payload["extra"] == {"led": True}


def test_parse_header_pairs():
    assert _parse_header_pairs("a=1, b = two,broken") == {"a": "1", "b": "two"}
    assert _parse_header_pairs(None) == {}
