import json

import pytest

from leadfinder.core.progress import (
    END_OF_STREAM,
    CancellationToken,
    LoggingObserver,
    ProgressChannel,
    ProgressEvent,
)
from leadfinder.models import LeadRecord


def test_event_serialization():
    record = LeadRecord(company_name="ร้านกาแฟ", email="a@b.co.th", search_phase="basic fallback (1 sources)", search_step=1)
    event = ProgressEvent.result(record)

    line = event.to_sse()

    assert line.startswith("data: ") and line.endswith("\n\n")
    payload = json.loads(line[len("data: "):])
    assert payload == {"type": "result", "data": record.to_dict()}
    assert "ร้านกาแฟ" in line
    assert END_OF_STREAM == "data: [DONE]\n\n"


def test_event_rejects_unknown_type():
    with pytest.raises(ValueError):
        ProgressEvent("progress")


def test_channel_fans_out_and_survives_failing_observer(caplog):
    received = []

    def broken(event):
        raise RuntimeError("observer down")

    channel = ProgressChannel()
    channel.subscribe(broken)
    channel.subscribe(received.append)

    with caplog.at_level("ERROR"):
        channel.emit(ProgressEvent.status("hello"))

    assert [e.message for e in received] == ["hello"]
    assert "observer" in caplog.text


def test_cancellation_token_is_idempotent():
    token = CancellationToken()
    assert token.cancelled is False
    token.cancel()
    token.cancel()
    assert token.cancelled is True


def test_logging_observer(caplog):
    observer = LoggingObserver("sid")
    with caplog.at_level("INFO"):
        observer(ProgressEvent.status("working"))
        observer(ProgressEvent.result(LeadRecord(company_name="Acme")))
        observer(ProgressEvent.error("bad"))

    assert "[sid] status: working" in caplog.text
    assert "company=Acme" in caplog.text
    assert any(r.levelname == "ERROR" and "bad" in r.getMessage() for r in caplog.records)
