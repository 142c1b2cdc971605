import json
from datetime import date
from typing import Any, List

import pytest

from seating.models import BookingStatus
from seating.utils import audit_log
from seating.utils.request_id import set_request_id


def test_emit_audit_log_outputs_json(monkeypatch: pytest.MonkeyPatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    set_request_id("req-123")
    try:
        audit_log.emit_audit_log(
            action="booking.status_changed",
            initiator="staff",
            booking_id=1,
            table_ids=[2, 3],
            user_id=4,
            day=date(2030, 3, 15),
            status_from=BookingStatus.CONFIRMED,
            status_to=BookingStatus.NO_SHOW,
            version=2,
        )
    finally:
        set_request_id(None)

    assert len(messages) == 1
    payload = json.loads(messages[0])
    assert payload["action"] == "booking.status_changed"
    assert payload["initiator"] == "staff"
    assert payload["request_id"] == "req-123"
    assert payload["table_ids"] == [2, 3]
    assert payload["date"] == "2030-03-15"
    assert payload["status_from"] == "confirmed"
    assert payload["status_to"] == "no-show"
    assert "party_size" not in payload
    assert "timestamp" in payload


def test_extra_fields_are_merged(monkeypatch: pytest.MonkeyPatch) -> None:
    messages: List[str] = []

    class DummyLogger:
        def info(self, message: str) -> None:
            messages.append(message)

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())
    audit_log.emit_audit_log(
        action="table.deactivated",
        initiator="staff",
        table_ids=[6],
        extra={"rebuilt_dates": ["2030-03-15"]},
    )
    assert json.loads(messages[0])["rebuilt_dates"] == ["2030-03-15"]


def test_emit_audit_log_raises_on_logger_failure(monkeypatch: pytest.MonkeyPatch) -> None:
    class DummyLogger:
        def info(self, _: Any) -> None:
            raise ValueError("fail")

    monkeypatch.setattr(audit_log, "_audit_logger", DummyLogger())

    with pytest.raises(RuntimeError):
        audit_log.emit_audit_log(
            action="booking.created",
            initiator="customer",
            booking_id=1,
            party_size=2,
            status_to=BookingStatus.PENDING,
            version=1,
        )
