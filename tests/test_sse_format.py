from datetime import datetime, timezone
from decimal import Decimal
import json

from energyrite_live.server.stream_session import decode_notification
from energyrite_live.shared.models import ChangeEvent, ErrorEvent, InitialEvent, iso_now
from energyrite_live.shared.sse import CONNECTED, HEARTBEAT, dump_json, format_comment, format_event, format_sse


def test_comment_frames():
    assert CONNECTED == ": connected\n\n"
    assert HEARTBEAT == ": heartbeat\n\n"
    assert format_comment("bye") == ": bye\n\n"


def test_unnamed_and_named_frames():
    assert format_sse({"a": 1}) == 'data: {"a":1}\n\n'
    assert format_sse({"a": 1}, event="error") == 'event: error\ndata: {"a":1}\n\n'


def test_json_is_compact_and_handles_db_types():
    stamp = datetime(2024, 1, 2, 3, 4, 5, tzinfo=timezone.utc)
    text = dump_json({"level": Decimal("12.50"), "updated_at": stamp, "name": "Sandton"})
    assert " " not in text.replace("Sandton", "")
    assert '"updated_at":"2024-01-02T03:04:05Z"' in text
    assert '"level":"12.50"' in text


def test_initial_event_frame():
    event = InitialEvent(data=[{"id": 1}], timestamp="2024-01-01T00:00:00.000Z")
    assert format_event(event) == (
        'event: message\ndata: {"type":"initial","data":[{"id":1}],"timestamp":"2024-01-01T00:00:00.000Z"}\n\n'
    )


def test_change_event_keeps_notification_field_order():
    event = ChangeEvent.model_validate({"plate": "ABC", "id": 9, "type": "vehicle_update", "timestamp": "t"})
    assert format_event(event) == 'event: message\ndata: {"type":"vehicle_update","plate":"ABC","id":9,"timestamp":"t"}\n\n'


def test_error_event_frame():
    assert format_event(ErrorEvent(message="boom")) == 'event: error\ndata: {"type":"error","message":"boom"}\n\n'


def test_iso_now_shape():
    stamp = iso_now()
    assert stamp.endswith("Z")
    assert len(stamp.split(".")[1]) == 4


def test_non_finite_numbers_become_null():
    assert dump_json({"a": float("nan"), "b": float("inf"), "c": float("-inf")}) == '{"a":null,"b":null,"c":null}'


def test_non_finite_notification_values_still_yield_valid_json():
    frame = format_event(decode_notification('{"id": 1e400, "level": NaN}'))
    data = json.loads(frame.split("data: ", 1)[1])
    assert data["id"] is None
    assert data["level"] is None
