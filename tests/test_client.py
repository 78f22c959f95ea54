import asyncio

import httpx
import pytest

from energyrite_live.client.client_utils import make_client_stats, with_reconnect
from energyrite_live.client.sse_client import VehicleStreamClient, parse_sse_block

BODY = (
    ": connected\n\n"
    'event: message\ndata: {"type":"initial","data":[{"id":1}],"timestamp":"t"}\n\n'
    ": heartbeat\n\n"
    'event: message\ndata: {"type":"vehicle_update","id":1,"timestamp":"t"}\n\n'
    'event: error\ndata: {"type":"error","message":"Failed to parse notification"}\n\n'
)


def test_parse_named_block():
    message, comments = parse_sse_block('event: error\ndata: {"type":"error","message":"x"}')
    assert comments == []
    assert message.event == "error"
    assert message.data == {"type": "error", "message": "x"}


def test_parse_comment_block():
    message, comments = parse_sse_block(": heartbeat")
    assert message is None
    assert comments == ["heartbeat"]


def test_parse_unnamed_block_defaults_to_message():
    message, _ = parse_sse_block('data: {"a":1}')
    assert message.event == "message"


def test_legacy_url_when_unscoped():
    client = VehicleStreamClient("c1", "http://server/")
    assert client.url == "http://server/api/energyrite-realtime"
    assert client.params == {"client_id": "c1"}


def test_scoped_url_and_params():
    client = VehicleStreamClient("c1", "http://server", cost_code="COST-1", limit=20)
    assert client.url == "http://server/api/energy-rite/vehicles"
    assert client.params == {"client_id": "c1", "realtime": "true", "costCode": "COST-1", "limit": "20"}


@pytest.mark.asyncio
async def test_connect_counts_events_and_heartbeats():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.params["costCode"] == "COST-1"
        return httpx.Response(200, headers={"content-type": "text/event-stream"}, content=BODY.encode())

    client = VehicleStreamClient("c1", "http://server", cost_code="COST-1", transport=httpx.MockTransport(handler))

    async def on_event(message):
        seen.append(message.data["type"])

    async def on_status(status):
        pass

    client.set_callbacks(on_event, on_status)
    with pytest.raises(ConnectionError):
        await client.connect()
    await client.disconnect()

    assert seen == ["initial", "vehicle_update", "error"]
    assert client.events_received == 3
    assert client.heartbeats == 1
    assert client.stats["errors"] == 1
    assert client.stats["bytes_received"] == len(BODY)


@pytest.mark.asyncio
async def test_with_reconnect_backs_off_and_stops_at_duration():
    stats = make_client_stats()
    attempts = 0

    async def connect():
        nonlocal attempts
        attempts += 1
        if attempts <= 2:
            raise ConnectionError("stream closed by server")
        await asyncio.sleep(10)

    await with_reconnect(connect, stats, duration_s=0.3, base_delay_s=0.01, max_delay_s=0.02)

    assert attempts == 3
    assert stats["reconnect_count"] == 2
