"""
Tests for the watcher server

Drives the FastAPI app through TestClient with a manual clock and a
forwarder that only logs.
"""

import asyncio
import json
import time
from unittest.mock import AsyncMock, MagicMock

import pytest
from fastapi.testclient import TestClient

from conftest import T0


def slack_ts(minutes: float) -> str:
    return f"{T0.timestamp() + minutes * 60:.6f}"


def message_event(minutes, channel="C1", text=None, thread_ts=None, user="U1"):
    event = {
        "type": "message",
        "channel": channel,
        "user": user,
        "text": text or f"Status update number {minutes} on the launch",
        "ts": slack_ts(minutes),
    }
    if thread_ts:
        event["thread_ts"] = thread_ts
    return {"type": "event_callback", "event": event}


@pytest.fixture
def make_app(clock):
    from threadline.common.config import BufferConfig, ThreadlineConfig
    from threadline.watcher.forwarder import ChunkForwarder
    from threadline.watcher.server import create_app

    def _make(**slack):
        config = ThreadlineConfig(buffer=BufferConfig(evaluation_interval_seconds=0))
        for key, value in slack.items():
            setattr(config.slack, key, value)
        return create_app(config, clock=clock, forwarder=ChunkForwarder())

    return _make


@pytest.fixture
def client(make_app):
    with TestClient(make_app()) as test_client:
        yield test_client


class TestHealth:
    def test_health(self, client):
        response = client.get("/health")

        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["buffered_messages"] == 0
        assert body["forwarding"] is False


class TestSlackEvents:
    def test_url_verification(self, client):
        response = client.post("/slack/events", json={"type": "url_verification", "challenge": "abc"})

        assert response.json() == {"challenge": "abc"}

    def test_messages_are_buffered(self, client):
        client.post("/slack/events", json=message_event(0))
        client.post("/slack/events", json=message_event(1))

        stats = client.get("/stats").json()
        assert stats["total_buffered"] == 2
        channel = stats["channels"][0]
        assert channel["channel_id"] == "C1"
        assert channel["main"] == 2
        assert channel["unevaluated"] == 2
        assert channel["due"] is False

    def test_thread_reply_is_buffered_in_thread(self, client):
        client.post("/slack/events", json=message_event(1, thread_ts=slack_ts(0)))

        channel = client.get("/stats").json()["channels"][0]
        assert channel["main"] == 0
        assert channel["threads"] == 1

    def test_bot_messages_ignored(self, client):
        payload = message_event(0)
        payload["event"]["bot_id"] = "B1"

        assert client.post("/slack/events", json=payload).json() == {"ok": True}
        assert client.get("/stats").json()["total_buffered"] == 0

    def test_invalid_message_is_acknowledged(self, client):
        response = client.post("/slack/events", json=message_event(0, channel=""))

        assert response.status_code == 200
        assert response.json() == {"ok": True, "ignored": "invalid"}
        assert client.get("/stats").json()["channels"] == []

    def test_bad_json(self, client):
        response = client.post(
            "/slack/events", content=b"{nope", headers={"Content-Type": "application/json"}
        )

        assert response.status_code == 400

    def test_unwatched_channel_ignored(self, make_app):
        with TestClient(make_app(watch_channel_ids=["C1"])) as client:
            client.post("/slack/events", json=message_event(0, channel="C9"))
            client.post("/slack/events", json=message_event(0, channel="C1"))

            channels = client.get("/stats").json()["channels"]

        assert [c["channel_id"] for c in channels] == ["C1"]


class TestSignature:
    def test_missing_signature_rejected(self, make_app):
        with TestClient(make_app(signing_secret="shh")) as client:
            response = client.post("/slack/events", json=message_event(0))

        assert response.status_code == 401

    def test_signed_request_accepted(self, make_app):
        app = make_app(signing_secret="shh")
        body = json.dumps(message_event(0)).encode("utf-8")
        timestamp = str(int(time.time()))
        signature = app.state.slack_handler.sign(body, timestamp)

        with TestClient(app) as client:
            response = client.post(
                "/slack/events",
                content=body,
                headers={
                    "Content-Type": "application/json",
                    "X-Slack-Signature": signature,
                    "X-Slack-Request-Timestamp": timestamp,
                },
            )

        assert response.json() == {"ok": True}
        assert app.state.store.total_message_count() == 1


class TestEvaluate:
    def test_nothing_due(self, client):
        client.post("/slack/events", json=message_event(0))

        response = client.post("/evaluate")

        assert response.json() == {"chunk_count": 0, "chunks": []}

    def test_idle_conversation_is_chunked(self, client, clock):
        client.post("/slack/events", json=message_event(0))
        client.post("/slack/events", json=message_event(1))
        client.post("/slack/events", json=message_event(2, user="U2"))

        clock.set(10)
        body = client.post("/evaluate").json()

        assert body["chunk_count"] == 1
        chunk = body["chunks"][0]
        assert chunk["channel_id"] == "C1"
        assert chunk["thread_id"] is None
        assert chunk["message_count"] == 3
        assert client.get("/stats").json()["total_buffered"] == 0

    def test_count_threshold_closes_earlier_conversation(self, client, clock, caplog):
        import logging

        client.post("/slack/events", json=message_event(0))
        client.post("/slack/events", json=message_event(1))

        with caplog.at_level(logging.INFO, logger="threadline.watcher.forwarder"):
            for minutes in range(20, 28):
                clock.set(minutes)
                client.post("/slack/events", json=message_event(minutes))

        assert "Chunk from C1: 2 messages" in caplog.text
        channel = client.get("/stats").json()["channels"][0]
        assert channel["main"] == 8
        assert channel["unevaluated"] == 0


class TestBufferAdmin:
    def test_clear_channel(self, client):
        client.post("/slack/events", json=message_event(0))

        assert client.delete("/buffer/C1").json() == {"status": "cleared", "channel_id": "C1"}
        assert client.delete("/buffer/C1").status_code == 404

    def test_clear_all(self, client):
        client.post("/slack/events", json=message_event(0, channel="C1"))
        client.post("/slack/events", json=message_event(0, channel="C2"))

        assert client.delete("/buffer").json() == {"status": "cleared", "channels": 2}
        assert client.get("/health").json()["channels"] == 0

    def test_apps_do_not_share_buffers(self, make_app):
        with TestClient(make_app()) as first, TestClient(make_app()) as second:
            first.post("/slack/events", json=message_event(0))

            assert first.get("/stats").json()["total_buffered"] == 1
            assert second.get("/stats").json()["total_buffered"] == 0


class TestRunTicks:
    @pytest.mark.asyncio
    async def test_tick_errors_do_not_stop_the_loop(self):
        from threadline.watcher.server import run_ticks

        results = [RuntimeError("boom"), ["chunk"]]

        def tick():
            if not results:
                return []
            result = results.pop(0)
            if isinstance(result, Exception):
                raise result
            return result

        scheduler = MagicMock()
        scheduler.tick.side_effect = tick
        forwarder = AsyncMock()

        task = asyncio.create_task(run_ticks(scheduler, forwarder, 0.001))
        for _ in range(500):
            await asyncio.sleep(0.002)
            if forwarder.forward.await_count:
                break
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task

        forwarder.forward.assert_awaited_once_with(["chunk"])
