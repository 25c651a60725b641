"""
Прямой ASGI-вызов, как из uvicorn (spec_version 2.3): тело приходит
несколькими сообщениями http.request, клиент может уйти в любой момент.
"""

from __future__ import annotations

import asyncio
import json
import os

import pytest

from apps.api_gateway.main import create_app
from speech_relay.common.config import get_settings
from speech_relay.storage.audio_store import AudioStore
from speech_relay.stt.mock import MockSTTBackend


@pytest.fixture()
def stream_settings():
    s = get_settings()
    keys = ["stream_chunk_size", "stream_ingest_mode", "stt_stream_timeout_sec"]
    snapshot = {k: getattr(s, k) for k in keys}
    try:
        s.stream_chunk_size = 8192
        s.stream_ingest_mode = "incremental"
        s.stt_stream_timeout_sec = 0.0
        yield s
    finally:
        for k, v in snapshot.items():
            setattr(s, k, v)


def _scope(path: str, query: bytes = b"") -> dict:
    return {
        "type": "http",
        "asgi": {"version": "3.0", "spec_version": "2.3"},
        "http_version": "1.1",
        "method": "POST",
        "scheme": "http",
        "path": path,
        "raw_path": path.encode(),
        "query_string": query,
        "root_path": "",
        "headers": [
            (b"host", b"testserver"),
            (b"content-type", b"application/octet-stream"),
        ],
        "client": ("127.0.0.1", 50000),
        "server": ("testserver", 80),
    }


async def _call(app, path, query, pieces, *, leave_after_body=False):
    """
    receive() как у сервера: куски тела, затем http.disconnect,
    когда ответ дописан (или сразу, если клиент ушёл).
    """
    pieces = list(pieces) or [b""]
    sent: list[dict] = []
    response_done = asyncio.Event()

    async def receive():
        if pieces:
            body = pieces.pop(0)
            return {"type": "http.request", "body": body, "more_body": bool(pieces)}
        if not leave_after_body:
            await response_done.wait()
        return {"type": "http.disconnect"}

    async def send(message):
        sent.append(message)
        if message["type"] == "http.response.body" and not message.get("more_body"):
            response_done.set()

    await asyncio.wait_for(app(_scope(path, query), receive, send), timeout=10)
    return sent


def _status(sent) -> int:
    return next(m["status"] for m in sent if m["type"] == "http.response.start")


def _body(sent) -> bytes:
    return b"".join(m.get("body", b"") for m in sent if m["type"] == "http.response.body")


def _split(data: bytes, n: int) -> list[bytes]:
    step = -(-len(data) // n)
    return [data[i : i + step] for i in range(0, len(data), step)]


def test_events_feed_with_multi_message_body(tmp_path, stream_settings) -> None:
    payload = os.urandom(20000)
    backend = MockSTTBackend()
    app = create_app(backend=backend, store=AudioStore(tmp_path))

    sent = asyncio.run(_call(app, "/stream", b"", _split(payload, 3)))

    assert _status(sent) == 200
    handle = backend.last_handle
    assert [len(f) for f in handle.frames] == [8192, 8192, 3616]
    assert b"".join(handle.frames) == payload
    assert handle.closed is True

    text = _body(sent).decode()
    assert "input_read_error" not in text
    assert text.endswith("event: done\ndata: {}\n\n")
    finals = [
        json.loads(line[len("data: ") :])
        for line in text.split("\n")
        if line.startswith("data: ") and '"isFinal": true' in line
    ]
    assert len(finals) == 1
    assert finals[0]["result"]["alternatives"][0]["transcript"] == (
        "mock transcript frames=3 bytes=20000"
    )

    files = list(tmp_path.iterdir())
    assert len(files) == 1
    assert files[0].read_bytes() == payload


def test_aggregate_with_multi_message_body(tmp_path, stream_settings) -> None:
    payload = b"x" * 10000
    backend = MockSTTBackend()
    app = create_app(backend=backend, store=AudioStore(tmp_path))

    sent = asyncio.run(_call(app, "/stream", b"flavor=aggregate", _split(payload, 4)))

    assert _status(sent) == 200
    assert json.loads(_body(sent)) == {
        "text": "mock transcript frames=2 bytes=10000",
        "confidence": 1.0,
    }


@pytest.mark.parametrize("query", [b"flavor=aggregate", b"flavor=events"])
def test_disconnect_while_draining_tears_session_down(
    tmp_path, stream_settings, query
) -> None:
    backend = MockSTTBackend(stall=True)
    app = create_app(backend=backend, store=AudioStore(tmp_path))

    asyncio.run(_call(app, "/stream", query, [b"a" * 5000, b"b" * 5000], leave_after_body=True))

    handle = backend.last_handle
    assert handle.half_closed is True
    assert handle.closed is True
    assert [len(f) for f in handle.frames] == [8192, 1808]


def test_disconnect_during_batch_recognize_returns(tmp_path, stream_settings) -> None:
    backend = MockSTTBackend(stall=True)
    app = create_app(backend=backend, store=AudioStore(tmp_path))

    sent = asyncio.run(_call(app, "/", b"", [b"a" * 100], leave_after_body=True))

    assert backend.recognized == [b"a" * 100]
    assert _status(sent) == 400
    assert dict(sent[0]["headers"])[b"x-error-code"] == b"client_disconnected"
