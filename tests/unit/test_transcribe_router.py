from __future__ import annotations

import json

import pytest
from fastapi.testclient import TestClient

from apps.api_gateway.main import create_app
from speech_relay.common.config import get_settings
from speech_relay.common.errors import StorageWriteError
from speech_relay.storage.audio_store import AudioStore
from speech_relay.stt.mock import MockSTTBackend, mock_result


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


def _client(backend, store) -> TestClient:
    return TestClient(create_app(backend=backend, store=store))


def _sse_events(body: str) -> list[tuple[str | None, dict]]:
    out = []
    for frame in body.split("\n\n"):
        if not frame.strip():
            continue
        event = None
        data = None
        for line in frame.split("\n"):
            if line.startswith("event: "):
                event = line[len("event: ") :]
            elif line.startswith("data: "):
                data = json.loads(line[len("data: ") :])
        out.append((event, data))
    return out


def test_health(tmp_path, stream_settings) -> None:
    client = _client(MockSTTBackend(), AudioStore(tmp_path))
    resp = client.get("/health")
    assert resp.status_code == 200
    assert resp.json() == {"ok": True}


def test_batch_saves_file_and_returns_results(tmp_path, stream_settings) -> None:
    backend = MockSTTBackend()
    client = _client(backend, AudioStore(tmp_path))

    resp = client.post("/", content=b"\x00\x01" * 500)

    assert resp.status_code == 200
    body = resp.json()
    assert body["text"] == "mock transcript bytes=1000"
    assert body["results"][0]["isFinal"] is True
    assert backend.recognized == [b"\x00\x01" * 500]
    files = list(tmp_path.iterdir())
    assert len(files) == 1
    assert files[0].read_bytes() == b"\x00\x01" * 500


def test_batch_backend_error_is_plain_text(tmp_path, stream_settings) -> None:
    client = _client(MockSTTBackend(fail_open=True), AudioStore(tmp_path))

    resp = client.post("/", content=b"abc")

    assert resp.status_code == 502
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.headers["x-error-code"] == "backend_open_error"
    assert resp.text.startswith("backend_open_error:")


def test_stream_aggregate_returns_last_final(tmp_path, stream_settings) -> None:
    script = [
        mock_result("hel", is_final=False),
        mock_result("hello", is_final=True, confidence=0.8),
        mock_result("hello wor", is_final=False),
        mock_result("hello world", is_final=True, confidence=0.9),
    ]
    client = _client(MockSTTBackend(script), AudioStore(tmp_path))

    resp = client.post("/stream?flavor=aggregate", content=b"a" * 100)

    assert resp.status_code == 200
    assert resp.json() == {"text": "hello world", "confidence": 0.9}


def test_stream_aggregate_without_final_is_422(tmp_path, stream_settings) -> None:
    script = [mock_result("maybe", is_final=False)]
    client = _client(MockSTTBackend(script), AudioStore(tmp_path))

    resp = client.post("/stream?flavor=aggregate", content=b"a" * 100)

    assert resp.status_code == 422
    assert resp.text.startswith("no_final_result:")


def test_stream_events_feed(tmp_path, stream_settings) -> None:
    client = _client(MockSTTBackend(), AudioStore(tmp_path))

    resp = client.post("/stream", content=b"z" * 10000)

    assert resp.status_code == 200
    assert resp.headers["content-type"].startswith("text/event-stream")
    assert resp.headers["cache-control"] == "no-cache"
    assert resp.headers["x-accel-buffering"] == "no"

    events = _sse_events(resp.text)
    # 2 кадра -> 2 partial + 1 final, затем done
    assert [e for e, _ in events] == [None, None, None, "done"]
    assert [d["isFinal"] for _, d in events[:3]] == [False, False, True]
    assert events[2][1]["result"]["alternatives"][0]["transcript"] == (
        "mock transcript frames=2 bytes=10000"
    )


def test_stream_events_error_after_results(tmp_path, stream_settings) -> None:
    script = [mock_result("one", is_final=False), mock_result("two", is_final=False)]
    client = _client(MockSTTBackend(script, fail_recv_after=2), AudioStore(tmp_path))

    resp = client.post("/stream", content=b"a" * 100)

    assert resp.status_code == 200
    events = _sse_events(resp.text)
    assert [e for e, _ in events] == [None, None, "error"]
    assert events[-1][1]["code"] == "backend_receive_error"


def test_stream_storage_failure_aborts(tmp_path, stream_settings) -> None:
    class _BrokenStore(AudioStore):
        def create_file(self, name=None):
            raise StorageWriteError()

    backend = MockSTTBackend()
    client = _client(backend, _BrokenStore(tmp_path))

    resp = client.post("/stream?flavor=aggregate", content=b"a" * 100)

    assert resp.status_code == 500
    assert resp.headers["x-error-code"] == "storage_write_error"
    assert backend.handles == []


def test_stream_unknown_flavor_is_rejected(tmp_path, stream_settings) -> None:
    client = _client(MockSTTBackend(), AudioStore(tmp_path))
    resp = client.post("/stream?flavor=xml", content=b"a")
    assert resp.status_code == 422


def test_buffered_ingest_mode_produces_same_frames(tmp_path, stream_settings) -> None:
    stream_settings.stream_ingest_mode = "buffered"
    stream_settings.stream_chunk_size = 4096
    backend = MockSTTBackend()
    client = _client(backend, AudioStore(tmp_path))

    resp = client.post("/stream?flavor=aggregate", content=b"q" * 9000)

    assert resp.status_code == 200
    assert [len(f) for f in backend.last_handle.frames] == [4096, 4096, 808]


def test_stream_events_open_failure_is_http_status(tmp_path, stream_settings) -> None:
    client = _client(MockSTTBackend(fail_open=True), AudioStore(tmp_path))

    resp = client.post("/stream", content=b"a" * 100)

    assert resp.status_code == 502
    assert resp.headers["content-type"].startswith("text/plain")
    assert resp.headers["x-error-code"] == "backend_open_error"


def test_stream_events_error_before_first_result_is_http_status(
    tmp_path, stream_settings
) -> None:
    client = _client(MockSTTBackend([], fail_recv_after=0), AudioStore(tmp_path))

    resp = client.post("/stream", content=b"a" * 100)

    assert resp.status_code == 502
    assert resp.text.startswith("backend_receive_error:")


def test_stream_events_without_results_is_done_only(tmp_path, stream_settings) -> None:
    client = _client(MockSTTBackend([]), AudioStore(tmp_path))

    resp = client.post("/stream", content=b"a" * 100)

    assert resp.status_code == 200
    assert _sse_events(resp.text) == [("done", {})]
