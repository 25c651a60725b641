"""
Рендеринг результатов для клиента.

- aggregate: один JSON {"text": ...}
- batch: {"text": ..., "results": [...]}
- events: text/event-stream, "data: <json>\\n\\n" на каждый результат,
  терминальное событие done или error (после терминального ничего не шлём)
"""

from __future__ import annotations

import json
from collections.abc import AsyncIterable, AsyncIterator, Sequence
from typing import Any

from speech_relay.common.errors import AppError, ErrCode, SerializationError
from speech_relay.common.logging import get_stream_logger
from speech_relay.domain.models import RecognitionResult

log = get_stream_logger()

SSE_HEADERS = {
    "Cache-Control": "no-cache",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}
SSE_MEDIA_TYPE = "text/event-stream"


def _dumps(data: Any) -> str:
    try:
        return json.dumps(data, ensure_ascii=False, allow_nan=False)
    except (TypeError, ValueError) as e:
        raise SerializationError(details={"error": str(e)[:200]}) from e


def aggregate_payload(result: RecognitionResult) -> dict[str, Any]:
    return {"text": result.text, "confidence": result.confidence}


def batch_payload(results: Sequence[RecognitionResult]) -> dict[str, Any]:
    text = " ".join(r.text.strip() for r in results if r.is_final and r.text.strip())
    return {"text": text, "results": [r.to_payload() for r in results]}


def render_json(payload: dict[str, Any]) -> str:
    return _dumps(payload)


def format_sse(data: Any, event: str | None = None) -> str:
    body = _dumps(data)
    prefix = f"event: {event}\n" if event else ""
    return f"{prefix}data: {body}\n\n"


def _error_event(e: Exception) -> str:
    if isinstance(e, AppError):
        payload = {"code": e.code, "message": e.message}
    else:
        payload = {"code": ErrCode.UNKNOWN, "message": "internal server error"}
    return format_sse(payload, event="error")


async def render_event_stream(
    results: AsyncIterable[RecognitionResult],
) -> AsyncIterator[str]:
    emitted = 0
    it = aiter(results)
    try:
        try:
            async for result in it:
                frame = format_sse({"result": result.to_payload(), "isFinal": result.is_final})
                yield frame
                emitted += 1
        except Exception as e:
            log.error(
                "sse_stream_failed",
                extra={"payload": {"emitted": emitted, "error": str(e)[:200]}},
                exc_info=not isinstance(e, AppError),
            )
            yield _error_event(e)
            return

        log.info("sse_stream_done", extra={"payload": {"emitted": emitted}})
        yield format_sse({}, event="done")
    finally:
        # клиент отключился -> закрываем источник сразу, а не при сборке мусора
        aclose = getattr(it, "aclose", None)
        if aclose is not None:
            await aclose()
