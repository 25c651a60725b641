"""
HTTP endpoints распознавания.

- POST /        batch: тело целиком -> файл -> unary recognize -> {"text", "results"}
- POST /stream  streaming: тело читается по мере прихода, tee на диск,
                flavor=events (SSE, по умолчанию) или flavor=aggregate (один JSON)

Отключение клиента отменяет работу с backend в любом режиме.
"""

from __future__ import annotations

from fastapi import APIRouter, Depends, Query, Request
from fastapi.responses import Response

from apps.api_gateway.body import RelayStreamingResponse, RequestBody, until_disconnect
from apps.api_gateway.deps import body_dep, service_dep
from speech_relay.common.logging import get_project_logger
from speech_relay.domain.enums import ResponseFlavor
from speech_relay.services.transcription_service import TranscriptionService
from speech_relay.streaming.emitter import (
    SSE_HEADERS,
    SSE_MEDIA_TYPE,
    aggregate_payload,
    batch_payload,
    render_event_stream,
    render_json,
)

log = get_project_logger()
router = APIRouter()


def _json_response(payload: dict) -> Response:
    # рендерим сами, чтобы ошибка сериализации стала SerializationError
    return Response(content=render_json(payload), media_type="application/json")


@router.post("/")
async def transcribe_batch(
    body: RequestBody = Depends(body_dep),
    service: TranscriptionService = Depends(service_dep),
) -> Response:
    results = await until_disconnect(body, service.transcribe_batch(body.stream()))
    return _json_response(batch_payload(results))


@router.post("/stream")
async def transcribe_stream(
    request: Request,
    flavor: ResponseFlavor = Query(default=ResponseFlavor.events),
    body: RequestBody = Depends(body_dep),
    service: TranscriptionService = Depends(service_dep),
) -> Response:
    log.info(
        "stream_request",
        extra={
            "payload": {
                "flavor": flavor.value,
                "ingest_mode": service.ingest_mode.value,
                "content_length": request.headers.get("content-length"),
            }
        },
    )

    if flavor == ResponseFlavor.aggregate:
        final = await until_disconnect(body, service.transcribe_aggregate(body.stream()))
        return _json_response(aggregate_payload(final))

    # до первого результата ошибки -> HTTP статус, после -> SSE error
    results = await until_disconnect(body, service.open_live(body.stream()))
    return RelayStreamingResponse(
        render_event_stream(results),
        body=body,
        media_type=SSE_MEDIA_TYPE,
        headers=SSE_HEADERS,
    )
