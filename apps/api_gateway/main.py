"""
API Gateway (FastAPI).

Функции:
- POST /        batch-распознавание
- POST /stream  streaming-распознавание (SSE или один JSON)
- /health
- /metrics

Архитектурно:
- STT backend (один клиент на процесс) создаётся на старте и кладётся в app.state
- каждый запрос пишет ровно один аудио-файл в AUDIO_OUTPUT_DIR
- ошибки до начала ответа -> HTTP статус + plain-text, после -> SSE error
"""

from __future__ import annotations

from typing import Any

from fastapi import FastAPI, Request
from fastapi.responses import PlainTextResponse

from apps.api_gateway.routers.transcribe import router as transcribe_router
from speech_relay.common.config import get_settings
from speech_relay.common.errors import AppError
from speech_relay.common.logging import get_project_logger, setup_logging
from speech_relay.common.metrics import setup_metrics_endpoint
from speech_relay.services.transcription_service import TranscriptionService
from speech_relay.storage.audio_store import AudioStore
from speech_relay.stt.base import STTBackend
from speech_relay.stt.factory import build_backend

log = get_project_logger()


async def _app_error_handler(request: Request, exc: AppError) -> PlainTextResponse:
    log.warning(
        "request_failed",
        extra={
            "payload": {
                "endpoint": request.url.path,
                "code": exc.code,
                "message": exc.message,
                "details": exc.details,
            }
        },
    )
    return PlainTextResponse(
        f"{exc.code}: {exc.message}",
        status_code=exc.http_status,
        headers={"X-Error-Code": exc.code},
    )


def create_app(
    backend: STTBackend | None = None,
    store: AudioStore | None = None,
) -> FastAPI:
    """
    backend/store можно передать снаружи (тесты); иначе создаются из настроек.
    """
    settings = get_settings()
    app = FastAPI(title="Speech Relay", version="0.1.0")
    owns_backend = backend is None
    store = store or AudioStore(settings.audio_output_dir)

    setup_metrics_endpoint(app, service=settings.service_name)
    app.add_exception_handler(AppError, _app_error_handler)

    def _install(b: STTBackend) -> None:
        store.ensure_dir()
        app.state.transcription = TranscriptionService.from_settings(settings, b, store)

    if backend is not None:
        _install(backend)

    @app.get("/health")
    def health() -> dict[str, Any]:
        return {"ok": True}

    @app.on_event("startup")
    async def startup_backend() -> None:
        if not owns_backend:
            return
        _install(build_backend(settings))
        log.info(
            "api_gateway_ready",
            extra={
                "payload": {
                    "output_dir": str(store.output_dir),
                    "provider": settings.stt_provider,
                    "chunk_size": settings.stream_chunk_size,
                }
            },
        )

    @app.on_event("shutdown")
    async def shutdown_backend() -> None:
        service = getattr(app.state, "transcription", None)
        if owns_backend and service is not None:
            await service.backend.close()

    app.include_router(transcribe_router)

    return app


setup_logging()

app = create_app()
