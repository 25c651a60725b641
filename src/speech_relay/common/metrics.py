"""
Метрики Prometheus для сервиса.

Назначение:
- Экспорт /metrics
- HTTP-счётчики и задержки
- счётчики streaming-моста (кадры, байты, результаты, исходы сессий)
"""

from __future__ import annotations

import time
from collections.abc import Iterator
from contextlib import contextmanager

from fastapi import FastAPI, Request
from fastapi.responses import Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest

# =============================================================================
# СЧЁТЧИКИ И МЕТРИКИ
# =============================================================================

REQUESTS_TOTAL = Counter(
    "relay_requests_total",
    "Общее количество HTTP запросов",
    ["service", "route", "method", "status"],
)

HTTP_REQUEST_LATENCY_MS = Histogram(
    "relay_http_request_latency_ms",
    "Задержка HTTP запроса (мс)",
    ["service", "route", "method"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000),
)

# Задержки по стадиям (save, recognize, stream)
PIPELINE_STAGE_LATENCY_MS = Histogram(
    "relay_pipeline_stage_latency_ms",
    "Задержка выполнения стадий обработки (мс)",
    ["service", "stage"],
    buckets=(5, 10, 25, 50, 100, 250, 500, 1000, 2500, 5000, 10000, 30000),
)

STREAM_FRAMES_SENT_TOTAL = Counter(
    "relay_stream_frames_sent_total",
    "Количество аудио-кадров, отправленных в STT stream",
)

STREAM_BYTES_SENT_TOTAL = Counter(
    "relay_stream_bytes_sent_total",
    "Количество байт аудио, отправленных в STT stream",
)

STREAM_RESULTS_TOTAL = Counter(
    "relay_stream_results_total",
    "Количество результатов распознавания из STT stream",
    ["kind"],  # final|partial
)

STREAM_SESSIONS_TOTAL = Counter(
    "relay_stream_sessions_total",
    "Количество STT stream-сессий по исходу",
    ["result"],  # ok|<error code>
)

AUDIO_BYTES_SAVED_TOTAL = Counter(
    "relay_audio_bytes_saved_total",
    "Количество байт аудио, записанных на диск",
)


@contextmanager
def track_stage_latency(service: str, stage: str) -> Iterator[None]:
    started = time.perf_counter()
    try:
        yield
    finally:
        elapsed_ms = (time.perf_counter() - started) * 1000
        PIPELINE_STAGE_LATENCY_MS.labels(service=service, stage=stage).observe(elapsed_ms)


def record_stream_session(
    *,
    result: str,
    frames_sent: int,
    bytes_sent: int,
    finals: int,
    partials: int,
) -> None:
    STREAM_SESSIONS_TOTAL.labels(result=result).inc()
    STREAM_FRAMES_SENT_TOTAL.inc(max(0, frames_sent))
    STREAM_BYTES_SENT_TOTAL.inc(max(0, bytes_sent))
    STREAM_RESULTS_TOTAL.labels(kind="final").inc(max(0, finals))
    STREAM_RESULTS_TOTAL.labels(kind="partial").inc(max(0, partials))


# =============================================================================
# ENDPOINT /metrics
# =============================================================================
def setup_metrics_endpoint(app: FastAPI, service: str = "speech-relay") -> None:
    """
    Регистрирует endpoint /metrics для Prometheus.
    """

    @app.middleware("http")
    async def http_metrics(request: Request, call_next):
        route = request.url.path
        method = request.method
        started = time.perf_counter()

        response = await call_next(request)
        # для SSE это время до отправки заголовков, а не до конца потока
        elapsed_ms = (time.perf_counter() - started) * 1000
        status_code = str(response.status_code)

        REQUESTS_TOTAL.labels(
            service=service,
            route=route,
            method=method,
            status=status_code,
        ).inc()
        HTTP_REQUEST_LATENCY_MS.labels(
            service=service,
            route=route,
            method=method,
        ).observe(elapsed_ms)
        return response

    @app.get("/metrics")
    def metrics() -> Response:
        return Response(generate_latest(), media_type=CONTENT_TYPE_LATEST)
