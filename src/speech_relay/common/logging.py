"""
Логи speech-relay: одна строка на событие, в stdout.

- msg: имя события (audio_saved, stream_bridge_done, sse_stream_failed,
  client_disconnected, request_failed, ...)
- payload: детали события через extra={"payload": {...}} (кадры, байты, путь файла, код ошибки)
- speech-relay.stream: отдельный логгер моста и SSE, его удобно фильтровать по сессиям
- LOG_FORMAT=text: читаемый формат для локальной отладки
"""

from __future__ import annotations

import json
import logging
import sys
from datetime import UTC, datetime
from typing import Any

from speech_relay.common.config import get_settings


class JsonFormatter(logging.Formatter):
    def __init__(self, service: str | None = None) -> None:
        super().__init__()
        self.service = service

    def format(self, record: logging.LogRecord) -> str:
        payload: dict[str, Any] = {
            "ts": datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z"),
            "level": record.levelname,
            "logger": record.name,
            "msg": record.getMessage(),
        }
        if self.service:
            payload["service"] = self.service
        extra_payload = getattr(record, "payload", None)
        if isinstance(extra_payload, dict):
            payload["payload"] = extra_payload
        if record.exc_info:
            payload["exc_info"] = self.formatException(record.exc_info)
        return json.dumps(payload, ensure_ascii=False, default=str)


def _build_formatter() -> logging.Formatter:
    s = get_settings()
    if (s.log_format or "").lower() == "text":
        return logging.Formatter(
            fmt="%(asctime)s %(levelname)s %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
    return JsonFormatter(service=s.service_name)


def setup_logging() -> None:
    s = get_settings()
    root = logging.getLogger()
    level = getattr(logging, (s.log_level or "INFO").upper(), logging.INFO)
    root.setLevel(level)

    # Не плодим хэндлеры при повторном вызове
    if root.handlers:
        return

    handler = logging.StreamHandler(sys.stdout)
    handler.setLevel(level)
    handler.setFormatter(_build_formatter())
    root.addHandler(handler)

    logging.getLogger("uvicorn.error").setLevel(level)
    logging.getLogger("uvicorn.access").setLevel(level)


def get_project_logger(name: str = "speech-relay") -> logging.Logger:
    return logging.getLogger(name)


def get_stream_logger() -> logging.Logger:
    """
    Отдельный логгер для streaming-моста (удобно фильтровать по кадрам/сессиям).
    """
    return logging.getLogger("speech-relay.stream")
