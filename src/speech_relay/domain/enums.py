"""
Доменные перечисления (enum).

Используются во всей системе:
- состояние STT stream-сессии
- формат ответа streaming-эндпоинта
- режим чтения входного аудио
"""

from __future__ import annotations

import enum


class SessionState(str, enum.Enum):
    """
    Состояние одной bidi-сессии с STT backend.
    """

    idle = "idle"
    config_sent = "config_sent"
    sending = "sending"
    half_closed = "half_closed"
    draining = "draining"
    closed = "closed"
    error = "error"


class ResponseFlavor(str, enum.Enum):
    """
    Формат ответа /stream.
    """

    events = "events"  # text/event-stream, событие на каждый результат
    aggregate = "aggregate"  # один JSON с последним финальным результатом


class IngestMode(str, enum.Enum):
    """
    Режим чтения тела запроса.
    """

    incremental = "incremental"
    buffered = "buffered"
