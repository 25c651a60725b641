"""
Базовый интерфейс STT backend.

Назначение:
- единый контракт для всех провайдеров (Google, mock)
- bidi streaming: open -> send* -> close_send -> recv* -> EOF
- unary recognize для batch-режима
"""

from __future__ import annotations

from typing import Protocol

from speech_relay.domain.models import RecognitionConfig, RecognitionResult


class StreamHandle(Protocol):
    async def send(self, audio: bytes) -> None: ...

    async def close_send(self) -> None:
        """Half-close: больше аудио не будет."""
        ...

    async def recv(self) -> RecognitionResult | None:
        """Следующий результат; None = backend закрыл поток (EOF)."""
        ...

    async def aclose(self) -> None: ...


class STTBackend(Protocol):
    async def open_stream(self, config: RecognitionConfig) -> StreamHandle:
        """Открыть сессию; конфигурация уходит первым кадром."""
        ...

    async def recognize(
        self, config: RecognitionConfig, audio: bytes
    ) -> list[RecognitionResult]: ...

    async def close(self) -> None: ...
