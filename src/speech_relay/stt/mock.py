from __future__ import annotations

import asyncio
from collections.abc import Sequence

from speech_relay.common.errors import (
    BackendOpenError,
    BackendReceiveError,
    BackendSendError,
)
from speech_relay.domain.models import (
    RecognitionAlternative,
    RecognitionConfig,
    RecognitionResult,
)

from .base import STTBackend, StreamHandle

_EOF = object()


def mock_result(text: str, *, is_final: bool, confidence: float | None = None) -> RecognitionResult:
    return RecognitionResult(
        alternatives=(RecognitionAlternative(transcript=text, confidence=confidence),),
        is_final=is_final,
    )


class MockStreamHandle(StreamHandle):
    """
    Заглушка bidi-сессии.

    echo (script=None): partial на каждый кадр, final на half-close.
    script: отдаёт заданные результаты по порядку, EOF после half-close.
    stall: EOF не приходит никогда (зависший backend).
    """

    def __init__(
        self,
        config: RecognitionConfig,
        *,
        script: Sequence[RecognitionResult] | None,
        fail_send_at: int | None,
        fail_recv_after: int | None,
        stall: bool = False,
    ) -> None:
        self.config = config
        self.frames: list[bytes] = []
        self.half_closed = False
        self.closed = False
        self._echo = script is None
        self._fail_send_at = fail_send_at
        self._fail_recv_after = fail_recv_after
        self._stall = stall
        self._delivered = 0
        self._queue: asyncio.Queue = asyncio.Queue()
        for r in script or ():
            self._queue.put_nowait(r)

    async def send(self, audio: bytes) -> None:
        if self.half_closed:
            raise BackendSendError("send after half-close")
        if self._fail_send_at is not None and len(self.frames) >= self._fail_send_at:
            raise BackendSendError("mock send failure")
        self.frames.append(bytes(audio))
        if self._echo:
            total = sum(len(f) for f in self.frames)
            await self._queue.put(
                mock_result(f"mock partial frames={len(self.frames)} bytes={total}", is_final=False)
            )

    async def close_send(self) -> None:
        if self.half_closed:
            raise BackendSendError("stream already half-closed")
        self.half_closed = True
        if self._echo:
            total = sum(len(f) for f in self.frames)
            await self._queue.put(
                mock_result(
                    f"mock transcript frames={len(self.frames)} bytes={total}",
                    is_final=True,
                    confidence=1.0,
                )
            )
        if not self._stall:
            await self._queue.put(_EOF)

    async def recv(self) -> RecognitionResult | None:
        if self._fail_recv_after is not None and self._delivered >= self._fail_recv_after:
            raise BackendReceiveError("mock receive failure")
        item = await self._queue.get()
        if item is _EOF:
            return None
        self._delivered += 1
        return item

    async def aclose(self) -> None:
        self.closed = True


class MockSTTBackend(STTBackend):
    """Заглушка STT: предсказуемые результаты для локального запуска и тестов."""

    def __init__(
        self,
        script: Sequence[RecognitionResult] | None = None,
        *,
        fail_open: bool = False,
        fail_send_at: int | None = None,
        fail_recv_after: int | None = None,
        stall: bool = False,
    ) -> None:
        self._script = list(script) if script is not None else None
        self._fail_open = fail_open
        self._fail_send_at = fail_send_at
        self._fail_recv_after = fail_recv_after
        self._stall = stall
        self.handles: list[MockStreamHandle] = []
        self.recognized: list[bytes] = []

    @property
    def last_handle(self) -> MockStreamHandle:
        return self.handles[-1]

    async def open_stream(self, config: RecognitionConfig) -> MockStreamHandle:
        if self._fail_open:
            raise BackendOpenError("mock open failure")
        handle = MockStreamHandle(
            config,
            script=self._script,
            fail_send_at=self._fail_send_at,
            fail_recv_after=self._fail_recv_after,
            stall=self._stall,
        )
        self.handles.append(handle)
        return handle

    async def recognize(
        self, config: RecognitionConfig, audio: bytes
    ) -> list[RecognitionResult]:
        if self._fail_open:
            raise BackendOpenError("mock open failure")
        self.recognized.append(bytes(audio))
        if self._stall:
            await asyncio.Event().wait()
        if self._script is not None:
            return [r for r in self._script if r.is_final]
        return [mock_result(f"mock transcript bytes={len(audio)}", is_final=True, confidence=1.0)]

    async def close(self) -> None:
        return None
