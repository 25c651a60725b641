"""
Свёртка потока результатов распознавания.

- FinalResultReducer (aggregate): хранит только последний финальный результат
- LiveRelay (events): пробрасывает каждый результат в порядке прихода
"""

from __future__ import annotations

import asyncio
import contextlib
from collections.abc import AsyncIterator, Coroutine
from typing import Any, Protocol

from speech_relay.common.errors import NoFinalResultError
from speech_relay.domain.models import RecognitionResult


class ResultSink(Protocol):
    async def accept(self, result: RecognitionResult) -> None: ...


class FinalResultReducer(ResultSink):
    def __init__(self) -> None:
        self.last_final: RecognitionResult | None = None
        self.partials_seen = 0
        self.finals_seen = 0

    async def accept(self, result: RecognitionResult) -> None:
        # partial никогда не затирает уже сохранённый final
        if result.is_final:
            self.last_final = result
            self.finals_seen += 1
        else:
            self.partials_seen += 1

    def final(self) -> RecognitionResult:
        if self.last_final is None:
            raise NoFinalResultError(details={"partials_seen": self.partials_seen})
        return self.last_final


_DONE = object()

# при полной очереди recv-ветка ждёт SSE-читателя
_LIVE_QUEUE_SIZE = 32


class LiveRelay(ResultSink):
    def __init__(self, maxsize: int = _LIVE_QUEUE_SIZE) -> None:
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=maxsize)

    async def accept(self, result: RecognitionResult) -> None:
        await self._queue.put(result)

    async def relay(self, run: Coroutine[Any, Any, Any]) -> AsyncIterator[RecognitionResult]:
        """
        Запускает мост и отдаёт результаты по мере прихода.
        Ошибка моста поднимается после уже пересланных результатов.
        """

        async def _pump() -> None:
            try:
                await run
            except Exception as e:
                await self._queue.put(e)
                return
            await self._queue.put(_DONE)

        task = asyncio.create_task(_pump(), name="stt-live-relay")
        try:
            while True:
                item = await self._queue.get()
                if item is _DONE:
                    return
                if isinstance(item, Exception):
                    raise item
                yield item
        finally:
            if not task.done():
                task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
