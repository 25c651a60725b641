"""
Streaming-мост: одна bidi-сессия STT и две конкурентные ноги над ней.

Архитектурно:
- send: кадры (через tee) -> handle.send(), в конце ровно один close_send()
- recv: handle.recv() до EOF, каждый результат сразу уходит в sink
- join: ждём обе ноги; первая ошибка отменяет вторую и поднимается наверх
- сессия закрывается всегда, в том числе при отмене (клиент отключился)
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import AsyncIterable
from dataclasses import asdict, dataclass

from speech_relay.common.errors import (
    AppError,
    BackendOpenError,
    BackendReceiveError,
    BackendSendError,
    ErrCode,
    StreamTimeoutError,
)
from speech_relay.common.logging import get_stream_logger
from speech_relay.common.metrics import record_stream_session
from speech_relay.domain.models import AudioChunk, RecognitionConfig
from speech_relay.stt.base import STTBackend, StreamHandle

from .reducer import ResultSink
from .session import StreamSession

log = get_stream_logger()


@dataclass
class BridgeStats:
    frames_sent: int = 0
    bytes_sent: int = 0
    results_received: int = 0
    finals_received: int = 0
    duration_ms: float = 0.0

    @property
    def partials_received(self) -> int:
        return self.results_received - self.finals_received


class StreamBridge:
    def __init__(
        self,
        backend: STTBackend,
        config: RecognitionConfig,
        *,
        timeout_sec: float | None = None,
    ) -> None:
        self._backend = backend
        self._config = config
        self._timeout_sec = timeout_sec if timeout_sec and timeout_sec > 0 else None
        self.session = StreamSession()
        self.stats = BridgeStats()

    async def run(self, chunks: AsyncIterable[AudioChunk], sink: ResultSink) -> BridgeStats:
        session = self.session
        stats = self.stats
        started = time.perf_counter()
        outcome = "ok"
        handle: StreamHandle | None = None
        try:
            handle = await self._open()
            session.mark_config_sent()
            send_task = asyncio.create_task(
                self._send_leg(handle, chunks), name="stt-send-leg"
            )
            recv_task = asyncio.create_task(self._recv_leg(handle, sink), name="stt-recv-leg")
            await self._join(send_task, recv_task)
        except AppError as e:
            outcome = e.code
            session.fail(e)
            raise
        except asyncio.CancelledError as e:
            outcome = "cancelled"
            session.fail(e)
            raise
        except Exception as e:
            outcome = ErrCode.UNKNOWN
            session.fail(e)
            raise
        finally:
            if handle is not None:
                await handle.aclose()
            stats.duration_ms = round((time.perf_counter() - started) * 1000, 1)
            record_stream_session(
                result=outcome,
                frames_sent=stats.frames_sent,
                bytes_sent=stats.bytes_sent,
                finals=stats.finals_received,
                partials=stats.partials_received,
            )
            payload = {**asdict(stats), "outcome": outcome, "state": session.state.value}
            if outcome == "ok":
                log.info("stream_bridge_done", extra={"payload": payload})
            else:
                log.warning("stream_bridge_failed", extra={"payload": payload})
        return stats

    async def _open(self) -> StreamHandle:
        try:
            return await self._backend.open_stream(self._config)
        except AppError:
            raise
        except Exception as e:
            raise BackendOpenError(str(e)[:300]) from e

    async def _send_leg(self, handle: StreamHandle, chunks: AsyncIterable[AudioChunk]) -> None:
        it = aiter(chunks)
        try:
            async for chunk in it:
                self.session.ensure_can_send()
                try:
                    await handle.send(chunk.data)
                except AppError:
                    raise
                except Exception as e:
                    raise BackendSendError(str(e)[:300], details={"seq": chunk.seq}) from e
                self.stats.frames_sent += 1
                self.stats.bytes_sent += len(chunk)
                self.session.mark_frame_sent()
        finally:
            aclose = getattr(it, "aclose", None)
            if aclose is not None:
                await aclose()

        self.session.mark_half_closed()
        try:
            await handle.close_send()
        except AppError:
            raise
        except Exception as e:
            raise BackendSendError(str(e)[:300]) from e

    async def _recv_leg(self, handle: StreamHandle, sink: ResultSink) -> None:
        while True:
            try:
                result = await handle.recv()
            except AppError:
                raise
            except Exception as e:
                raise BackendReceiveError(str(e)[:300]) from e

            if result is None:
                self.session.mark_recv_exhausted()
                return

            self.stats.results_received += 1
            if result.is_final:
                self.stats.finals_received += 1
            await sink.accept(result)

    async def _join(self, send_task: asyncio.Task, recv_task: asyncio.Task) -> None:
        tasks = (send_task, recv_task)
        try:
            if self._timeout_sec is None:
                done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
            else:
                async with asyncio.timeout(self._timeout_sec):
                    done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_EXCEPTION)
        except TimeoutError as e:
            raise StreamTimeoutError(details={"timeout_sec": self._timeout_sec}) from e
        finally:
            for t in tasks:
                if not t.done():
                    t.cancel()
            await asyncio.gather(*tasks, return_exceptions=True)

        # первая ошибка побеждает; ошибки ноги, отменённой вслед за ней, игнорируем
        for t in tasks:
            if t in done and not t.cancelled() and t.exception() is not None:
                raise t.exception()
