"""
Сервис распознавания: связывает вход, хранилище, мост и свёртку результатов.

Используется в:
- POST /        (batch: unary recognize)
- POST /stream  (aggregate / events через StreamBridge)

Режим чтения (incremental|buffered) параметризует один и тот же путь через мост.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator
from contextlib import aclosing

from speech_relay.common.config import Settings
from speech_relay.common.errors import AppError, BackendReceiveError
from speech_relay.common.logging import get_project_logger
from speech_relay.common.metrics import track_stage_latency
from speech_relay.domain.enums import IngestMode
from speech_relay.domain.models import AudioChunk, RecognitionConfig, RecognitionResult
from speech_relay.storage.audio_store import AudioFileWriter, AudioStore
from speech_relay.streaming.bridge import StreamBridge
from speech_relay.streaming.chunker import buffered, chunk_stream, read_all
from speech_relay.streaming.reducer import FinalResultReducer, LiveRelay
from speech_relay.streaming.tee import DurableTee
from speech_relay.stt.base import STTBackend

log = get_project_logger()

_SERVICE = "api-gateway"


class TranscriptionService:
    def __init__(
        self,
        backend: STTBackend,
        store: AudioStore,
        config: RecognitionConfig,
        *,
        chunk_size: int = 8192,
        ingest_mode: IngestMode = IngestMode.incremental,
        timeout_sec: float | None = None,
    ) -> None:
        if chunk_size <= 0:
            raise ValueError("chunk_size must be > 0")
        self.backend = backend
        self.store = store
        self.config = config
        self.chunk_size = chunk_size
        self.ingest_mode = ingest_mode
        self.timeout_sec = timeout_sec

    @classmethod
    def from_settings(
        cls, settings: Settings, backend: STTBackend, store: AudioStore
    ) -> TranscriptionService:
        return cls(
            backend,
            store,
            RecognitionConfig.from_settings(settings),
            chunk_size=int(settings.stream_chunk_size),
            ingest_mode=IngestMode(settings.stream_ingest_mode),
            timeout_sec=float(settings.stt_stream_timeout_sec) or None,
        )

    # -------------------------------------------------------------------------
    # Batch
    # -------------------------------------------------------------------------
    async def transcribe_batch(self, source: AsyncIterable[bytes]) -> list[RecognitionResult]:
        body = await read_all(source)

        with track_stage_latency(_SERVICE, "save"):
            self.store.save_bytes(body)

        with track_stage_latency(_SERVICE, "recognize"):
            try:
                results = await self.backend.recognize(self.config, body)
            except AppError:
                raise
            except Exception as e:
                raise BackendReceiveError(str(e)[:300]) from e

        log.info(
            "batch_recognized",
            extra={"payload": {"size": len(body), "results": len(results)}},
        )
        return results

    # -------------------------------------------------------------------------
    # Streaming
    # -------------------------------------------------------------------------
    def _chunks(
        self, source: AsyncIterable[bytes], writer: AudioFileWriter
    ) -> AsyncIterator[AudioChunk]:
        if self.ingest_mode == IngestMode.buffered:
            source = buffered(source)
        return DurableTee(writer).pipe(chunk_stream(source, self.chunk_size))

    def _bridge(self) -> StreamBridge:
        return StreamBridge(self.backend, self.config, timeout_sec=self.timeout_sec)

    async def transcribe_aggregate(self, source: AsyncIterable[bytes]) -> RecognitionResult:
        reducer = FinalResultReducer()
        with self.store.create_file() as writer:
            with track_stage_latency(_SERVICE, "stream"):
                await self._bridge().run(self._chunks(source, writer), reducer)
        return reducer.final()

    async def transcribe_live(
        self, source: AsyncIterable[bytes]
    ) -> AsyncIterator[RecognitionResult]:
        relay = LiveRelay()
        with self.store.create_file() as writer:
            run = self._bridge().run(self._chunks(source, writer), relay)
            with track_stage_latency(_SERVICE, "stream"):
                async with aclosing(relay.relay(run)) as results:
                    async for result in results:
                        yield result

    async def open_live(
        self, source: AsyncIterable[bytes]
    ) -> AsyncIterator[RecognitionResult]:
        """
        Запускает live-поток и дожидается первого результата.

        Всё, что падает до первого результата (файл, открытие сессии,
        чтение тела), поднимается отсюда, пока статус ответа ещё не отправлен.
        """
        results = self.transcribe_live(source)
        try:
            first = await anext(results)
        except StopAsyncIteration:
            return _resume(None, results)
        return _resume(first, results)


async def _resume(
    first: RecognitionResult | None, rest: AsyncIterator[RecognitionResult]
) -> AsyncIterator[RecognitionResult]:
    async with aclosing(rest):
        if first is not None:
            yield first
        async for result in rest:
            yield result
