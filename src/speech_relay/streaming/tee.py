"""
Durable tee: каждый кадр сначала пишется на диск, потом уходит дальше.

Политика: ошибка записи прерывает весь запрос (StorageWriteError),
кадр, который не удалось записать, в backend не отправляется.
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator

from speech_relay.domain.models import AudioChunk
from speech_relay.storage.audio_store import AudioFileWriter


class DurableTee:
    def __init__(self, writer: AudioFileWriter) -> None:
        self.writer = writer

    async def pipe(self, chunks: AsyncIterable[AudioChunk]) -> AsyncIterator[AudioChunk]:
        async for chunk in chunks:
            self.writer.write(chunk.data)
            yield chunk
