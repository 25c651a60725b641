"""
Нарезка входного байтового потока на кадры фиксированного размера.

- кадры ровно chunk_size байт, последний может быть короче
- границы кусков источника не важны (чисто по длине, без разбора формата)
- пустой источник -> ноль кадров
- ошибка чтения источника -> InputReadError после уже готовых кадров
"""

from __future__ import annotations

from collections.abc import AsyncIterable, AsyncIterator, Iterator

from speech_relay.common.errors import AppError, InputReadError
from speech_relay.domain.models import AudioChunk


def _check_size(chunk_size: int) -> None:
    if chunk_size <= 0:
        raise ValueError("chunk_size must be > 0")


def iter_chunks(data: bytes, chunk_size: int) -> Iterator[AudioChunk]:
    _check_size(chunk_size)
    for seq, start in enumerate(range(0, len(data), chunk_size)):
        yield AudioChunk(seq=seq, data=bytes(data[start : start + chunk_size]))


async def chunk_stream(
    source: AsyncIterable[bytes], chunk_size: int
) -> AsyncIterator[AudioChunk]:
    _check_size(chunk_size)
    buf = bytearray()
    seq = 0
    it = aiter(source)
    while True:
        try:
            piece = await anext(it)
        except StopAsyncIteration:
            break
        except AppError:
            raise
        except Exception as e:
            raise InputReadError(details={"error": str(e)[:200], "chunks": seq}) from e

        if not piece:
            continue
        buf.extend(piece)
        while len(buf) >= chunk_size:
            yield AudioChunk(seq=seq, data=bytes(buf[:chunk_size]))
            del buf[:chunk_size]
            seq += 1

    if buf:
        yield AudioChunk(seq=seq, data=bytes(buf))


async def buffered(source: AsyncIterable[bytes]) -> AsyncIterator[bytes]:
    """
    Буферизованный режим: читаем источник целиком и отдаём одним куском.
    """
    body = await read_all(source)
    if body:
        yield body


async def read_all(source: AsyncIterable[bytes]) -> bytes:
    buf = bytearray()
    it = aiter(source)
    while True:
        try:
            piece = await anext(it)
        except StopAsyncIteration:
            break
        except AppError:
            raise
        except Exception as e:
            raise InputReadError(details={"error": str(e)[:200], "read": len(buf)}) from e
        buf.extend(piece)
    return bytes(buf)
