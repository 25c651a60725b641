from __future__ import annotations

import asyncio

import pytest

from speech_relay.common.errors import InputReadError
from speech_relay.streaming.chunker import buffered, chunk_stream, iter_chunks, read_all


async def _source(pieces):
    for p in pieces:
        yield p


async def _collect(source, chunk_size):
    return [c async for c in chunk_stream(source, chunk_size)]


def test_chunks_concatenate_back_to_input() -> None:
    data = bytes(range(256)) * 97
    segmentations = [
        [data],
        [data[:1], data[1:5000], data[5000:]],
        [data[i : i + 333] for i in range(0, len(data), 333)],
    ]
    for pieces in segmentations:
        for size in (1, 7, 1024, 8192, len(data) + 1):
            chunks = asyncio.run(_collect(_source(pieces), size))
            assert b"".join(c.data for c in chunks) == data
            assert [c.seq for c in chunks] == list(range(len(chunks)))
            assert all(0 < len(c) <= size for c in chunks)


def test_frames_are_full_size_regardless_of_source_pieces() -> None:
    pieces = [b"a" * 3000, b"b" * 9000, b"c" * 8000]
    chunks = asyncio.run(_collect(_source(pieces), 8192))
    assert [len(c) for c in chunks] == [8192, 8192, 3616]


def test_empty_source_yields_no_chunks() -> None:
    assert asyncio.run(_collect(_source([]), 8192)) == []
    assert asyncio.run(_collect(_source([b"", b""]), 8192)) == []


def test_read_error_after_complete_chunks() -> None:
    async def broken():
        yield b"x" * 10000
        raise OSError("connection reset")

    async def run():
        got = []
        with pytest.raises(InputReadError) as ei:
            async for c in chunk_stream(broken(), 4096):
                got.append(c)
        return got, ei.value

    got, err = asyncio.run(run())
    assert [len(c) for c in got] == [4096, 4096]
    assert isinstance(err.__cause__, OSError)
    assert err.details["chunks"] == 2


def test_iter_chunks_in_memory() -> None:
    chunks = list(iter_chunks(b"0123456789", 4))
    assert [c.data for c in chunks] == [b"0123", b"4567", b"89"]
    assert list(iter_chunks(b"", 4)) == []


def test_invalid_chunk_size() -> None:
    with pytest.raises(ValueError):
        list(iter_chunks(b"abc", 0))
    with pytest.raises(ValueError):
        asyncio.run(_collect(_source([b"abc"]), -1))


def test_buffered_reads_whole_source_first() -> None:
    async def run():
        return [p async for p in buffered(_source([b"ab", b"cd", b"ef"]))]

    assert asyncio.run(run()) == [b"abcdef"]


def test_read_all_wraps_errors() -> None:
    async def broken():
        yield b"abc"
        raise RuntimeError("boom")

    with pytest.raises(InputReadError):
        asyncio.run(read_all(broken()))
