"""
Тело запроса и отключение клиента.

receive() у запроса читает ровно один потребитель:
- пока тело не дочитано, сообщения http.request забирает поток аудио
- после этого тот же receive() ждёт http.disconnect

Поэтому у RelayStreamingResponse нет собственного listen_for_disconnect:
в ASGI < 2.4 он бы параллельно забирал куски тела из receive().
"""

from __future__ import annotations

import asyncio
from collections.abc import AsyncIterator, Awaitable
from typing import Any, TypeVar

from fastapi import Request
from fastapi.responses import StreamingResponse
from starlette.types import Receive, Scope, Send

from speech_relay.common.errors import ClientDisconnectedError
from speech_relay.common.logging import get_project_logger

log = get_project_logger()

T = TypeVar("T")


class RequestBody:
    def __init__(self, request: Request) -> None:
        self._request = request
        self._drained = asyncio.Event()

    @property
    def path(self) -> str:
        return self._request.url.path

    async def stream(self) -> AsyncIterator[bytes]:
        """Тело как async-поток, без буферизации в памяти."""
        try:
            async for piece in self._request.stream():
                yield piece
        finally:
            self._drained.set()

    async def wait_disconnect(self) -> None:
        await self._drained.wait()
        receive = self._request.receive
        while True:
            message = await receive()
            if message["type"] == "http.disconnect":
                return


async def until_disconnect(body: RequestBody, work: Awaitable[T]) -> T:
    """
    Выполняет work, пока клиент на связи.
    Отключение отменяет work (мост, recognize, отдачу SSE) и поднимает
    ClientDisconnectedError.
    """
    work_task = asyncio.ensure_future(work)
    watch_task = asyncio.create_task(body.wait_disconnect(), name="client-disconnect-watch")
    try:
        done, _ = await asyncio.wait(
            {work_task, watch_task}, return_when=asyncio.FIRST_COMPLETED
        )
    finally:
        for task in (work_task, watch_task):
            if not task.done():
                task.cancel()
        await asyncio.gather(work_task, watch_task, return_exceptions=True)

    if work_task in done:
        return work_task.result()

    log.info("client_disconnected", extra={"payload": {"endpoint": body.path}})
    raise ClientDisconnectedError()


class RelayStreamingResponse(StreamingResponse):
    def __init__(self, content: Any, *, body: RequestBody, **kwargs: Any) -> None:
        super().__init__(content, **kwargs)
        self._body = body

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        try:
            await until_disconnect(self._body, self.stream_response(send))
        except (ClientDisconnectedError, OSError):
            # ответ читать некому
            return
        finally:
            aclose = getattr(self.body_iterator, "aclose", None)
            if aclose is not None:
                await aclose()

        if self.background is not None:
            await self.background()
