"""
FastAPI Depends.

Сюда выносим:
- доступ к TranscriptionService, созданному на старте (app.state)
- тело запроса (единственный читатель receive())
"""

from __future__ import annotations

from fastapi import Request

from apps.api_gateway.body import RequestBody
from speech_relay.services.transcription_service import TranscriptionService


def service_dep(request: Request) -> TranscriptionService:
    """
    Сервис живёт на уровне процесса, в обработчик передаётся явно.
    """
    service = getattr(request.app.state, "transcription", None)
    if service is None:
        raise RuntimeError("transcription service is not initialized")
    return service


def body_dep(request: Request) -> RequestBody:
    return RequestBody(request)
