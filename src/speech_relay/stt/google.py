"""
Google Cloud Speech-to-Text v2 (bidi streaming + unary recognize).

Что делает:
- держит один SpeechAsyncClient на процесс (создаётся на старте приложения)
- streaming: запросы уходят из asyncio.Queue, первый запрос = recognizer + streaming_config
- recognize: один unary вызов с телом целиком
- ошибки google.api_core маппятся в BackendOpenError / BackendSendError / BackendReceiveError
"""

from __future__ import annotations

import asyncio
from collections import deque
from collections.abc import AsyncIterator

from google.api_core import exceptions as gexc
from google.api_core.client_options import ClientOptions
from google.cloud.speech_v2 import SpeechAsyncClient
from google.cloud.speech_v2.types import cloud_speech

from speech_relay.common.errors import (
    BackendOpenError,
    BackendReceiveError,
    BackendSendError,
)
from speech_relay.common.logging import get_stream_logger
from speech_relay.domain.models import (
    RecognitionAlternative,
    RecognitionConfig,
    RecognitionResult,
)

from .base import STTBackend, StreamHandle

log = get_stream_logger()

# Сколько аудио-кадров может ждать отправки в gRPC
_REQUEST_QUEUE_SIZE = 16


def _recognition_config(config: RecognitionConfig) -> cloud_speech.RecognitionConfig:
    return cloud_speech.RecognitionConfig(
        auto_decoding_config=cloud_speech.AutoDetectDecodingConfig(),
        language_codes=list(config.language_codes),
        model=config.model,
    )


def _config_request(config: RecognitionConfig) -> cloud_speech.StreamingRecognizeRequest:
    return cloud_speech.StreamingRecognizeRequest(
        recognizer=config.recognizer,
        streaming_config=cloud_speech.StreamingRecognitionConfig(
            config=_recognition_config(config),
            streaming_features=cloud_speech.StreamingRecognitionFeatures(
                interim_results=config.interim_results,
            ),
        ),
    )


def _to_result(raw, *, is_final: bool | None = None) -> RecognitionResult:
    alternatives = tuple(
        RecognitionAlternative(transcript=a.transcript, confidence=a.confidence)
        for a in raw.alternatives
    )
    return RecognitionResult(
        alternatives=alternatives,
        is_final=bool(raw.is_final) if is_final is None else is_final,
        stability=getattr(raw, "stability", None),
        language_code=raw.language_code or None,
    )


def _err_message(e: Exception) -> str:
    msg = getattr(e, "message", None) or str(e)
    return msg[:300]


class GoogleStreamHandle(StreamHandle):
    def __init__(self, client: SpeechAsyncClient, config: RecognitionConfig) -> None:
        self._client = client
        self._config = config
        self._requests: asyncio.Queue[cloud_speech.StreamingRecognizeRequest | None] = (
            asyncio.Queue(maxsize=_REQUEST_QUEUE_SIZE)
        )
        self._call = None
        self._responses: AsyncIterator | None = None
        self._pending: deque[RecognitionResult] = deque()
        self._send_closed = False

    async def _request_iter(self) -> AsyncIterator[cloud_speech.StreamingRecognizeRequest]:
        while True:
            req = await self._requests.get()
            if req is None:
                return
            yield req

    async def start(self) -> None:
        await self._requests.put(_config_request(self._config))
        try:
            self._call = await self._client.streaming_recognize(requests=self._request_iter())
        except gexc.GoogleAPIError as e:
            raise BackendOpenError(_err_message(e)) from e
        self._responses = aiter(self._call)

    async def send(self, audio: bytes) -> None:
        if self._send_closed:
            raise BackendSendError("send after half-close")
        await self._requests.put(cloud_speech.StreamingRecognizeRequest(audio=audio))

    async def close_send(self) -> None:
        if self._send_closed:
            raise BackendSendError("stream already half-closed")
        self._send_closed = True
        await self._requests.put(None)

    async def recv(self) -> RecognitionResult | None:
        if self._responses is None:
            raise BackendReceiveError("stream is not open")
        while not self._pending:
            try:
                response = await anext(self._responses)
            except StopAsyncIteration:
                return None
            except gexc.GoogleAPIError as e:
                raise BackendReceiveError(_err_message(e)) from e
            # в одном ответе может быть несколько результатов
            self._pending.extend(_to_result(r) for r in response.results)
        return self._pending.popleft()

    async def aclose(self) -> None:
        if self._call is not None and not self._call.done():
            self._call.cancel()


class GoogleSpeechBackend(STTBackend):
    def __init__(self, api_endpoint: str | None = None) -> None:
        options = ClientOptions(api_endpoint=api_endpoint) if api_endpoint else None
        self._client = SpeechAsyncClient(client_options=options)

    async def open_stream(self, config: RecognitionConfig) -> GoogleStreamHandle:
        handle = GoogleStreamHandle(self._client, config)
        await handle.start()
        log.info(
            "stt_stream_opened",
            extra={"payload": {"recognizer": config.recognizer, "model": config.model}},
        )
        return handle

    async def recognize(
        self, config: RecognitionConfig, audio: bytes
    ) -> list[RecognitionResult]:
        request = cloud_speech.RecognizeRequest(
            recognizer=config.recognizer,
            config=_recognition_config(config),
            content=audio,
        )
        try:
            response = await self._client.recognize(request=request)
        except gexc.GoogleAPIError as e:
            raise BackendReceiveError(_err_message(e)) from e
        # unary recognize отдаёт только финальные результаты
        return [_to_result(r, is_final=True) for r in response.results]

    async def close(self) -> None:
        transport = getattr(self._client, "transport", None)
        if transport is not None:
            await transport.close()
