"""
Единые ошибки и коды ошибок.

Назначение:
- предсказуемые коды для HTTP-ответов и SSE error-событий
- единый стиль исключений по проекту
- каждая ошибка знает свой HTTP-статус (до того как ответ отправлен клиенту)
"""

from __future__ import annotations

from dataclasses import dataclass


class ErrCode:
    # Общие
    UNKNOWN = "unknown"

    # Вход / хранилище
    INPUT_READ = "input_read_error"
    CLIENT_DISCONNECTED = "client_disconnected"
    STORAGE_WRITE = "storage_write_error"

    # STT backend
    BACKEND_OPEN = "backend_open_error"
    BACKEND_SEND = "backend_send_error"
    BACKEND_RECEIVE = "backend_receive_error"
    STREAM_TIMEOUT = "stream_timeout"

    # Результат / рендеринг
    NO_FINAL_RESULT = "no_final_result"
    SERIALIZATION = "serialization_error"


@dataclass(eq=False)
class AppError(Exception):
    """
    Базовая ошибка приложения.
    - code: стабильный код ошибки
    - message: безопасное сообщение (уходит клиенту)
    - details: доп. данные для логов
    """

    code: str
    message: str
    details: dict | None = None

    http_status = 500

    def __str__(self) -> str:  # pragma: no cover
        return f"{self.code}: {self.message}"


class InputReadError(AppError):
    http_status = 400

    def __init__(
        self, message: str = "failed to read request body", details: dict | None = None
    ) -> None:
        super().__init__(ErrCode.INPUT_READ, message, details)


class ClientDisconnectedError(AppError):
    # ответ уже никто не прочитает, статус нужен только для логов/метрик
    http_status = 400

    def __init__(
        self, message: str = "client disconnected", details: dict | None = None
    ) -> None:
        super().__init__(ErrCode.CLIENT_DISCONNECTED, message, details)


class StorageWriteError(AppError):
    http_status = 500

    def __init__(
        self, message: str = "failed to save audio file", details: dict | None = None
    ) -> None:
        super().__init__(ErrCode.STORAGE_WRITE, message, details)


class BackendOpenError(AppError):
    http_status = 502

    def __init__(
        self, message: str = "failed to create stream", details: dict | None = None
    ) -> None:
        super().__init__(ErrCode.BACKEND_OPEN, message, details)


class BackendSendError(AppError):
    http_status = 502

    def __init__(
        self, message: str = "failed to send audio", details: dict | None = None
    ) -> None:
        super().__init__(ErrCode.BACKEND_SEND, message, details)


class BackendReceiveError(AppError):
    http_status = 502

    def __init__(
        self, message: str = "failed to receive stream response", details: dict | None = None
    ) -> None:
        super().__init__(ErrCode.BACKEND_RECEIVE, message, details)


class StreamTimeoutError(AppError):
    http_status = 504

    def __init__(
        self, message: str = "recognition deadline exceeded", details: dict | None = None
    ) -> None:
        super().__init__(ErrCode.STREAM_TIMEOUT, message, details)


class NoFinalResultError(AppError):
    http_status = 422

    def __init__(
        self, message: str = "no final recognition result", details: dict | None = None
    ) -> None:
        super().__init__(ErrCode.NO_FINAL_RESULT, message, details)


class SerializationError(AppError):
    http_status = 500

    def __init__(
        self, message: str = "result is not serializable", details: dict | None = None
    ) -> None:
        super().__init__(ErrCode.SERIALIZATION, message, details)
