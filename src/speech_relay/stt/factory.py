from __future__ import annotations

from speech_relay.common.config import Settings
from speech_relay.common.logging import get_project_logger

from .base import STTBackend

log = get_project_logger()


def build_backend(settings: Settings) -> STTBackend:
    """
    Создаёт STT backend по STT_PROVIDER (один раз на процесс).
    """
    provider = (settings.stt_provider or "").strip().lower()
    log.info("stt_backend_selected", extra={"payload": {"provider": provider}})

    if provider == "mock":
        from .mock import MockSTTBackend

        return MockSTTBackend()
    if provider == "google":
        from .google import GoogleSpeechBackend

        return GoogleSpeechBackend(api_endpoint=settings.stt_api_endpoint)

    raise RuntimeError(f"Unsupported STT_PROVIDER={provider}")
