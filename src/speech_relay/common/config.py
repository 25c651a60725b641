"""
Централизованная конфигурация сервиса (ENV / .env).

Важно:
- настройки читаются из .env и переменных окружения
- типизированные значения через pydantic-settings
- любое поле можно передать файлом: <ALIAS>_FILE=/run/secrets/...
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # -------------------------------------------------------------------------
    # Runtime
    # -------------------------------------------------------------------------
    app_env: str = Field(default="dev", alias="APP_ENV")
    service_name: str = Field(default="speech-relay", alias="SERVICE_NAME")
    api_host: str = Field(default="0.0.0.0", alias="API_HOST")
    api_port: int = Field(default=7878, alias="API_PORT")

    # -------------------------------------------------------------------------
    # Storage
    # -------------------------------------------------------------------------
    audio_output_dir: str = Field(default="./recordings", alias="AUDIO_OUTPUT_DIR")

    # -------------------------------------------------------------------------
    # Streaming
    # -------------------------------------------------------------------------
    stream_chunk_size: int = Field(default=8192, alias="STREAM_CHUNK_SIZE")
    stream_ingest_mode: str = Field(
        default="incremental", alias="STREAM_INGEST_MODE"
    )  # incremental|buffered
    # 0 = без дедлайна, время жизни запроса ограничивает сам backend
    stt_stream_timeout_sec: float = Field(default=0.0, alias="STT_STREAM_TIMEOUT_SEC")

    # -------------------------------------------------------------------------
    # STT
    # -------------------------------------------------------------------------
    stt_provider: str = Field(default="google", alias="STT_PROVIDER")  # google|mock
    stt_recognizer: str = Field(
        default="projects/speech-relay/locations/global/recognizers/_",
        alias="STT_RECOGNIZER",
    )
    stt_language_codes: str = Field(default="en-US", alias="STT_LANGUAGE_CODES")  # CSV
    stt_model: str = Field(default="short", alias="STT_MODEL")
    stt_interim_results: bool = Field(default=True, alias="STT_INTERIM_RESULTS")
    stt_api_endpoint: str | None = Field(
        default=None, alias="STT_API_ENDPOINT"
    )  # например eu-speech.googleapis.com

    # -------------------------------------------------------------------------
    # Logging
    # -------------------------------------------------------------------------
    log_level: str = Field(default="INFO", alias="LOG_LEVEL")
    log_format: str = Field(default="json", alias="LOG_FORMAT")  # json|text

    @field_validator("stream_chunk_size")
    @classmethod
    def _chunk_size_positive(cls, v: int) -> int:
        if v <= 0:
            raise ValueError("STREAM_CHUNK_SIZE должен быть > 0")
        return v

    @field_validator("stream_ingest_mode")
    @classmethod
    def _known_ingest_mode(cls, v: str) -> str:
        mode = (v or "").strip().lower()
        if mode not in {"incremental", "buffered"}:
            raise ValueError(f"Неизвестный STREAM_INGEST_MODE={v}")
        return mode

    def language_codes(self) -> list[str]:
        return _parse_csv(self.stt_language_codes) or ["en-US"]

    def model_post_init(self, __context) -> None:
        _apply_file_overrides(self)


_CSV_ENV_FIELDS = {
    "STT_LANGUAGE_CODES",
}


def _parse_csv(raw: str) -> list[str]:
    return [p.strip() for p in (raw or "").split(",") if p.strip()]


def _normalize_file_value(env_key: str, raw: str) -> str:
    value = (raw or "").strip()
    if env_key in _CSV_ENV_FIELDS and "\n" in value and "," not in value:
        parts = [p.strip() for p in value.splitlines() if p.strip()]
        return ",".join(parts)
    return value


def _apply_file_overrides(settings: Settings) -> None:
    alias_to_field = {}
    for name, field in type(settings).model_fields.items():
        alias = field.alias or name
        alias_to_field[str(alias)] = name
        alias_to_field[str(name)] = name

    for key, path in os.environ.items():
        if not key.endswith("_FILE"):
            continue
        base = key[: -len("_FILE")]
        target = alias_to_field.get(base)
        if not target:
            continue
        file_path = (path or "").strip()
        if not file_path:
            continue
        try:
            raw = Path(file_path).read_text(encoding="utf-8")
        except Exception as e:
            logging.getLogger("speech-relay").error(
                "config_file_read_failed",
                extra={"payload": {"env_key": key, "path": file_path, "error": str(e)[:200]}},
            )
            raise RuntimeError(f"Failed to read {key} from {file_path}") from e
        value = _normalize_file_value(base, raw)
        setattr(settings, target, value)


_SETTINGS = Settings()


def get_settings() -> Settings:
    return _SETTINGS
