"""
Локальное хранилище сырого аудио.

Правила:
- один запрос = один файл в AUDIO_OUTPUT_DIR
- имя по таймстампу с миллисекундами: audio-YYYYMMDD-HHMMSS.mmm.wav
- существующие файлы не перезаписываются (добавляем суффикс -1, -2, ...)
"""

from __future__ import annotations

from pathlib import Path
from typing import BinaryIO

from speech_relay.common.errors import StorageWriteError
from speech_relay.common.logging import get_project_logger
from speech_relay.common.metrics import AUDIO_BYTES_SAVED_TOTAL
from speech_relay.common.time import file_timestamp

log = get_project_logger()

_MAX_NAME_ATTEMPTS = 1000


def default_audio_name() -> str:
    return f"audio-{file_timestamp()}.wav"


def _safe_name(name: str) -> str:
    # защита от path traversal
    clean = Path(name).name
    if not clean or clean in {".", ".."}:
        raise ValueError("invalid file name")
    return clean


class AudioFileWriter:
    """Append-only writer одного аудио-файла."""

    def __init__(self, path: Path, fh: BinaryIO) -> None:
        self.path = path
        self._fh = fh
        self.bytes_written = 0
        self.failed = False

    def write(self, data: bytes) -> None:
        try:
            self._fh.write(data)
            # кадр уходит в backend только после того, как попал в файл
            self._fh.flush()
        except (OSError, ValueError) as e:
            # ValueError: запись в уже закрытый файл
            self.failed = True
            log.error(
                "storage_write_failed",
                extra={"payload": {"path": str(self.path), "error": str(e)[:200]}},
            )
            raise StorageWriteError(details={"path": str(self.path)}) from e
        self.bytes_written += len(data)
        AUDIO_BYTES_SAVED_TOTAL.inc(len(data))

    def close(self) -> None:
        if self._fh.closed:
            return
        try:
            self._fh.close()
        except OSError as e:
            log.error(
                "storage_close_failed",
                extra={"payload": {"path": str(self.path), "error": str(e)[:200]}},
            )
            raise StorageWriteError(details={"path": str(self.path)}) from e
        if self.failed:
            return
        log.info(
            "audio_saved",
            extra={"payload": {"path": str(self.path), "size": self.bytes_written}},
        )

    def __enter__(self) -> AudioFileWriter:
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()


class AudioStore:
    def __init__(self, output_dir: str | Path) -> None:
        self.output_dir = Path(output_dir).resolve()

    def ensure_dir(self) -> Path:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        return self.output_dir

    def create_file(self, name: str | None = None) -> AudioFileWriter:
        """
        Создаёт новый файл для записи.
        Два запроса в одну миллисекунду получат разные имена.
        """
        base = _safe_name(name or default_audio_name())
        stem, suffix = _split_name(base)

        for attempt in range(_MAX_NAME_ATTEMPTS):
            candidate = base if attempt == 0 else f"{stem}-{attempt}{suffix}"
            path = self.output_dir / candidate
            try:
                fh = path.open("xb")
            except FileExistsError:
                continue
            except OSError as e:
                log.error(
                    "storage_create_failed",
                    extra={"payload": {"path": str(path), "error": str(e)[:200]}},
                )
                raise StorageWriteError(details={"path": str(path)}) from e
            return AudioFileWriter(path, fh)

        raise StorageWriteError(
            "failed to allocate audio file name", details={"name": base}
        )

    def save_bytes(self, data: bytes, name: str | None = None) -> Path:
        """Сохранить тело целиком одним вызовом (batch-режим)."""
        with self.create_file(name) as writer:
            writer.write(data)
        return writer.path


def _split_name(name: str) -> tuple[str, str]:
    # audio-20260101-120000.123.wav -> ("audio-20260101-120000.123", ".wav")
    p = Path(name)
    return name[: -len(p.suffix)] if p.suffix else name, p.suffix
