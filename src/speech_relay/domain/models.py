"""
Доменные модели streaming-моста.

- AudioChunk: кадр аудио + его порядковый номер во входном потоке
- RecognitionResult: результат распознавания (альтернативы + is_final)
- RecognitionConfig: фиксированная конфигурация распознавания на процесс
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any


@dataclass(frozen=True)
class AudioChunk:
    seq: int
    data: bytes

    def __len__(self) -> int:
        return len(self.data)


@dataclass(frozen=True)
class RecognitionAlternative:
    transcript: str
    confidence: float | None = None

    def to_payload(self) -> dict[str, Any]:
        return {"transcript": self.transcript, "confidence": self.confidence}


@dataclass(frozen=True)
class RecognitionResult:
    alternatives: tuple[RecognitionAlternative, ...] = ()
    is_final: bool = False
    stability: float | None = None
    language_code: str | None = None

    @property
    def text(self) -> str:
        """Текст первой альтернативы ("" если альтернатив нет)."""
        if not self.alternatives:
            return ""
        return self.alternatives[0].transcript

    @property
    def confidence(self) -> float | None:
        if not self.alternatives:
            return None
        return self.alternatives[0].confidence

    def to_payload(self) -> dict[str, Any]:
        return {
            "alternatives": [a.to_payload() for a in self.alternatives],
            "isFinal": self.is_final,
            "stability": self.stability,
            "languageCode": self.language_code,
        }


@dataclass(frozen=True)
class RecognitionConfig:
    recognizer: str
    language_codes: tuple[str, ...] = ("en-US",)
    model: str = "short"
    auto_decoding: bool = True
    interim_results: bool = True

    @classmethod
    def from_settings(cls, settings) -> RecognitionConfig:
        return cls(
            recognizer=settings.stt_recognizer,
            language_codes=tuple(settings.language_codes()),
            model=settings.stt_model,
            interim_results=bool(settings.stt_interim_results),
        )
