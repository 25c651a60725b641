"""
Утилиты времени.

Назначение:
- таймстамп с миллисекундами для имён аудио-файлов
"""

from __future__ import annotations

from datetime import datetime


def file_timestamp(moment: datetime | None = None) -> str:
    """
    Локальное время в формате YYYYMMDD-HHMMSS.mmm (для имён файлов).
    """
    moment = moment or datetime.now()
    return moment.strftime("%Y%m%d-%H%M%S.") + f"{moment.microsecond // 1000:03d}"
