"""
Машина состояний STT stream-сессии.

Idle -> ConfigSent -> Sending -> HalfClosed -> Draining -> Closed
Error достижим из любого нетерминального состояния и поглощает.

Назначение:
- единые правила переходов для bridge
- предсказуемое поведение при ошибках (нелегальный переход не применяется)
"""

from __future__ import annotations

from dataclasses import dataclass

from .enums import SessionState


# =============================================================================
# РЕЗУЛЬТАТ ПЕРЕХОДА
# =============================================================================
@dataclass
class TransitionResult:
    ok: bool
    state: SessionState
    reason: str | None = None


# =============================================================================
# РАЗРЕШЁННЫЕ ПЕРЕХОДЫ
# =============================================================================
_TERMINAL = {SessionState.closed, SessionState.error}

_ALLOWED: dict[SessionState, set[SessionState]] = {
    SessionState.idle: {SessionState.config_sent},
    # пустой вход: конфиг отправлен и сразу half-close
    SessionState.config_sent: {SessionState.sending, SessionState.half_closed},
    SessionState.sending: {SessionState.half_closed},
    # приёмник уже исчерпан -> сразу closed
    SessionState.half_closed: {SessionState.draining, SessionState.closed},
    SessionState.draining: {SessionState.closed},
    SessionState.closed: set(),
    SessionState.error: set(),
}


def is_terminal(state: SessionState) -> bool:
    return state in _TERMINAL


def transition(current: SessionState, target: SessionState) -> TransitionResult:
    """
    Правила:
    - из терминального состояния никуда не уходим
    - error доступен из любого нетерминального
    - остальное по таблице _ALLOWED
    """
    if is_terminal(current):
        return TransitionResult(ok=False, state=current, reason="terminal_state")

    if target == SessionState.error:
        return TransitionResult(ok=True, state=SessionState.error)

    if target not in _ALLOWED[current]:
        return TransitionResult(
            ok=False,
            state=current,
            reason=f"illegal_transition:{current.value}->{target.value}",
        )

    return TransitionResult(ok=True, state=target)
