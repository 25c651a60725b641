"""
Состояние одной STT stream-сессии (в рамках одного HTTP-запроса).

Инварианты:
- half-close выполняется ровно один раз
- после half-close кадры не отправляются
- closed только когда завершились обе ноги (send и recv)
"""

from __future__ import annotations

from speech_relay.common.errors import BackendSendError
from speech_relay.common.logging import get_stream_logger
from speech_relay.domain.enums import SessionState
from speech_relay.domain.state_machine import is_terminal, transition

log = get_stream_logger()


class StreamSession:
    def __init__(self) -> None:
        self.state = SessionState.idle
        self.send_closed = False
        self.recv_exhausted = False
        self.error: BaseException | None = None

    def _move(self, target: SessionState) -> None:
        r = transition(self.state, target)
        if not r.ok:
            log.warning(
                "stream_session_transition_rejected",
                extra={"payload": {"state": self.state.value, "reason": r.reason}},
            )
            return
        self.state = r.state

    @property
    def closed(self) -> bool:
        return self.state == SessionState.closed

    def mark_config_sent(self) -> None:
        self._move(SessionState.config_sent)

    def ensure_can_send(self) -> None:
        if self.send_closed:
            raise BackendSendError("send after half-close")

    def mark_frame_sent(self) -> None:
        if self.state == SessionState.config_sent:
            self._move(SessionState.sending)

    def mark_half_closed(self) -> None:
        if self.send_closed:
            raise BackendSendError("stream already half-closed")
        self.send_closed = True
        self._move(SessionState.half_closed)
        if self.recv_exhausted:
            self._move(SessionState.closed)
        else:
            self._move(SessionState.draining)

    def mark_recv_exhausted(self) -> None:
        self.recv_exhausted = True
        if self.send_closed:
            self._move(SessionState.closed)

    def fail(self, error: BaseException) -> None:
        if is_terminal(self.state):
            return
        self.error = error
        self._move(SessionState.error)
