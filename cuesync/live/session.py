from __future__ import annotations

import asyncio
import logging
from enum import Enum
from typing import Any, Callable, Optional

from cuesync.asr.stream_base import TranscriptSource
from cuesync.contracts import TranscriptEvent


class SessionState(str, Enum):
    ACTIVE = "active"
    ENDING = "ending"
    RESTARTING = "restarting"
    STOPPED = "stopped"


class SessionSupervisor:
    """
    Keeps a TranscriptSource running across spontaneous session ends.

    Callbacks from the source are hopped onto the event loop and tagged with
    the session token they were started under; anything from an older token is
    dropped, so a stopped session can never touch a later one.
    """

    def __init__(
        self,
        source: TranscriptSource,
        *,
        on_event: Callable[[TranscriptEvent], Any],
        on_session_end: Callable[[Optional[str]], Any],
        on_unavailable: Callable[[str], Any] | None = None,
        backoff_sec: float = 0.3,
        max_restart_attempts: int = 5,
        logger: logging.Logger | None = None,
    ) -> None:
        if backoff_sec < 0:
            raise ValueError("backoff_sec must be >= 0")
        if max_restart_attempts <= 0:
            raise ValueError("max_restart_attempts must be > 0")
        self.source = source
        self.on_event = on_event
        self.on_session_end = on_session_end
        self.on_unavailable = on_unavailable
        self.backoff_sec = float(backoff_sec)
        self.max_restart_attempts = int(max_restart_attempts)
        self.logger = logger
        self.state = SessionState.STOPPED
        self.sessions_started = 0
        self._token = 0
        self._restart_task: asyncio.Task | None = None
        self._loop: asyncio.AbstractEventLoop | None = None

    def _log(self, level: int, event: str, **fields: Any) -> None:
        if self.logger is not None:
            self.logger.log(level, event, extra=fields)

    def _bind(self, token: int):
        # raises RuntimeError outside a running loop
        loop = self._loop or asyncio.get_running_loop()

        def _event(ev: TranscriptEvent) -> None:
            loop.call_soon_threadsafe(self._deliver_event, token, ev)

        def _end(reason: Optional[str]) -> None:
            loop.call_soon_threadsafe(self._deliver_end, token, reason)

        return _event, _end

    def _try_start(self) -> bool:
        self._token += 1
        on_event, on_end = self._bind(self._token)
        try:
            self.source.start(on_event, on_end)
        except Exception as e:
            self._log(logging.WARNING, "transcript_start_failed", error=str(e))
            return False
        self.sessions_started += 1
        self.state = SessionState.ACTIVE
        self._log(logging.INFO, "transcript_session_started", session=self._token)
        return True

    def start(self) -> None:
        """Open a session now; on failure fall back to the retry loop."""
        if self.state in (SessionState.ACTIVE, SessionState.RESTARTING):
            return
        self._loop = asyncio.get_running_loop()
        if not self._try_start():
            self._schedule_restart()

    def _schedule_restart(self) -> None:
        self.state = SessionState.RESTARTING
        self._restart_task = asyncio.get_running_loop().create_task(self._restart(self._token))

    async def _restart(self, token: int) -> None:
        attempts = 0
        while attempts < self.max_restart_attempts:
            await asyncio.sleep(self.backoff_sec)
            if self.state != SessionState.RESTARTING or token != self._token:
                return
            if self._try_start():
                return
            token = self._token
            attempts += 1
        self.state = SessionState.STOPPED
        self._log(logging.ERROR, "transcript_unavailable", attempts=attempts)
        if self.on_unavailable is not None:
            self.on_unavailable(f"recognizer failed to restart after {attempts} attempts")

    def _deliver_event(self, token: int, ev: TranscriptEvent) -> None:
        if token != self._token or self.state != SessionState.ACTIVE:
            return
        self.on_event(ev)

    def _deliver_end(self, token: int, reason: Optional[str]) -> None:
        if token != self._token or self.state != SessionState.ACTIVE:
            return
        self.state = SessionState.ENDING
        self._log(logging.INFO, "transcript_session_ended", session=token, reason=reason)
        self.on_session_end(reason)
        if self.state == SessionState.ENDING:
            self._schedule_restart()

    def stop(self) -> None:
        self._token += 1
        task, self._restart_task = self._restart_task, None
        if task is not None and not task.done():
            task.cancel()
        if self.state != SessionState.STOPPED:
            try:
                self.source.stop()
            except Exception:
                if self.logger is not None:
                    self.logger.exception("transcript_stop_failed")
        self.state = SessionState.STOPPED
