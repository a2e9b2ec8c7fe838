from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class RuntimeState(str, Enum):
    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    PAUSED = "paused"
    ERROR = "error"


@dataclass
class RuntimeStateTracker:
    """App-level run state, plus degradations that do not stop the run."""

    state: RuntimeState = RuntimeState.STOPPED
    last_error: str | None = None
    degraded: str | None = None

    def set_starting(self) -> None:
        self.state = RuntimeState.STARTING
        self.last_error = None
        self.degraded = None

    def set_running(self) -> None:
        if self.state in (RuntimeState.STARTING, RuntimeState.PAUSED):
            self.state = RuntimeState.RUNNING

    def toggle_pause(self) -> RuntimeState:
        if self.state == RuntimeState.RUNNING:
            self.state = RuntimeState.PAUSED
        elif self.state == RuntimeState.PAUSED:
            self.state = RuntimeState.RUNNING
        return self.state

    def set_degraded(self, detail: str) -> None:
        # first reason wins; later ones are usually consequences
        if self.degraded is None:
            self.degraded = detail

    def set_stopped(self) -> None:
        self.state = RuntimeState.STOPPED

    def set_error(self, detail: str) -> None:
        self.state = RuntimeState.ERROR
        self.last_error = detail

    @property
    def is_active(self) -> bool:
        return self.state in (RuntimeState.STARTING, RuntimeState.RUNNING, RuntimeState.PAUSED)

    def summary(self) -> str:
        line = self.state.value.upper()
        if self.degraded:
            line += f" (degraded: {self.degraded})"
        if self.state == RuntimeState.ERROR and self.last_error:
            line += f" - {self.last_error}"
        return line
