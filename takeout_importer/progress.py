"""
Progress reporting for long-running imports.

The worker side calls start_stage()/set(); a UI (or the CLI) polls
snapshot() from another thread. Progress is for feedback only and never
affects the import result.
"""
from __future__ import annotations

import threading
from dataclasses import dataclass, field, replace
from typing import Callable, List, Optional


@dataclass(frozen=True)
class ProgressState:
    completed_stages: List[str] = field(default_factory=list)
    current_stage: str = 'Starting...'
    percent: float = 0.0
    lines: List[str] = field(default_factory=list)
    remaining_stages: List[str] = field(default_factory=list)


ProgressListener = Callable[[ProgressState], None]


class Progress:
    """Thread-safe holder of the current progress state."""

    def __init__(self, listener: Optional[ProgressListener] = None) -> None:
        self._lock = threading.Lock()
        self._started = False
        self._state = ProgressState()
        self._listener = listener

    def start_stage(self, name: str, remaining: List[str]) -> None:
        with self._lock:
            completed = list(self._state.completed_stages)
            if self._started:
                completed.append(self._state.current_stage)
            self._started = True
            self._state = ProgressState(
                completed_stages=completed,
                current_stage=name,
                percent=0.0,
                lines=[],
                remaining_stages=list(remaining),
            )
            state = self._state
        self._notify(state)

    def set(self, percent: float, lines: List[str]) -> None:
        with self._lock:
            if not self._started:
                raise RuntimeError('Progress.set() called before start_stage()')
            self._state = replace(self._state, percent=percent, lines=list(lines))
            state = self._state
        self._notify(state)

    def snapshot(self) -> ProgressState:
        with self._lock:
            return self._state

    def _notify(self, state: ProgressState) -> None:
        if self._listener is not None:
            self._listener(state)
