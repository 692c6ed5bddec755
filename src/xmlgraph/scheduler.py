"""Frame scheduling abstraction used by the layout engines.

Engines never own a clock. They register per-frame callbacks with a
:class:`Scheduler` and the host (a UI loop, a test, the CLI) decides when a
frame happens. :class:`ManualScheduler` is the headless implementation: each
call to :meth:`ManualScheduler.advance` runs one frame.
"""
from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Callable, Dict, List, Tuple

logger = logging.getLogger(__name__)

FRAME_MS = 1000.0 / 60.0

# A frame callback receives the elapsed time (ms) since it was registered and
# returns False to unregister itself.
FrameCallback = Callable[[float], bool]


@dataclass(frozen=True)
class Handle:
    key: int


class Scheduler(ABC):
    @abstractmethod
    def every_frame(self, callback: FrameCallback) -> Handle:
        ...

    @abstractmethod
    def after(self, delay_ms: float, callback: Callable[[], None]) -> Handle:
        ...

    @abstractmethod
    def cancel(self, handle: Handle) -> None:
        ...

    @abstractmethod
    def now(self) -> float:
        ...


class ManualScheduler(Scheduler):
    """Single-threaded scheduler stepped explicitly by the caller."""

    def __init__(self, frame_ms: float = FRAME_MS) -> None:
        self.frame_ms = frame_ms
        self._clock = 0.0
        self._next_key = 0
        self._frames: Dict[int, Tuple[float, FrameCallback]] = {}
        self._timers: Dict[int, Tuple[float, Callable[[], None]]] = {}

    def now(self) -> float:
        return self._clock

    def every_frame(self, callback: FrameCallback) -> Handle:
        handle = self._reserve()
        self._frames[handle.key] = (self._clock, callback)
        return handle

    def after(self, delay_ms: float, callback: Callable[[], None]) -> Handle:
        handle = self._reserve()
        self._timers[handle.key] = (self._clock + max(delay_ms, 0.0), callback)
        return handle

    def cancel(self, handle: Handle) -> None:
        self._frames.pop(handle.key, None)
        self._timers.pop(handle.key, None)

    @property
    def idle(self) -> bool:
        return not self._frames and not self._timers

    def pending(self, handle: Handle) -> bool:
        return handle.key in self._frames or handle.key in self._timers

    def advance(self, frames: int = 1) -> None:
        for _ in range(frames):
            self._clock += self.frame_ms
            self._run_timers()
            for key, (started, callback) in list(self._frames.items()):
                if key not in self._frames:
                    continue
                if callback(self._clock - started) is False:
                    self._frames.pop(key, None)

    def run_until_idle(self, max_frames: int = 10_000) -> int:
        """Advance until nothing is scheduled; returns the frames consumed."""
        count = 0
        while not self.idle and count < max_frames:
            self.advance()
            count += 1
        if not self.idle:
            logger.debug("scheduler still busy after %d frames", count)
        return count

    def _run_timers(self) -> None:
        due: List[Tuple[float, int]] = sorted(
            (when, key) for key, (when, _) in self._timers.items() if when <= self._clock
        )
        for _, key in due:
            entry = self._timers.pop(key, None)
            if entry is not None:
                entry[1]()

    def _reserve(self) -> Handle:
        handle = Handle(self._next_key)
        self._next_key += 1
        return handle


__all__ = ["FRAME_MS", "FrameCallback", "Handle", "ManualScheduler", "Scheduler"]
