"""Minimal event dispatcher for engine notifications."""
from __future__ import annotations

from collections import defaultdict
from typing import Any, Callable, DefaultDict, List

POSITION_UPDATED = "position-updated"
SETTLED = "settled"
NODE_TOGGLED = "node-toggled"
NODE_HOVERED = "node-hovered"
TRANSITION_FRAME = "transition-frame"

Listener = Callable[..., Any]


class Dispatcher:
    def __init__(self) -> None:
        self._listeners: DefaultDict[str, List[Listener]] = defaultdict(list)

    def on(self, event: str, listener: Listener) -> Callable[[], None]:
        """Subscribe ``listener``; returns an unsubscribe function."""
        self._listeners[event].append(listener)

        def _off() -> None:
            if listener in self._listeners[event]:
                self._listeners[event].remove(listener)

        return _off

    def emit(self, event: str, *args: Any) -> None:
        for listener in list(self._listeners.get(event, ())):
            listener(*args)

    def clear(self) -> None:
        self._listeners.clear()
