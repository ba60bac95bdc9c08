"""
Observer events for records and configuration.

Subscribers are plain callables. A failing subscriber is logged and never
interrupts the operation that emitted the event.
"""
from typing import Callable, List

from loguru import logger


class ObserverEvent:
    def __init__(self, name: str):
        self.name = name
        self._subscribers: List[Callable] = []

    def connect(self, callback: Callable) -> Callable:
        """Subscribe; returns the callback so it doubles as a decorator."""
        if callback not in self._subscribers:
            self._subscribers.append(callback)
        return callback

    def disconnect(self, callback: Callable):
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def clear(self):
        self._subscribers.clear()

    def emit(self, *args, **kwargs) -> int:
        """Returns how many subscribers completed."""
        delivered = 0
        for sub in list(self._subscribers):
            try:
                sub(*args, **kwargs)
            except Exception as e:
                logger.error(f"Event '{self.name}' error in subscriber '{sub}': {e}")
                continue
            delivered += 1
        return delivered

    def __len__(self):
        return len(self._subscribers)

    def __repr__(self):
        return f"<ObserverEvent {self.name} subscribers={len(self._subscribers)}>"
