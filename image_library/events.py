from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

from PySide6.QtCore import QObject, Signal

from .logger import get_logger

_logger = get_logger("events")


@dataclass(frozen=True)
class ImageModified:
    path: str


@dataclass(frozen=True)
class ImageRenamed:
    old_path: str
    new_path: str


Observer = Callable[[object], None]


class EventHub(QObject):
    """Fan-out of pipeline events to registered observers.

    Registering the same observer twice is a no-op, so each observer sees an
    event at most once. Observer order is not part of the contract.
    """

    event_published = Signal(object)

    def __init__(self, parent: QObject | None = None) -> None:
        super().__init__(parent)
        self._observers: list[Observer] = []
        self.event_published.connect(self._dispatch)

    def subscribe(self, observer: Observer) -> bool:
        if observer in self._observers:
            return False
        self._observers.append(observer)
        return True

    def unsubscribe(self, observer: Observer) -> bool:
        try:
            self._observers.remove(observer)
        except ValueError:
            return False
        return True

    @property
    def observer_count(self) -> int:
        return len(self._observers)

    def publish(self, event: object) -> None:
        _logger.debug("publish %s to %d observers", event, len(self._observers))
        self.event_published.emit(event)

    def _dispatch(self, event: object) -> None:
        for observer in list(self._observers):
            try:
                observer(event)
            except Exception:
                # One failing observer must not keep the others from being notified.
                _logger.exception("observer %r failed for %s", observer, event)
