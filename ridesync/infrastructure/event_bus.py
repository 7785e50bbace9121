"""
Process-local multicast notifier.

Observers are called synchronously, in registration order, with an
immutable snapshot.  An observer that raises is logged and skipped so it
cannot starve the ones registered after it.
"""

from __future__ import annotations

import logging
from typing import Callable, Iterable

from ridesync.domain.entities import RideRecord, Snapshot

logger = logging.getLogger(__name__)

Observer = Callable[[Snapshot], None]


class EventBus:
    def __init__(self) -> None:
        self._observers: list[Observer] = []

    def __len__(self) -> int:
        return len(self._observers)

    def register(self, observer: Observer) -> Callable[[], None]:
        """Append *observer*; the returned disposer drops this registration."""
        self._observers.append(observer)
        disposed = False

        def _dispose() -> None:
            nonlocal disposed
            if disposed:
                return
            disposed = True
            for i, registered in enumerate(self._observers):
                if registered == observer:
                    del self._observers[i]
                    break

        return _dispose

    def unregister(self, observer: Observer) -> None:
        """Remove every registration of *observer*."""
        self._observers = [o for o in self._observers if o != observer]

    def publish(self, records: Iterable[RideRecord]) -> Snapshot:
        snapshot: Snapshot = tuple(records)
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                logger.exception("Observer %r failed on snapshot", observer)
        return snapshot

    def deliver(self, observer: Observer, snapshot: Snapshot) -> None:
        """Send *snapshot* to a single observer (replay on subscribe)."""
        try:
            observer(snapshot)
        except Exception:
            logger.exception("Observer %r failed on replayed snapshot", observer)
