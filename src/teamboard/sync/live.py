# src/teamboard/sync/live.py

from __future__ import annotations

"""
Subscription plumbing shared by the sync components.

- SubscriptionSlot: owns at most one live store subscription and pairs it 1:1
  with its unsubscribe. Pushes that were already in flight when the slot was
  closed/reopened are dropped (generation check).
- Observable: listener list for component state changes. A failing listener
  is logged and skipped; it never stops delivery to the others.
"""

import logging
from collections.abc import Callable
from typing import Any

from ..core.ports import Unsubscribe

logger = logging.getLogger(__name__)

Subscriber = Callable[[Callable[[Any], None]], Unsubscribe]


class SubscriptionSlot:
    def __init__(self, name: str) -> None:
        self.name = name
        self._unsub: Unsubscribe | None = None
        self._generation = 0

    @property
    def active(self) -> bool:
        return self._unsub is not None

    def open(self, subscribe: Subscriber, on_push: Callable[[Any], None]) -> None:
        """Close the previous subscription (if any) and open a new one."""
        self.close()
        generation = self._generation

        def deliver(payload: Any) -> None:
            if generation != self._generation:
                logger.debug("Dropped stale push on %s (gen %s)", self.name, generation)
                return
            try:
                on_push(payload)
            except Exception:
                logger.exception("Push handler failed on %s", self.name)

        self._unsub = subscribe(deliver)
        logger.debug("Subscribed %s (gen %s)", self.name, generation)

    def close(self) -> None:
        unsub = self._unsub
        if unsub is None:
            return
        self._unsub = None
        self._generation += 1
        try:
            unsub()
        except Exception:
            logger.exception("Unsubscribe failed on %s", self.name)
        logger.debug("Unsubscribed %s", self.name)


class Observable:
    def __init__(self) -> None:
        self._listeners: list[Callable[[Any], None]] = []

    def add_listener(self, callback: Callable[[Any], None]) -> Unsubscribe:
        self._listeners.append(callback)

        def _remove() -> None:
            if callback in self._listeners:
                self._listeners.remove(callback)

        return _remove

    def emit(self, value: Any) -> None:
        for cb in list(self._listeners):
            try:
                cb(value)
            except Exception:
                logger.exception("Listener %r failed", cb)
