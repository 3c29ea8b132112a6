"""Change notification for UI layers."""

from __future__ import annotations

import contextlib
import logging
from collections.abc import Callable

_logger = logging.getLogger(__name__)

Listener = Callable[[], None]


class ListenerRegistry:
    """Argument-less listeners invoked after any data change.

    Listeners run synchronously in registration order. A listener that
    raises is logged and skipped; the others still run.
    """

    def __init__(self) -> None:
        self._listeners: list[Listener] = []

    def __len__(self) -> int:
        return len(self._listeners)

    def subscribe(self, callback: Listener) -> Callable[[], None]:
        """Register *callback*; return a function that unregisters it."""
        self._listeners.append(callback)

        def _unsubscribe() -> None:
            with contextlib.suppress(ValueError):
                self._listeners.remove(callback)

        return _unsubscribe

    def notify(self) -> None:
        for listener in list(self._listeners):
            try:
                listener()
            except Exception:
                _logger.warning("Change listener %r failed", listener, exc_info=True)
