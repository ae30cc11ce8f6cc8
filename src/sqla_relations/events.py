from __future__ import annotations

from collections.abc import Callable
from typing import Any

Callback = Callable[..., Any]


class Events:
    """Minimal synchronous pub-sub mixed into entities and entity sets.

    Notifications are observational only: callbacks receive the arguments
    passed to ``trigger`` and their return values are ignored. Exceptions
    raised by a callback propagate to the operation that triggered it.
    """

    __slots__ = ()

    def _listeners(self) -> dict[str, list[Callback]]:
        try:
            return self.__dict__["_events"]
        except KeyError:
            listeners: dict[str, list[Callback]] = {}
            self.__dict__["_events"] = listeners
            return listeners

    def on(self, event: str, callback: Callback) -> Callback:
        """Register *callback* for *event*; returns the callback for decorator use."""
        self._listeners().setdefault(event, []).append(callback)
        return callback

    def off(self, event: str | None = None, callback: Callback | None = None) -> None:
        """Remove listeners: all of them, all for *event*, or one callback."""
        listeners = self._listeners()
        if event is None:
            listeners.clear()
            return
        if callback is None:
            listeners.pop(event, None)
            return
        if callback in (bucket := listeners.get(event, [])):
            bucket.remove(callback)

    def trigger(self, event: str, *args: Any) -> None:
        for callback in list(self._listeners().get(event, ())):
            callback(*args)
