"""
In-process event emitter.

Default `EventSink` for hosts that want to observe engine side effects such as
the `user-activity` notification raised on every user-generated submission.
"""

from __future__ import annotations

from collections import defaultdict
from collections.abc import Callable
from typing import Any

import structlog

logger = structlog.get_logger()

USER_ACTIVITY_EVENT = "user-activity"

Listener = Callable[..., Any]


class EventEmitter:
    """Synchronous fan-out of named events to registered listeners."""

    def __init__(self) -> None:
        self._listeners: dict[str, list[Listener]] = defaultdict(list)

    def on(self, event_name: str, listener: Listener) -> None:
        self._listeners[event_name].append(listener)

    def off(self, event_name: str, listener: Listener) -> None:
        listeners = self._listeners.get(event_name, [])
        if listener in listeners:
            listeners.remove(listener)

    def trigger(self, event_name: str, *args: Any) -> None:
        listeners = list(self._listeners.get(event_name, []))
        logger.debug("Triggering event", event_name=event_name, listener_count=len(listeners))
        for listener in listeners:
            listener(*args)
