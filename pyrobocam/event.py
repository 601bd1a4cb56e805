"""Event handling class for pyrobocam."""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any

_LOGGER = logging.getLogger(__name__)

EVENT_OPEN = "open"
EVENT_CLOSE = "close"
EVENT_ERROR = "error"
EVENT_MESSAGE = "message"
EVENT_CONNECTION_STATE_CHANGE = "connection_state_change"
EVENT_ICE_CANDIDATE = "ice_candidate"
EVENT_TRACK = "track"
EVENT_CHANNEL_OPEN = "channel_open"
EVENT_CHANNEL_CLOSE = "channel_close"
EVENT_STATE_CHANGE = "state_change"
EVENT_STATUS_CHANGE = "status_change"


@dataclass
class Event:
    """Abstract event class properties and methods."""

    _listeners: dict[str, list[Callable]] = field(default_factory=dict)

    def emit(self, event_name: str, *args: Any, **kwargs: Any) -> None:
        """Run all callbacks for an event."""
        for listener in list(self._listeners.get(event_name, [])):
            try:
                listener(*args, **kwargs)
            except Exception:  # pylint: disable=broad-except
                _LOGGER.exception("Error in %s listener %r", event_name, listener)

    def on(  # pylint: disable=invalid-name
        self, event_name: str, callback: Callable
    ) -> Callable[[], None]:
        """Register an event callback."""
        listeners: list = self._listeners.setdefault(event_name, [])
        listeners.append(callback)

        def unsubscribe() -> None:
            """Unsubscribe listeners."""
            if callback in listeners:
                listeners.remove(callback)

        return unsubscribe
