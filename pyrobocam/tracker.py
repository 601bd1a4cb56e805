"""Session state tracking."""

from __future__ import annotations

import logging
from typing import Callable

from .enums import ConnectionStatus, PeerConnectionState
from .event import (
    EVENT_CHANNEL_CLOSE,
    EVENT_CHANNEL_OPEN,
    EVENT_CONNECTION_STATE_CHANGE,
    EVENT_STATUS_CHANGE,
    Event,
)
from .utils import to_enum

_LOGGER = logging.getLogger(__name__)


def derive_status(
    transport_state: PeerConnectionState | None, channel_closed: bool
) -> ConnectionStatus:
    """Return the connection status for a transport state and channel flag."""
    if channel_closed or transport_state is None:
        return ConnectionStatus.DISCONNECTED
    return transport_state.status


class SessionStateTracker(Event):
    """Reduce channel and transport events to a single connection status."""

    def __init__(self) -> None:
        """Initialize the tracker."""
        super().__init__()
        self._transport_state: PeerConnectionState | None = None
        self._channel_closed = False
        self._status = ConnectionStatus.DISCONNECTED

    @property
    def status(self) -> ConnectionStatus:
        """Return the current connection status."""
        return self._status

    @property
    def transport_state(self) -> PeerConnectionState | None:
        """Return the last reported transport state."""
        return self._transport_state

    def attach(self, source: Event) -> Callable[[], None]:
        """Observe channel and transport events emitted by *source*."""
        unsubscribers = [
            source.on(EVENT_CHANNEL_OPEN, self.handle_channel_open),
            source.on(EVENT_CHANNEL_CLOSE, self.handle_channel_close),
            source.on(EVENT_CONNECTION_STATE_CHANGE, self.handle_transport_state),
        ]

        def detach() -> None:
            for unsubscribe in unsubscribers:
                unsubscribe()

        return detach

    def handle_transport_state(self, state: PeerConnectionState | str) -> None:
        """Record a transport connection state change."""
        self._transport_state = to_enum(state, PeerConnectionState)
        self._update()

    def handle_channel_open(self) -> None:
        """Record the signaling channel opening."""
        self._channel_closed = False
        self._update()

    def handle_channel_close(self) -> None:
        """Record the signaling channel closing."""
        self._channel_closed = True
        self._update()

    def reset(self) -> None:
        """Forget all recorded events."""
        self._transport_state = None
        self._channel_closed = False
        self._update()

    def on_status_change(
        self, callback: Callable[[ConnectionStatus], None]
    ) -> Callable[[], None]:
        """Register a callback for status changes."""
        return self.on(EVENT_STATUS_CHANGE, callback)

    def _update(self) -> None:
        status = derive_status(self._transport_state, self._channel_closed)
        if status is self._status:
            return
        _LOGGER.debug("Connection status: %s -> %s", self._status.value, status.value)
        self._status = status
        self.emit(EVENT_STATUS_CHANGE, status)
