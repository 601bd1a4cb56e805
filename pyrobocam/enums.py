"""pyrobocam enums."""

from __future__ import annotations

import logging
from enum import Enum
from typing import Any

_LOGGER = logging.getLogger(__name__)


class SignalingMessageType:
    """Known message types exchanged with the signaling broker."""

    # client -> broker
    ICE_SERVERS_REQUEST = "ice_servers_request"
    SDP = "sdp"
    ICE_CANDIDATE = "ice_candidate"

    # broker -> client
    ICE_SERVERS_RESPONSE = "ice_servers_response"
    ICE_SERVERS_ERROR = "ice_servers_error"
    SDP_REPLY = "sdp_reply"
    ICE_CANDIDATE_REPLY = "ice_candidate_reply"


class ConnectionStatus(Enum):
    """User-facing status of a camera session."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    FAILED = "failed"


class NegotiationState(Enum):
    """States of the negotiation coordinator."""

    IDLE = "idle"
    AWAITING_ICE_SERVERS = "awaiting_ice_servers"
    NEGOTIATING = "negotiating"
    ACTIVE = "active"
    FAILED = "failed"
    TERMINATED = "terminated"

    @property
    def is_terminal(self) -> bool:
        """Return `True` if no further transitions are possible."""
        return self is NegotiationState.TERMINATED

    @property
    def has_peer_session(self) -> bool:
        """Return `True` if a peer session is expected to exist in this state."""
        return self in (NegotiationState.NEGOTIATING, NegotiationState.ACTIVE)


class PeerConnectionState(Enum):
    """Transport-level states reported by the peer connection."""

    NEW = "new"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    DISCONNECTED = "disconnected"
    FAILED = "failed"
    CLOSED = "closed"

    # Handle unknown/future transport states
    UNKNOWN = None

    @classmethod
    def _missing_(cls, value: Any) -> PeerConnectionState:
        _LOGGER.error('Unknown peer connection state "%s"', value)
        return cls.UNKNOWN

    @property
    def status(self) -> ConnectionStatus:
        """Return the connection status this transport state maps to."""
        return _STATUS_MAP.get(self, ConnectionStatus.DISCONNECTED)


_STATUS_MAP: dict[PeerConnectionState, ConnectionStatus] = {
    PeerConnectionState.NEW: ConnectionStatus.CONNECTING,
    PeerConnectionState.CONNECTING: ConnectionStatus.CONNECTING,
    PeerConnectionState.CONNECTED: ConnectionStatus.CONNECTED,
    PeerConnectionState.DISCONNECTED: ConnectionStatus.DISCONNECTED,
    PeerConnectionState.CLOSED: ConnectionStatus.DISCONNECTED,
    PeerConnectionState.FAILED: ConnectionStatus.FAILED,
}
