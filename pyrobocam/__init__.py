"""pyrobocam module."""
__version__ = "2025.1.0"

from .channel import SignalingChannel
from .coordinator import NegotiationCoordinator
from .enums import ConnectionStatus, NegotiationState, PeerConnectionState
from .peer import PeerSession
from .tracker import SessionStateTracker
from .viewer import CameraViewer, SignalingEndpoint

__all__ = [
    "CameraViewer",
    "ConnectionStatus",
    "NegotiationCoordinator",
    "NegotiationState",
    "PeerConnectionState",
    "PeerSession",
    "SessionStateTracker",
    "SignalingChannel",
    "SignalingEndpoint",
]
