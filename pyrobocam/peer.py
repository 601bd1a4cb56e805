"""Peer session wrapping an aiortc peer connection."""

from __future__ import annotations

import logging
from collections.abc import Iterable
from typing import Any

from aiortc import (
    RTCConfiguration,
    RTCIceCandidate,
    RTCIceServer,
    RTCPeerConnection,
    RTCSessionDescription,
)
from aiortc.sdp import candidate_from_sdp

from .enums import PeerConnectionState
from .event import (
    EVENT_CONNECTION_STATE_CHANGE,
    EVENT_ICE_CANDIDATE,
    EVENT_TRACK,
    Event,
)
from .exceptions import NegotiationException, PeerSessionClosedException
from .messages import CandidateDescriptor, IceServerDescriptor

_LOGGER = logging.getLogger(__name__)

CANDIDATE_PREFIX = "candidate:"


def build_ice_servers(servers: Iterable[IceServerDescriptor]) -> list[RTCIceServer]:
    """Convert ICE server descriptors to RTCIceServer objects."""
    return [
        RTCIceServer(
            urls=list(server.urls),
            username=server.username,
            credential=server.credential,
        )
        for server in servers
    ]


def candidate_from_descriptor(descriptor: CandidateDescriptor) -> RTCIceCandidate:
    """Convert a candidate descriptor to an RTCIceCandidate."""
    sdp = descriptor.candidate
    if sdp.startswith(CANDIDATE_PREFIX):
        sdp = sdp[len(CANDIDATE_PREFIX) :]
    try:
        candidate = candidate_from_sdp(sdp)
    except (AssertionError, IndexError, ValueError) as err:
        raise NegotiationException(
            f"Invalid ICE candidate: {descriptor.candidate[:80]}"
        ) from err
    candidate.sdpMid = descriptor.sdp_mid
    candidate.sdpMLineIndex = descriptor.sdp_mline_index
    return candidate


def candidates_from_sdp(sdp: str) -> list[CandidateDescriptor]:
    """Return the ICE candidates embedded in a session description."""
    sections: list[dict[str, Any]] = []
    for line in sdp.splitlines():
        if line.startswith("m="):
            sections.append({"mid": None, "candidates": []})
        elif not sections:
            continue
        elif line.startswith("a=mid:"):
            sections[-1]["mid"] = line[len("a=mid:") :]
        elif line.startswith("a=" + CANDIDATE_PREFIX):
            sections[-1]["candidates"].append(line[len("a=") :])
    return [
        CandidateDescriptor(
            candidate=candidate, sdp_mid=section["mid"], sdp_mline_index=index
        )
        for index, section in enumerate(sections)
        for candidate in section["candidates"]
    ]


class PeerSession(Event):
    """A single peer connection to the remote camera.

    aiortc gathers all local candidates while the local description is being
    set rather than trickling them.  Once it is set, every candidate found in
    the local description is emitted as an ``ice_candidate`` event, followed
    by `None` to mark the end of gathering.
    """

    def __init__(self, ice_servers: Iterable[IceServerDescriptor] = ()) -> None:
        """Initialize the peer session."""
        super().__init__()
        self._ice_servers = tuple(ice_servers)
        self._closed = False
        self._transceivers_added = False

        self._pc = RTCPeerConnection(
            configuration=RTCConfiguration(
                iceServers=build_ice_servers(self._ice_servers)
            )
        )
        self._pc.on("connectionstatechange", self._on_connection_state_change)
        self._pc.on("icegatheringstatechange", self._on_ice_gathering_state_change)
        self._pc.on("iceconnectionstatechange", self._on_ice_connection_state_change)
        self._pc.on("track", self._on_track)

    @classmethod
    def create(cls, ice_servers: Iterable[IceServerDescriptor] = ()) -> PeerSession:
        """Create a peer session configured with the given ICE servers."""
        servers = tuple(ice_servers)
        _LOGGER.debug("Creating peer session with %d ICE server(s)", len(servers))
        return cls(servers)

    @property
    def ice_servers(self) -> tuple[IceServerDescriptor, ...]:
        """Return the ICE servers the session was configured with."""
        return self._ice_servers

    @property
    def closed(self) -> bool:
        """Return `True` if the session has been closed."""
        return self._closed

    @property
    def connection_state(self) -> PeerConnectionState:
        """Return the transport connection state."""
        return PeerConnectionState(self._pc.connectionState)

    @property
    def local_description(self) -> RTCSessionDescription | None:
        """Return the local description, if set."""
        return self._pc.localDescription

    @property
    def remote_description(self) -> RTCSessionDescription | None:
        """Return the remote description, if set."""
        return self._pc.remoteDescription

    # -- Negotiation -------------------------------------------------------

    async def create_offer(
        self, receive_video: bool = True, receive_audio: bool = False
    ) -> RTCSessionDescription:
        """Create an offer to receive the requested media kinds."""
        self._check_open()
        if not self._transceivers_added:
            if receive_video:
                self._pc.addTransceiver("video", direction="recvonly")
            if receive_audio:
                self._pc.addTransceiver("audio", direction="recvonly")
            self._transceivers_added = True
        return await self._pc.createOffer()

    async def set_local_description(self, description: RTCSessionDescription) -> None:
        """Set the local description and emit the gathered candidates."""
        self._check_open()
        await self._pc.setLocalDescription(description)
        if self._closed or self._pc.localDescription is None:
            return
        for candidate in candidates_from_sdp(self._pc.localDescription.sdp):
            self.emit(EVENT_ICE_CANDIDATE, candidate)
        self.emit(EVENT_ICE_CANDIDATE, None)

    async def set_remote_description(self, description: RTCSessionDescription) -> None:
        """Set the remote description."""
        self._check_open()
        await self._pc.setRemoteDescription(description)

    async def add_remote_candidate(self, descriptor: CandidateDescriptor) -> None:
        """Add a candidate received from the remote peer."""
        self._check_open()
        if self._pc.remoteDescription is None:
            raise NegotiationException(
                "Cannot add a remote candidate before the remote description"
            )
        if not descriptor.candidate:
            _LOGGER.debug("Remote peer finished gathering candidates")
            return
        await self._pc.addIceCandidate(candidate_from_descriptor(descriptor))

    async def close(self) -> None:
        """Close the peer connection and release its resources."""
        if self._closed:
            return
        self._closed = True
        await self._pc.close()
        _LOGGER.debug("Peer session closed")

    # -- Internal ----------------------------------------------------------

    def _check_open(self) -> None:
        if self._closed:
            raise PeerSessionClosedException("Peer session has been closed")

    def _on_connection_state_change(self) -> None:
        state = self._pc.connectionState
        _LOGGER.debug("Connection state: %s", state)
        self.emit(EVENT_CONNECTION_STATE_CHANGE, PeerConnectionState(state))

    def _on_ice_gathering_state_change(self) -> None:
        _LOGGER.debug("ICE gathering state: %s", self._pc.iceGatheringState)

    def _on_ice_connection_state_change(self) -> None:
        _LOGGER.debug("ICE connection state: %s", self._pc.iceConnectionState)

    def _on_track(self, track: Any) -> None:
        _LOGGER.debug("Received %s track: %s", track.kind, track.id)
        self.emit(EVENT_TRACK, track)
