"""Negotiation coordinator for a single camera session.

The coordinator owns the signaling channel and the peer session for one
session cycle.  Every channel and peer event is queued and handled by a
single task, one event at a time and in arrival order, so a handler that
awaits a peer operation finishes before the next event is looked at.

Teardown does not go through the queue: it can happen while a handler is
still awaiting a peer operation.  Handlers therefore re-check that the
session is still live after every await before acting on the result.
"""

from __future__ import annotations

import asyncio
import logging
from enum import Enum, auto
from typing import Any, Callable

from aiortc import RTCSessionDescription

from .channel import SignalingChannel
from .enums import NegotiationState, PeerConnectionState
from .event import (
    EVENT_CHANNEL_CLOSE,
    EVENT_CHANNEL_OPEN,
    EVENT_CLOSE,
    EVENT_CONNECTION_STATE_CHANGE,
    EVENT_ERROR,
    EVENT_ICE_CANDIDATE,
    EVENT_MESSAGE,
    EVENT_OPEN,
    EVENT_STATE_CHANGE,
    EVENT_TRACK,
    Event,
)
from .exceptions import NegotiationException, SignalingChannelException
from .messages import (
    CandidateDescriptor,
    IceCandidate,
    IceCandidateReply,
    IceServerDescriptor,
    IceServersError,
    IceServersRequest,
    IceServersResponse,
    SdpAnswer,
    SdpOffer,
    SignalingMessage,
)
from .peer import PeerSession
from .utils import cancel_task

_LOGGER = logging.getLogger(__name__)

PeerSessionFactory = Callable[[tuple[IceServerDescriptor, ...]], PeerSession]


class CoordinatorEvent(Enum):
    """Events processed by the coordinator, in arrival order."""

    CHANNEL_OPENED = auto()
    CHANNEL_CLOSED = auto()
    CHANNEL_ERROR = auto()
    MESSAGE_RECEIVED = auto()
    LOCAL_CANDIDATE = auto()
    CONNECTION_STATE_CHANGED = auto()
    TRACK_RECEIVED = auto()


class NegotiationCoordinator(Event):
    """Drive offer/answer and candidate exchange for one peer session."""

    def __init__(
        self,
        channel: SignalingChannel | None = None,
        *,
        receive_video: bool = True,
        receive_audio: bool = False,
        peer_factory: PeerSessionFactory | None = None,
    ) -> None:
        """Initialize the coordinator.

        Args:
            channel: The signaling channel to own.  A new one is created if
                not supplied.
            receive_video: Request the remote video track.
            receive_audio: Request the remote audio track.
            peer_factory: Creates the peer session from the ICE servers.
                Defaults to `PeerSession.create`.

        """
        super().__init__()
        self._channel = channel if channel is not None else SignalingChannel()
        self._receive_video = receive_video
        self._receive_audio = receive_audio
        self._peer_factory = peer_factory

        self._state = NegotiationState.IDLE
        self._peer: PeerSession | None = None
        self._ice_servers: tuple[IceServerDescriptor, ...] | None = None
        self._offer_created = False
        self._remote_description_attempted = False
        self._pending_candidates: list[CandidateDescriptor] = []

        self._queue: asyncio.Queue[tuple[CoordinatorEvent, Any]] = asyncio.Queue()
        self._task: asyncio.Task[None] | None = None
        self._closed = asyncio.Event()

        self._channel_unsubscribers = [
            self._channel.on(event_name, self._enqueuer(event))
            for event_name, event in (
                (EVENT_OPEN, CoordinatorEvent.CHANNEL_OPENED),
                (EVENT_CLOSE, CoordinatorEvent.CHANNEL_CLOSED),
                (EVENT_ERROR, CoordinatorEvent.CHANNEL_ERROR),
                (EVENT_MESSAGE, CoordinatorEvent.MESSAGE_RECEIVED),
            )
        ]
        self._peer_unsubscribers: list[Callable[[], None]] = []

    @property
    def state(self) -> NegotiationState:
        """Return the negotiation state."""
        return self._state

    @property
    def ice_servers(self) -> tuple[IceServerDescriptor, ...] | None:
        """Return the ICE servers supplied by the broker, if received."""
        return self._ice_servers

    # -- Lifecycle ---------------------------------------------------------

    async def start(self, endpoint: str, **kwargs: Any) -> None:
        """Connect the signaling channel and begin negotiating.

        Raises:
            NegotiationException: The coordinator was already started.
            SignalingChannelException: The channel could not be connected.

        """
        if self._state is not NegotiationState.IDLE or self._task is not None:
            raise NegotiationException("Coordinator has already been started")

        self._task = asyncio.ensure_future(self._run())
        try:
            await self._channel.connect(endpoint, **kwargs)
        except SignalingChannelException:
            await self.close()
            raise

    async def close(self) -> None:
        """Tear down the session, releasing the peer session and channel."""
        await self._terminate()
        if self._task is not asyncio.current_task():
            await cancel_task(self._task)

    async def wait_closed(self) -> None:
        """Wait until the session has been torn down."""
        await self._closed.wait()

    # -- Event loop --------------------------------------------------------

    def _enqueuer(self, event: CoordinatorEvent) -> Callable[..., None]:
        """Return a listener that queues *event* with its payload."""

        def enqueue(payload: Any = None) -> None:
            if not self._state.is_terminal:
                self._queue.put_nowait((event, payload))

        return enqueue

    async def _run(self) -> None:
        """Process queued events until the session terminates."""
        while not self._state.is_terminal:
            event, payload = await self._queue.get()
            try:
                await self._dispatch(event, payload)
            except Exception:  # pylint: disable=broad-except
                _LOGGER.exception("Error handling %s", event.name)

    async def _dispatch(self, event: CoordinatorEvent, payload: Any) -> None:
        if self._state.is_terminal:
            return
        if event is CoordinatorEvent.CHANNEL_OPENED:
            await self._handle_channel_opened()
        elif event is CoordinatorEvent.CHANNEL_CLOSED:
            _LOGGER.debug("Signaling channel closed, tearing down session")
            await self._terminate()
        elif event is CoordinatorEvent.CHANNEL_ERROR:
            _LOGGER.debug("Signaling channel reported an error: %s", payload)
        elif event is CoordinatorEvent.MESSAGE_RECEIVED:
            await self._handle_message(payload)
        elif event is CoordinatorEvent.LOCAL_CANDIDATE:
            await self._handle_local_candidate(payload)
        elif event is CoordinatorEvent.CONNECTION_STATE_CHANGED:
            self._handle_connection_state(payload)
        elif event is CoordinatorEvent.TRACK_RECEIVED:
            self.emit(EVENT_TRACK, payload)

    # -- Handlers ----------------------------------------------------------

    async def _handle_channel_opened(self) -> None:
        self.emit(EVENT_CHANNEL_OPEN)
        if self._state is not NegotiationState.IDLE:
            _LOGGER.warning("Channel opened in %s state", self._state.value)
            return
        _LOGGER.debug("Signaling channel open, requesting ICE servers")
        self._set_state(NegotiationState.AWAITING_ICE_SERVERS)
        await self._channel.send(IceServersRequest())

    async def _handle_message(self, message: SignalingMessage) -> None:
        if isinstance(message, IceServersResponse):
            await self._handle_ice_servers(message)
        elif isinstance(message, IceServersError):
            _LOGGER.warning("ICE servers request failed: %s", message.error)
        elif isinstance(message, SdpAnswer):
            await self._handle_answer(message)
        elif isinstance(message, IceCandidateReply):
            await self._handle_remote_candidate(message.candidate)
        else:
            _LOGGER.debug("Ignoring %s message from broker", message.type)

    async def _handle_ice_servers(self, message: IceServersResponse) -> None:
        if self._state is not NegotiationState.AWAITING_ICE_SERVERS:
            _LOGGER.warning(
                "Ignoring ICE servers received in %s state", self._state.value
            )
            return

        self._ice_servers = message.ice_servers
        try:
            peer = (self._peer_factory or PeerSession.create)(message.ice_servers)
        except Exception as err:  # pylint: disable=broad-except
            _LOGGER.error("Unable to create peer session: %s", err)
            self._set_state(NegotiationState.FAILED)
            return

        self._attach_peer(peer)
        self._set_state(NegotiationState.NEGOTIATING)
        await self._send_offer(peer)

    async def _send_offer(self, peer: PeerSession) -> None:
        if self._offer_created:
            return
        self._offer_created = True

        try:
            offer = await peer.create_offer(
                receive_video=self._receive_video, receive_audio=self._receive_audio
            )
            if not self._is_live(peer):
                return
            await peer.set_local_description(offer)
        except Exception as err:  # pylint: disable=broad-except
            if self._is_live(peer):
                _LOGGER.error("Error creating or sending offer: %s", err)
            return
        if not self._is_live(peer):
            return

        # The local description carries the candidates gathered while it was set
        description = peer.local_description or offer
        _LOGGER.debug("Local description set, sending offer")
        await self._channel.send(
            SdpOffer(sdp=description.sdp, sdp_type=description.type)
        )

    async def _handle_answer(self, message: SdpAnswer) -> None:
        if (peer := self._peer) is None:
            _LOGGER.warning("Peer session not initialized before SDP reply")
            return
        if self._state is not NegotiationState.NEGOTIATING:
            _LOGGER.warning("Ignoring SDP reply in %s state", self._state.value)
            return

        self._remote_description_attempted = True
        try:
            await peer.set_remote_description(
                RTCSessionDescription(sdp=message.sdp, type="answer")
            )
        except Exception as err:  # pylint: disable=broad-except
            if self._is_live(peer):
                _LOGGER.error("Error setting remote description: %s", err)
                self._discard_pending_candidates()
            return
        if not self._is_live(peer):
            return

        _LOGGER.debug("Remote description set")
        if self._state is NegotiationState.NEGOTIATING:
            self._set_state(NegotiationState.ACTIVE)
        await self._flush_pending_candidates(peer)

    async def _handle_remote_candidate(self, descriptor: CandidateDescriptor) -> None:
        if (peer := self._peer) is None:
            _LOGGER.warning(
                "Dropping remote ICE candidate received before the peer session exists"
            )
            return
        if not self._state.has_peer_session:
            _LOGGER.debug(
                "Ignoring remote ICE candidate in %s state", self._state.value
            )
            return
        if not self._remote_description_attempted:
            _LOGGER.debug("Holding remote ICE candidate until the answer is applied")
            self._pending_candidates.append(descriptor)
            return
        await self._add_remote_candidate(peer, descriptor)

    async def _add_remote_candidate(
        self, peer: PeerSession, descriptor: CandidateDescriptor
    ) -> None:
        try:
            await peer.add_remote_candidate(descriptor)
        except Exception as err:  # pylint: disable=broad-except
            if self._is_live(peer):
                _LOGGER.error("Error adding ICE candidate: %s", err)
            return
        _LOGGER.debug("Added ICE candidate from broker: %s", descriptor.candidate[:60])

    async def _flush_pending_candidates(self, peer: PeerSession) -> None:
        pending, self._pending_candidates = self._pending_candidates, []
        for descriptor in pending:
            if not self._is_live(peer):
                return
            await self._add_remote_candidate(peer, descriptor)

    def _discard_pending_candidates(self) -> None:
        if self._pending_candidates:
            _LOGGER.warning(
                "Discarding %d held ICE candidate(s) after failed answer",
                len(self._pending_candidates),
            )
            self._pending_candidates.clear()

    async def _handle_local_candidate(
        self, descriptor: CandidateDescriptor | None
    ) -> None:
        if descriptor is None:
            _LOGGER.debug("Local ICE gathering complete")
            return
        if not self._state.has_peer_session:
            return
        await self._channel.send(IceCandidate(candidate=descriptor))

    def _handle_connection_state(self, state: PeerConnectionState) -> None:
        self.emit(EVENT_CONNECTION_STATE_CHANGE, state)
        if state is PeerConnectionState.FAILED and self._state.has_peer_session:
            _LOGGER.warning("Peer connection failed")
            self._set_state(NegotiationState.FAILED)

    # -- Internal ----------------------------------------------------------

    def _attach_peer(self, peer: PeerSession) -> None:
        self._peer = peer
        self._peer_unsubscribers = [
            peer.on(event_name, self._enqueuer(event))
            for event_name, event in (
                (EVENT_ICE_CANDIDATE, CoordinatorEvent.LOCAL_CANDIDATE),
                (
                    EVENT_CONNECTION_STATE_CHANGE,
                    CoordinatorEvent.CONNECTION_STATE_CHANGED,
                ),
                (EVENT_TRACK, CoordinatorEvent.TRACK_RECEIVED),
            )
        ]

    def _is_live(self, peer: PeerSession) -> bool:
        """Return `True` if *peer* is still the session's peer."""
        return not self._state.is_terminal and self._peer is peer

    def _set_state(self, state: NegotiationState) -> None:
        if state is self._state:
            return
        _LOGGER.debug("Negotiation state: %s -> %s", self._state.value, state.value)
        self._state = state
        self.emit(EVENT_STATE_CHANGE, state)

    async def _terminate(self) -> None:
        """Release the peer session and channel."""
        if self._state.is_terminal:
            return
        self._set_state(NegotiationState.TERMINATED)

        for unsubscribe in self._channel_unsubscribers + self._peer_unsubscribers:
            unsubscribe()
        peer, self._peer = self._peer, None
        self._pending_candidates.clear()

        try:
            if peer is not None:
                try:
                    await peer.close()
                except Exception as err:  # pylint: disable=broad-except
                    _LOGGER.error("Error closing peer session: %s", err)
            try:
                await self._channel.close()
            except Exception as err:  # pylint: disable=broad-except
                _LOGGER.error("Error closing signaling channel: %s", err)
        finally:
            self.emit(EVENT_CHANNEL_CLOSE)
            self._closed.set()
