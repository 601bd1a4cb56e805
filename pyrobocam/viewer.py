"""Robot camera viewer.

Ties a signaling channel, a negotiation coordinator and a state tracker
together for one viewing session::

    endpoint = SignalingEndpoint("signaling.example.com", "Robot-1234", "key")
    async with CameraViewer(endpoint) as viewer:
        viewer.on_video_frame(my_frame_handler)
        await viewer.wait_for_connection()
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Callable

from aiohttp import ClientSession
from yarl import URL

from .channel import PING_INTERVAL, SignalingChannel
from .coordinator import NegotiationCoordinator
from .enums import ConnectionStatus, NegotiationState
from .event import EVENT_TRACK
from .exceptions import RoboCamException
from .messages import IceServerDescriptor
from .tracker import SessionStateTracker
from .utils import cancel_task, redact_url

_LOGGER = logging.getLogger(__name__)

DEFAULT_SIGNALING_PATH = "/concierge/v1/mandy/{robot_id}/camera/webrtc"


@dataclass(frozen=True)
class SignalingEndpoint:
    """Location of the signaling broker for one robot camera."""

    host: str
    robot_id: str
    auth_key: str = field(repr=False)
    path: str = DEFAULT_SIGNALING_PATH
    scheme: str = "wss"

    @property
    def url(self) -> str:
        """Return the broker url."""
        return str(
            URL.build(
                scheme=self.scheme,
                host=self.host,
                path=self.path.format(robot_id=self.robot_id),
                query={"auth_key": self.auth_key},
            )
        )

    @property
    def redacted_url(self) -> str:
        """Return the broker url without credentials, for logging."""
        return redact_url(self.url)


class CameraViewer:
    """Live view of a robot camera over WebRTC."""

    def __init__(
        self,
        endpoint: SignalingEndpoint | str,
        websession: ClientSession | None = None,
        *,
        receive_audio: bool = False,
        ping_interval: float | None = PING_INTERVAL,
    ) -> None:
        """Initialize the viewer.

        Args:
            endpoint: The signaling endpoint, or a full broker url.
            websession: Optional aiohttp session to reuse.
            receive_audio: Also request the camera's audio track.
            ping_interval: Seconds between signaling keep-alive pings.

        """
        self._endpoint = endpoint
        self._tracker = SessionStateTracker()
        self._coordinator = NegotiationCoordinator(
            SignalingChannel(websession, ping_interval=ping_interval),
            receive_video=True,
            receive_audio=receive_audio,
        )
        self._tracker.attach(self._coordinator)
        self._coordinator.on(EVENT_TRACK, self._on_track)

        self._track_callback: Callable | None = None
        self._video_callback: Callable | None = None
        self._audio_callback: Callable | None = None
        self._track_tasks: list[asyncio.Task[None]] = []

        self._connected = asyncio.Event()
        self._tracker.on_status_change(self._on_status_change)
        self._started = False
        self._stopped = False

    @property
    def url(self) -> str:
        """Return the broker url."""
        if isinstance(self._endpoint, SignalingEndpoint):
            return self._endpoint.url
        return self._endpoint

    @property
    def status(self) -> ConnectionStatus:
        """Return the connection status."""
        return self._tracker.status

    @property
    def negotiation_state(self) -> NegotiationState:
        """Return the negotiation state."""
        return self._coordinator.state

    @property
    def ice_servers(self) -> tuple[IceServerDescriptor, ...] | None:
        """Return the ICE servers supplied by the broker, if received."""
        return self._coordinator.ice_servers

    @property
    def ice_server_count(self) -> int:
        """Return the number of ICE servers configured."""
        return len(self.ice_servers or ())

    # -- Callback registration ---------------------------------------------

    def on_status_change(
        self, callback: Callable[[ConnectionStatus], None]
    ) -> Callable[[], None]:
        """Register a callback for connection status changes."""
        return self._tracker.on_status_change(callback)

    def on_track(self, callback: Callable) -> None:
        """Register a callback for remote media becoming available."""
        self._track_callback = callback

    def on_video_frame(self, callback: Callable) -> None:
        """Register a callback for incoming video frames."""
        self._video_callback = callback

    def on_audio_frame(self, callback: Callable) -> None:
        """Register a callback for incoming audio frames."""
        self._audio_callback = callback

    # -- Lifecycle ---------------------------------------------------------

    async def start(self) -> None:
        """Start the viewing session."""
        if self._stopped:
            raise RoboCamException("Viewer has been stopped")
        if self._started:
            raise RoboCamException("Viewer has already been started")
        self._started = True

        _LOGGER.debug("Starting camera viewer: %s", redact_url(self.url))
        await self._coordinator.start(self.url)

    async def stop(self) -> None:
        """Stop the viewing session and clean up resources."""
        self._stopped = True
        await cancel_task(*self._track_tasks)
        self._track_tasks.clear()
        await self._coordinator.close()

    async def wait_for_connection(self, timeout: float = 30) -> bool:
        """Wait until the media connection is established.

        Args:
            timeout: Maximum seconds to wait.

        Returns:
            True if connected, False if timed out or the session ended.

        """
        connected = asyncio.ensure_future(self._connected.wait())
        closed = asyncio.ensure_future(self._coordinator.wait_closed())
        try:
            done, _ = await asyncio.wait(
                (connected, closed),
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            await cancel_task(connected, closed)
        return connected in done and closed not in done

    async def wait_closed(self) -> None:
        """Wait until the session has ended."""
        await self._coordinator.wait_closed()

    # -- Context manager ---------------------------------------------------

    async def __aenter__(self) -> CameraViewer:
        """Start the viewer on context entry."""
        await self.start()
        return self

    async def __aexit__(self, *exc: Any) -> None:
        """Stop the viewer on context exit."""
        await self.stop()

    # -- Internal ----------------------------------------------------------

    def _on_status_change(self, status: ConnectionStatus) -> None:
        if status is ConnectionStatus.CONNECTED:
            self._connected.set()
        else:
            self._connected.clear()

    def _on_track(self, track: Any) -> None:
        if self._track_callback:
            self._track_callback(track)
        if track.kind == "video" and self._video_callback:
            callback = self._video_callback
        elif track.kind == "audio" and self._audio_callback:
            callback = self._audio_callback
        else:
            return
        self._track_tasks.append(
            asyncio.ensure_future(self._consume_track(track, callback))
        )

    async def _consume_track(self, track: Any, callback: Callable) -> None:
        """Read frames from a media track and deliver via callback."""
        try:
            while not self._stopped:
                frame = await track.recv()
                try:
                    callback(frame)
                except Exception:  # pylint: disable=broad-except
                    _LOGGER.exception("Error in frame callback")
        except asyncio.CancelledError:
            raise
        except Exception:  # pylint: disable=broad-except
            if not self._stopped:
                _LOGGER.debug("Track %s ended", track.kind)
