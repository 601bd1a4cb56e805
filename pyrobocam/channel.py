"""Signaling channel to the negotiation broker."""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Callable

from aiohttp import ClientError, ClientSession, ClientWebSocketResponse, WSMsgType

from .event import EVENT_CLOSE, EVENT_ERROR, EVENT_MESSAGE, EVENT_OPEN, Event
from .exceptions import SignalingChannelException, SignalingMessageException
from .messages import SignalingMessage, parse_message
from .utils import cancel_task, redact, redact_url

_LOGGER = logging.getLogger(__name__)

PING_INTERVAL = 5  # seconds


class SignalingChannel(Event):
    """Duplex JSON message channel to the negotiation broker.

    The channel is single-use: once closed, either explicitly or because the
    broker dropped the connection, a new channel must be created.  Nothing is
    reconnected automatically.
    """

    def __init__(
        self,
        websession: ClientSession | None = None,
        *,
        ping_interval: float | None = PING_INTERVAL,
    ) -> None:
        """Initialize the signaling channel.

        Args:
            websession: Optional aiohttp session to reuse.  A session passed
                in is left open on close.
            ping_interval: Seconds between keep-alive pings, or `None` to
                disable them.

        """
        super().__init__()
        self._websession_provided = websession is not None
        self._websession = websession
        self._ping_interval = ping_interval
        self._ws: ClientWebSocketResponse | None = None
        self._receive_task: asyncio.Task[None] | None = None
        self._ping_task: asyncio.Task[None] | None = None
        self._closed = False

    @property
    def websession(self) -> ClientSession:
        """Get websession."""
        if self._websession is None:
            self._websession = ClientSession()
        return self._websession

    @property
    def is_open(self) -> bool:
        """Return `True` if messages can be sent."""
        return not self._closed and self._ws is not None and not self._ws.closed

    @property
    def closed(self) -> bool:
        """Return `True` if the channel has been closed."""
        return self._closed

    # -- Callback registration ---------------------------------------------

    def on_message(
        self, handler: Callable[[SignalingMessage], None]
    ) -> Callable[[], None]:
        """Register a handler for each received message."""
        return self.on(EVENT_MESSAGE, handler)

    def on_open(self, handler: Callable[[], None]) -> Callable[[], None]:
        """Register a handler for the channel opening.

        The handler runs immediately if the channel is already open.
        """
        unsubscribe = self.on(EVENT_OPEN, handler)
        if self.is_open:
            handler()
        return unsubscribe

    def on_close(self, handler: Callable[[], None]) -> Callable[[], None]:
        """Register a handler for the channel closing.

        The handler runs immediately if the channel is already closed.
        """
        unsubscribe = self.on(EVENT_CLOSE, handler)
        if self._closed:
            handler()
        return unsubscribe

    def on_error(self, handler: Callable[[Exception], None]) -> Callable[[], None]:
        """Register a handler for channel errors."""
        return self.on(EVENT_ERROR, handler)

    # -- Lifecycle ---------------------------------------------------------

    async def connect(self, endpoint: str, **kwargs: Any) -> ClientWebSocketResponse:
        """Open the channel to the broker at *endpoint*.

        Extra keyword arguments are passed to ``ws_connect``.
        """
        if self._closed:
            raise SignalingChannelException("Channel has been closed")
        if self._ws is not None:
            raise SignalingChannelException("Channel is already connected")

        _LOGGER.debug("Signaling channel connecting: %s", redact_url(endpoint))
        try:
            ws = await self.websession.ws_connect(endpoint, **kwargs)
        except (ClientError, OSError, asyncio.TimeoutError) as err:
            raise SignalingChannelException(
                f"Unable to connect to signaling server: {err}"
            ) from err

        if self._closed:
            await ws.close()
            raise SignalingChannelException("Channel was closed while connecting")

        self._ws = ws
        _LOGGER.debug("Signaling channel connected")
        self.emit(EVENT_OPEN)

        self._receive_task = asyncio.ensure_future(self._receive_loop(ws))
        if self._ping_interval:
            self._ping_task = asyncio.ensure_future(self._ping_loop(ws))
        return ws

    async def send(self, message: SignalingMessage) -> bool:
        """Send a message to the broker.

        Returns `False` if the message could not be sent.
        """
        if not self.is_open or self._ws is None:
            _LOGGER.warning(
                "Signaling channel is not open, dropping %s message", message.type
            )
            return False

        payload = message.as_dict()
        _LOGGER.debug("Sending %s message: %s", message.type, redact(payload))
        try:
            await self._ws.send_json(payload)
        except (ClientError, ConnectionError, RuntimeError) as err:
            _LOGGER.warning("Failed to send %s message: %s", message.type, err)
            self.emit(EVENT_ERROR, err)
            return False
        return True

    async def close(self) -> None:
        """Close the channel."""
        if self._closed:
            return
        self._closed = True

        current = asyncio.current_task()
        await cancel_task(
            *(
                task
                for task in (self._ping_task, self._receive_task)
                if task is not current
            )
        )

        if self._ws is not None and not self._ws.closed:
            await self._ws.close()

        if not self._websession_provided and self._websession is not None:
            await self._websession.close()

        _LOGGER.debug("Signaling channel closed")
        self.emit(EVENT_CLOSE)

    # -- Internal ----------------------------------------------------------

    async def _receive_loop(self, ws: ClientWebSocketResponse) -> None:
        """Receive messages from the broker until the connection ends."""
        try:
            async for msg in ws:
                if self._closed:
                    break
                if msg.type == WSMsgType.TEXT:
                    self._handle_text(msg.data)
                elif msg.type == WSMsgType.ERROR:
                    error = ws.exception() or SignalingChannelException(
                        "WebSocket error"
                    )
                    _LOGGER.warning("Signaling channel error: %s", error)
                    self.emit(EVENT_ERROR, error)
                    break
                else:
                    _LOGGER.debug("Ignoring %s frame", msg.type.name)
        except asyncio.CancelledError:
            raise
        except Exception:
            if not self._closed:
                _LOGGER.exception("Signaling receive error")

        if not self._closed:
            _LOGGER.debug(
                "Signaling channel dropped by remote (close code %s)", ws.close_code
            )
            await self.close()

    def _handle_text(self, raw: str) -> None:
        """Decode and dispatch a single text frame."""
        try:
            data = json.loads(raw)
            message = parse_message(data)
        except (ValueError, SignalingMessageException) as err:
            _LOGGER.warning("Dropping malformed signaling message: %s", err)
            self.emit(EVENT_ERROR, err)
            return

        if message is None:
            _LOGGER.debug(
                "Ignoring unknown signaling message type: %s", data.get("type")
            )
            return

        _LOGGER.debug("Received %s message: %s", message.type, redact(data))
        self.emit(EVENT_MESSAGE, message)

    async def _ping_loop(self, ws: ClientWebSocketResponse) -> None:
        """Send periodic pings to keep the signaling connection alive."""
        try:
            while not self._closed:
                await asyncio.sleep(self._ping_interval)  # type: ignore[arg-type]
                if not ws.closed:
                    await ws.ping()
        except asyncio.CancelledError:
            raise
        except Exception:
            if not self._closed:
                _LOGGER.debug("Ping loop ended")
