"""Common test module."""

from __future__ import annotations

import asyncio
from typing import Any, Callable
from unittest.mock import AsyncMock, MagicMock

from aiohttp import WSMsgType, web
from aiortc import RTCSessionDescription

from pyrobocam.channel import SignalingChannel
from pyrobocam.event import EVENT_CLOSE, EVENT_MESSAGE, EVENT_OPEN, Event
from pyrobocam.messages import SignalingMessage, parse_message

ROBOT_ID = "Concierge-729f"
AUTH_KEY = "test_client_key_123"
BROKER_PATH = f"/concierge/v1/mandy/{ROBOT_ID}/camera/webrtc"

OFFER_SDP = (
    "v=0\r\no=- 1 1 IN IP4 0.0.0.0\r\ns=-\r\nt=0 0\r\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 97\r\na=recvonly\r\n"
)
ANSWER_SDP = (
    "v=0\r\no=- 2 2 IN IP4 0.0.0.0\r\ns=-\r\nt=0 0\r\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 97\r\na=sendonly\r\n"
)

LOCAL_SDP = (
    "v=0\r\n"
    "o=- 3 3 IN IP4 0.0.0.0\r\n"
    "s=-\r\n"
    "t=0 0\r\n"
    "a=group:BUNDLE 0 1\r\n"
    "m=video 9 UDP/TLS/RTP/SAVPF 97\r\n"
    "c=IN IP4 0.0.0.0\r\n"
    "a=recvonly\r\n"
    "a=mid:0\r\n"
    "a=candidate:1 1 udp 2130706431 192.168.1.10 50000 typ host\r\n"
    "a=candidate:2 1 udp 1694498815 203.0.113.7 50001 typ srflx "
    "raddr 192.168.1.10 rport 50000\r\n"
    "a=end-of-candidates\r\n"
    "m=audio 9 UDP/TLS/RTP/SAVPF 96\r\n"
    "c=IN IP4 0.0.0.0\r\n"
    "a=candidate:3 1 udp 2130706431 192.168.1.10 50002 typ host\r\n"
    "a=mid:1\r\n"
)

HOST_CANDIDATE = "candidate:1 1 UDP 2122260223 192.168.1.1 50000 typ host"
REMOTE_CANDIDATE_DATA = {
    "candidate": HOST_CANDIDATE,
    "sdpMid": "0",
    "sdpMLineIndex": 0,
}

TURN_SERVER = {
    "urls": ["turn:turn.example.com:443?transport=tcp"],
    "username": "turn-user",
    "credential": "turn-pass",
}
STUN_SERVER = {"urls": "stun:stun.example.com:3478"}

ICE_SERVERS_RESPONSE = {
    "type": "ice_servers_response",
    "iceServers": [STUN_SERVER, TURN_SERVER],
}
EMPTY_ICE_SERVERS_RESPONSE = {"type": "ice_servers_response", "iceServers": []}
ICE_SERVERS_ERROR = {"type": "ice_servers_error", "error": "robot offline"}
SDP_REPLY = {"type": "sdp_reply", "data": {"sdp": ANSWER_SDP}}
ICE_CANDIDATE_REPLY = {"type": "ice_candidate_reply", "data": REMOTE_CANDIDATE_DATA}


async def settle(delay: float = 0.01) -> None:
    """Let queued coordinator events run."""
    await asyncio.sleep(delay)


async def wait_until(predicate: Callable[[], bool], timeout: float = 2) -> None:
    """Wait for a condition to become true."""

    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.01)

    await asyncio.wait_for(poll(), timeout=timeout)


class FakePeerSession(Event):
    """Stand-in for a PeerSession backed by mocks."""

    def __init__(self, ice_servers: tuple = ()) -> None:
        """Initialize the fake."""
        super().__init__()
        self.ice_servers = tuple(ice_servers)
        self.local_description: RTCSessionDescription | None = None
        self.closed = False
        self.create_offer = AsyncMock(
            return_value=RTCSessionDescription(sdp=OFFER_SDP, type="offer")
        )
        self.set_local_description = AsyncMock(side_effect=self._set_local)
        self.set_remote_description = AsyncMock()
        self.add_remote_candidate = AsyncMock()
        self.close = AsyncMock(side_effect=self._close)

    async def _set_local(self, description: RTCSessionDescription) -> None:
        self.local_description = description

    async def _close(self) -> None:
        self.closed = True


class FakePeerFactory:
    """Record every peer session created."""

    def __init__(self) -> None:
        """Initialize the factory."""
        self.sessions: list[FakePeerSession] = []

    def __call__(self, ice_servers: tuple) -> FakePeerSession:
        """Create a fake peer session."""
        session = FakePeerSession(ice_servers)
        self.sessions.append(session)
        return session

    @property
    def session(self) -> FakePeerSession:
        """Return the only session created."""
        assert len(self.sessions) == 1
        return self.sessions[0]


class FakeChannel(SignalingChannel):
    """In-memory signaling channel."""

    def __init__(self) -> None:
        """Initialize the fake."""
        super().__init__(ping_interval=None)
        self.sent: list[SignalingMessage] = []
        self.endpoint: str | None = None
        self.connect_error: Exception | None = None
        self._open = False

    @property
    def is_open(self) -> bool:
        """Return `True` if messages can be sent."""
        return self._open and not self._closed

    async def connect(self, endpoint: str, **kwargs: Any) -> MagicMock:
        """Pretend to connect."""
        if self.connect_error is not None:
            raise self.connect_error
        self.endpoint = endpoint
        self._open = True
        self.emit(EVENT_OPEN)
        return MagicMock()

    async def send(self, message: SignalingMessage) -> bool:
        """Record a sent message."""
        if not self.is_open:
            return False
        self.sent.append(message)
        return True

    async def close(self) -> None:
        """Pretend to close."""
        if self._closed:
            return
        self._closed = True
        self._open = False
        self.emit(EVENT_CLOSE)

    def receive(self, data: dict[str, Any]) -> None:
        """Deliver a broker message."""
        if (message := parse_message(data)) is not None:
            self.emit(EVENT_MESSAGE, message)

    def sent_types(self) -> list[str]:
        """Return the wire types of every sent message."""
        return [message.type for message in self.sent]


class FakeBroker:
    """Scriptable WebSocket signaling broker."""

    def __init__(self) -> None:
        """Initialize the broker."""
        self.received: list[dict[str, Any]] = []
        self.greeting: list[str | dict[str, Any]] = []
        self.replies: dict[str, list[dict[str, Any]]] = {}
        self.close_after_greeting = False
        self.connections = 0
        self.query: dict[str, str] = {}
        self.url = ""
        self.got_message = asyncio.Event()

    async def handler(self, request: web.Request) -> web.WebSocketResponse:
        """Serve one signaling connection."""
        ws = web.WebSocketResponse()
        await ws.prepare(request)
        self.connections += 1
        self.query = dict(request.query)

        for frame in self.greeting:
            if isinstance(frame, str):
                await ws.send_str(frame)
            else:
                await ws.send_json(frame)
        if self.close_after_greeting:
            await ws.close()
            return ws

        async for msg in ws:
            if msg.type != WSMsgType.TEXT:
                continue
            data = msg.json()
            self.received.append(data)
            self.got_message.set()
            for reply in self.replies.get(data.get("type"), []):
                await ws.send_json(reply)
        return ws

    def received_types(self) -> list[str]:
        """Return the wire types of every received message."""
        return [data.get("type") for data in self.received]
