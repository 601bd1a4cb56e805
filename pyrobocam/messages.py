"""Signaling messages exchanged with the negotiation broker.

Every message on the wire is a single JSON object tagged by its ``type``.
Messages sent by the client and replies sent by the broker are modelled as
separate dataclasses so that each one maps to exactly one tag.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar

from .enums import SignalingMessageType
from .exceptions import SignalingMessageException
from .utils import first_value

# ---------------------------------------------------------------------------
# Payload descriptors
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class IceServerDescriptor:
    """A STUN/TURN server usable for connectivity establishment."""

    urls: tuple[str, ...]
    username: str | None = None
    credential: str | None = None

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IceServerDescriptor:
        """Create an IceServerDescriptor from a broker server entry."""
        if not isinstance(data, dict):
            raise SignalingMessageException(f"Invalid ICE server entry: {data!r}")
        urls = first_value(data, ("urls", "url", "uris"), default=[])
        if isinstance(urls, str):
            urls = [urls]
        if not isinstance(urls, list) or not all(isinstance(u, str) for u in urls):
            raise SignalingMessageException("ICE server entry has invalid urls")
        return cls(
            urls=tuple(urls),
            username=data.get("username"),
            credential=data.get("credential"),
        )

    def as_dict(self) -> dict[str, Any]:
        """Return the wire representation."""
        data: dict[str, Any] = {"urls": list(self.urls)}
        if self.username is not None:
            data["username"] = self.username
        if self.credential is not None:
            data["credential"] = self.credential
        return data


@dataclass(frozen=True)
class CandidateDescriptor:
    """A single ICE candidate in the browser ``RTCIceCandidateInit`` shape."""

    candidate: str
    sdp_mid: str | None = None
    sdp_mline_index: int | None = None
    username_fragment: str | None = None

    @classmethod
    def from_dict(cls, data: Any) -> CandidateDescriptor:
        """Create a CandidateDescriptor from a message ``data`` payload."""
        if not isinstance(data, dict):
            raise SignalingMessageException("Candidate payload must be an object")
        candidate = data.get("candidate")
        if not isinstance(candidate, str):
            raise SignalingMessageException("Candidate payload has no candidate")
        sdp_mline_index = data.get("sdpMLineIndex")
        if sdp_mline_index is not None and not isinstance(sdp_mline_index, int):
            raise SignalingMessageException("Candidate sdpMLineIndex must be an int")
        return cls(
            candidate=candidate,
            sdp_mid=data.get("sdpMid"),
            sdp_mline_index=sdp_mline_index,
            username_fragment=data.get("usernameFragment"),
        )

    def as_dict(self) -> dict[str, Any]:
        """Return the wire representation."""
        data: dict[str, Any] = {
            "candidate": self.candidate,
            "sdpMid": self.sdp_mid,
            "sdpMLineIndex": self.sdp_mline_index,
        }
        if self.username_fragment is not None:
            data["usernameFragment"] = self.username_fragment
        return data


# ---------------------------------------------------------------------------
# Messages
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class SignalingMessage:
    """Base class for all signaling messages."""

    type: ClassVar[str]

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SignalingMessage:
        """Create the message from its wire representation."""
        return cls()

    def as_dict(self) -> dict[str, Any]:
        """Return the wire representation."""
        return {"type": self.type}


@dataclass(frozen=True)
class IceServersRequest(SignalingMessage):
    """Ask the broker for the ICE servers to use."""

    type: ClassVar[str] = SignalingMessageType.ICE_SERVERS_REQUEST


@dataclass(frozen=True)
class IceServersResponse(SignalingMessage):
    """ICE servers supplied by the broker."""

    type: ClassVar[str] = SignalingMessageType.ICE_SERVERS_RESPONSE

    ice_servers: tuple[IceServerDescriptor, ...] = field(default_factory=tuple)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IceServersResponse:
        servers = data.get("iceServers") or []
        if not isinstance(servers, list):
            raise SignalingMessageException("iceServers must be a list")
        return cls(
            ice_servers=tuple(IceServerDescriptor.from_dict(s) for s in servers)
        )

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "iceServers": [server.as_dict() for server in self.ice_servers],
        }


@dataclass(frozen=True)
class IceServersError(SignalingMessage):
    """The broker could not supply ICE servers."""

    type: ClassVar[str] = SignalingMessageType.ICE_SERVERS_ERROR

    error: str = ""

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IceServersError:
        return cls(error=str(data.get("error", "")))

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.type, "error": self.error}


@dataclass(frozen=True)
class SdpOffer(SignalingMessage):
    """Local session description offer."""

    type: ClassVar[str] = SignalingMessageType.SDP

    sdp: str
    sdp_type: str = "offer"

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SdpOffer:
        payload = _sdp_payload(data)
        return cls(sdp=payload["sdp"], sdp_type=payload.get("type") or "offer")

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": {"sdp": self.sdp, "type": self.sdp_type}}


@dataclass(frozen=True)
class SdpAnswer(SignalingMessage):
    """Remote session description answer relayed by the broker."""

    type: ClassVar[str] = SignalingMessageType.SDP_REPLY

    sdp: str

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> SdpAnswer:
        return cls(sdp=_sdp_payload(data)["sdp"])

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": {"sdp": self.sdp}}


@dataclass(frozen=True)
class IceCandidate(SignalingMessage):
    """Local ICE candidate sent to the broker."""

    type: ClassVar[str] = SignalingMessageType.ICE_CANDIDATE

    candidate: CandidateDescriptor

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IceCandidate:
        return cls(candidate=CandidateDescriptor.from_dict(data.get("data")))

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.candidate.as_dict()}


@dataclass(frozen=True)
class IceCandidateReply(SignalingMessage):
    """Remote ICE candidate relayed by the broker."""

    type: ClassVar[str] = SignalingMessageType.ICE_CANDIDATE_REPLY

    candidate: CandidateDescriptor

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> IceCandidateReply:
        return cls(candidate=CandidateDescriptor.from_dict(data.get("data")))

    def as_dict(self) -> dict[str, Any]:
        return {"type": self.type, "data": self.candidate.as_dict()}


MESSAGE_TYPES: dict[str, type[SignalingMessage]] = {
    message_class.type: message_class
    for message_class in (
        IceServersRequest,
        IceServersResponse,
        IceServersError,
        SdpOffer,
        SdpAnswer,
        IceCandidate,
        IceCandidateReply,
    )
}


def _sdp_payload(data: dict[str, Any]) -> dict[str, Any]:
    """Return a validated session description payload."""
    payload = data.get("data")
    if not isinstance(payload, dict) or not isinstance(payload.get("sdp"), str):
        raise SignalingMessageException("Session description payload has no sdp")
    return payload


def parse_message(data: Any) -> SignalingMessage | None:
    """Parse a decoded JSON object into a signaling message.

    Returns `None` for messages with an unknown ``type``.

    Raises:
        SignalingMessageException: The message is not an object or a known
            message has a malformed payload.

    """
    if not isinstance(data, dict):
        raise SignalingMessageException(f"Expected a JSON object, got {type(data)}")
    msg_type = data.get("type")
    if not isinstance(msg_type, str) or msg_type not in MESSAGE_TYPES:
        return None
    message_class = MESSAGE_TYPES[msg_type]
    return message_class.from_dict(data)
