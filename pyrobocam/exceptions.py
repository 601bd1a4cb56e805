"""pyrobocam exceptions."""


class RoboCamException(Exception):
    """General robot camera exception."""


class SignalingChannelException(RoboCamException):
    """To indicate there is a signaling channel issue."""


class SignalingMessageException(RoboCamException):
    """To be thrown in the event a malformed signaling message is received."""


class NegotiationException(RoboCamException):
    """To indicate a session negotiation step failed."""


class PeerSessionClosedException(NegotiationException):
    """To be thrown when an operation is attempted on a closed peer session."""
