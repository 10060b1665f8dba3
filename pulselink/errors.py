"""
Error taxonomy for the heart-rate pipeline.

None of these are fatal to the process. Background loops catch them and
turn them into a log line, an error flag on PulseState, or a session stop.
"""


class PulseLinkError(Exception):
    """Base class for all pipeline errors."""


class AuthError(PulseLinkError):
    """Authentication setup or exchange failed."""


class ListenerBindError(AuthError):
    """A loopback listener port could not be bound."""


class ListenersNotStarted(AuthError):
    """authenticate() was called before start_listeners()."""


class ExchangeTimeout(AuthError):
    """The browser never completed the loopback exchange in time."""


class ExchangeCancelled(AuthError):
    """The exchange was cancelled by the caller."""


class ValidationRequestFailed(AuthError):
    """The token validation request could not be completed."""


class StreamError(PulseLinkError):
    """Streaming connection failure."""


class StreamConnectError(StreamError):
    """Opening the telemetry connection failed."""


class ConnectionDropped(StreamError):
    """The telemetry connection closed abnormally."""


class MessageParseError(StreamError):
    """An inbound frame did not carry a usable heart rate."""
