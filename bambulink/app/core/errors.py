"""Exceptions raised by bambulink."""


class BambuLinkError(Exception):
    """Base class for all bambulink errors."""


class TransportError(BambuLinkError):
    """The MQTT transport failed to connect, subscribe, publish or close."""


class ChannelClosedError(BambuLinkError):
    """The control loop behind a printer handle has already stopped."""


class DecodeError(BambuLinkError, ValueError):
    """A payload or diagnostic string could not be decoded.

    Scoped to the single message being parsed; never fatal to a connection.
    """
