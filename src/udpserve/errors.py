"""Exception hierarchy for ``udpserve``."""

from __future__ import annotations


class UdpServeError(Exception):
    pass


class BindError(UdpServeError):
    """Raised when a transport cannot be opened or bound.

    Parameters
    ----------
    address : tuple
        The address that failed to bind.
    reason : str
        Description of the underlying OS failure.
    """

    def __init__(self, address: tuple[object, ...], reason: str) -> None:
        self.address = address
        self.reason = reason
        super().__init__(f"cannot bind {address!r}: {reason}")


class DecodeError(UdpServeError):
    """Raised by a decoder when a datagram is not a valid message."""


class TransportClosedError(UdpServeError):
    """Raised on receive, send or close of a transport that is already closed."""


class ReceiveError(UdpServeError):
    """Raised by ``Server.serve`` when the receive loop dies on its own.

    A loop stopped through ``Server.close`` returns normally instead.
    """


class ServerStateError(UdpServeError):
    pass
