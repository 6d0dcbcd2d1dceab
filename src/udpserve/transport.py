"""Connectionless packet transports.

Defines the ``PacketTransport`` protocol consumed by ``Server`` and provides
``UdpTransport``, backed by an asyncio datagram endpoint, and
``MemoryTransport``, an in-process double with the same contract.

Both implementations queue incoming datagrams in a bounded inbox; once the
inbox holds ``max_pending`` datagrams, newer ones are dropped with a warning.
Closing a transport wakes every pending ``recv_from`` with
``TransportClosedError``.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, NoReturn, Protocol, runtime_checkable

from udpserve.errors import BindError, TransportClosedError

type Address = tuple[Any, ...]

DEFAULT_MAX_PENDING: int = 1024


@dataclass(frozen=True)
class Datagram:
    """One received datagram.

    Parameters
    ----------
    data : bytes
        The bytes that fit in the receive buffer.
    peer : Address
        Sender address.
    size : int
        Length of the datagram as delivered by the OS.

    Examples
    --------
    >>> Datagram(data=b"abc", peer=("127.0.0.1", 5000), size=10).truncated
    True
    """

    data: bytes
    peer: Address
    size: int

    @property
    def truncated(self) -> bool:
        return self.size > len(self.data)


@runtime_checkable
class PacketTransport(Protocol):
    """A bound, connectionless packet socket.

    Any object with these members may back a ``Server``.
    """

    @property
    def local_address(self) -> Address: ...

    async def recv_from(self, bufsize: int) -> Datagram:
        """Wait for the next datagram, keeping at most *bufsize* bytes of it.

        Raises
        ------
        TransportClosedError
            If the transport is closed, including while waiting.
        """
        ...

    async def send_to(self, data: bytes, address: Address) -> None: ...

    def close(self) -> None:
        """Close the transport, unblocking any pending ``recv_from``."""
        ...


@dataclass(frozen=True)
class _Closed:
    cause: BaseException | None


class _InboxTransport:
    def __init__(self, *, max_pending: int, logger: logging.Logger) -> None:
        if max_pending < 1:
            msg = f"max_pending must be >= 1, got {max_pending}"
            raise ValueError(msg)
        self._inbox: asyncio.Queue[tuple[bytes, Address] | _Closed] = asyncio.Queue()
        self._max_pending = max_pending
        self._closed: _Closed | None = None
        self._logger = logger

    @property
    def closed(self) -> bool:
        return self._closed is not None

    @property
    def pending(self) -> int:
        """Number of datagrams waiting in the inbox."""
        return self._inbox.qsize() - (1 if self._closed is not None else 0)

    async def recv_from(self, bufsize: int) -> Datagram:
        if self._closed is not None:
            self._raise_closed()
        item = await self._inbox.get()
        if isinstance(item, _Closed):
            # Leave the marker in place for the next waiter.
            self._inbox.put_nowait(item)
            self._raise_closed()
        data, peer = item
        return Datagram(data=data[:bufsize], peer=peer, size=len(data))

    def _enqueue(self, data: bytes, peer: Address) -> None:
        if self._closed is not None:
            return
        if self._inbox.qsize() >= self._max_pending:
            self._logger.warning(
                "Inbox full (%d pending), dropping %d bytes from %s",
                self._max_pending, len(data), peer,
            )
            return
        self._inbox.put_nowait((data, peer))

    def _shutdown(self, cause: BaseException | None) -> None:
        if self._closed is not None:
            return
        self._closed = _Closed(cause)
        self._inbox.put_nowait(self._closed)

    def _raise_closed(self) -> NoReturn:
        cause = self._closed.cause if self._closed is not None else None
        raise TransportClosedError("transport is closed") from cause

    def _check_open(self, op: str) -> None:
        if self._closed is not None:
            msg = f"{op} on closed transport"
            raise TransportClosedError(msg)


class _UDPServerProtocol(asyncio.DatagramProtocol):
    """Internal datagram protocol - forwards to the owning transport."""

    def __init__(
        self,
        on_datagram: Callable[[bytes, Address], None],
        on_lost: Callable[[BaseException | None], None],
        logger: logging.Logger,
    ) -> None:
        self._on_datagram = on_datagram
        self._on_lost = on_lost
        self._logger = logger

    def datagram_received(self, data: bytes, addr: Address) -> None:
        self._on_datagram(data, addr)

    def error_received(self, exc: Exception) -> None:
        self._logger.warning("UDP error: %s", exc)

    def connection_lost(self, exc: Exception | None) -> None:
        if exc is not None:
            self._logger.error("UDP connection lost: %s", exc)
        self._on_lost(exc)


class UdpTransport(_InboxTransport):
    """``PacketTransport`` over an ``asyncio.DatagramTransport``.

    Use ``open_udp_transport`` to create a bound instance. ``sendto`` on an
    asyncio datagram transport never blocks, so concurrent ``send_to`` calls
    from handler tasks on the same loop need no locking.
    """

    def __init__(
        self,
        *,
        max_pending: int = DEFAULT_MAX_PENDING,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            max_pending=max_pending,
            logger=logger or logging.getLogger("udpserve.transport"),
        )
        self._transport: asyncio.DatagramTransport | None = None
        self._local_address: Address = ()

    def _attach(self, transport: asyncio.DatagramTransport) -> None:
        self._transport = transport
        self._local_address = tuple(transport.get_extra_info("sockname"))

    @property
    def local_address(self) -> Address:
        return self._local_address

    async def send_to(self, data: bytes, address: Address) -> None:
        self._check_open("send_to")
        if self._transport is None:
            raise TransportClosedError("send_to on unbound transport")
        self._transport.sendto(data, address)

    def close(self) -> None:
        self._check_open("close")
        self._shutdown(None)
        if self._transport is not None:
            self._transport.close()


async def open_udp_transport(
    host: str,
    port: int,
    *,
    family: int = 0,
    reuse_port: bool = False,
    max_pending: int = DEFAULT_MAX_PENDING,
    logger: logging.Logger | None = None,
) -> UdpTransport:
    """Bind a UDP socket to ``(host, port)``.

    Parameters
    ----------
    host : str
        Local address. An IPv6 link-local host may carry its scope,
        e.g. ``"fe80::1%eth0"``.
    port : int
        Local port, ``0`` for an OS-assigned one.
    family : int
        Address family, ``0`` to infer it from *host*.
    reuse_port : bool
        Set ``SO_REUSEPORT`` on the socket.
    max_pending : int
        Inbox capacity in datagrams.
    logger : logging.Logger or None
        Defaults to ``udpserve.transport``.

    Returns
    -------
    UdpTransport

    Raises
    ------
    BindError
        If the socket cannot be created or bound.

    Examples
    --------
    >>> transport = await open_udp_transport("127.0.0.1", 0)  # doctest: +SKIP
    >>> transport.local_address  # doctest: +SKIP
    ('127.0.0.1', 50123)
    """
    udp = UdpTransport(max_pending=max_pending, logger=logger)
    loop = asyncio.get_running_loop()

    def make_protocol() -> _UDPServerProtocol:
        return _UDPServerProtocol(udp._enqueue, udp._shutdown, udp._logger)

    try:
        transport, _ = await loop.create_datagram_endpoint(
            make_protocol,
            local_addr=(host, port),
            family=family,
            reuse_port=reuse_port,
        )
    except (OSError, OverflowError) as e:
        raise BindError((host, port), str(e)) from e
    udp._attach(transport)
    return udp


class MemoryTransport(_InboxTransport):
    """In-process ``PacketTransport`` for tests.

    Datagrams are fed with ``inject``; everything passed to ``send_to`` is
    recorded in ``sent``.

    Examples
    --------
    >>> transport = MemoryTransport()
    >>> transport.inject(b"hello", ("10.0.0.2", 68))
    >>> transport.pending
    1
    """

    def __init__(
        self,
        local_address: Address = ("127.0.0.1", 0),
        *,
        max_pending: int = DEFAULT_MAX_PENDING,
        logger: logging.Logger | None = None,
    ) -> None:
        super().__init__(
            max_pending=max_pending,
            logger=logger or logging.getLogger("udpserve.transport"),
        )
        self._local_address = local_address
        self.sent: list[tuple[bytes, Address]] = []

    @property
    def local_address(self) -> Address:
        return self._local_address

    def inject(self, data: bytes, peer: Address) -> None:
        self._enqueue(bytes(data), peer)

    def fail(self, cause: BaseException) -> None:
        """Simulate the OS tearing the socket down with *cause*."""
        self._shutdown(cause)

    async def send_to(self, data: bytes, address: Address) -> None:
        self._check_open("send_to")
        self.sent.append((bytes(data), address))

    def close(self) -> None:
        self._check_open("close")
        self._shutdown(None)
