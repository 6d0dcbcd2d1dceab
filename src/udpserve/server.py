"""Datagram server shell.

A ``Server`` owns one ``PacketTransport``, receives datagrams in a loop,
decodes each one and hands the result to a caller-supplied handler running
in its own task, so a slow handler never delays the next receive.

Example::

    async def handler(transport, peer, message):
        await transport.send_to(encode(message.reply("PONG")), peer)

    async def main():
        server = await create_server(("127.0.0.1", 6767), handler)
        async with server:
            await server.serve()

``serve`` runs until the transport stops delivering datagrams. Calling
``close`` from another task is the supported way to stop it.
"""

from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable

from udpserve.codec import Decoder, decode
from udpserve.config import ServerConfig
from udpserve.dispatch import HandlerGroup
from udpserve.errors import DecodeError, ReceiveError, ServerStateError, TransportClosedError
from udpserve.options import ServerOption, apply_options
from udpserve.transport import Address, Datagram, PacketTransport, open_udp_transport

type Handler[M] = Callable[[PacketTransport, Address, M], Awaitable[None]]


class Server[M]:
    """Receive loop over one transport.

    Prefer ``create_server``, which also opens the transport.

    Parameters
    ----------
    transport : PacketTransport
        Bound transport; the server owns it and closes it in ``close``.
    handler : Handler
        Called as ``handler(transport, peer, message)`` once per decoded
        datagram. Exceptions it raises are logged and otherwise ignored.
    decoder : Decoder
        Turns datagram bytes into a message, raising ``DecodeError`` on
        malformed input.
    config : ServerConfig or None
        Loop and dispatch tunables.
    logger : logging.Logger or None
        Defaults to ``udpserve.server``.
    """

    def __init__(
        self,
        transport: PacketTransport,
        handler: Handler[M],
        *,
        decoder: Decoder[M] = decode,
        config: ServerConfig | None = None,
        logger: logging.Logger | None = None,
    ) -> None:
        self._transport = transport
        self._handler = handler
        self._decoder = decoder
        self._config = config or ServerConfig()
        self._logger = logger or logging.getLogger("udpserve.server")
        self._handlers = HandlerGroup(
            self._config.max_concurrency,
            logger=self._logger.getChild("handler"),
        )
        self._serving = False
        self._closed = False

    @property
    def transport(self) -> PacketTransport:
        return self._transport

    @property
    def local_address(self) -> Address:
        return self._transport.local_address

    @property
    def config(self) -> ServerConfig:
        return self._config

    @property
    def serving(self) -> bool:
        return self._serving

    @property
    def closed(self) -> bool:
        return self._closed

    @property
    def pending(self) -> int:
        """Number of handler invocations still running."""
        return len(self._handlers)

    async def serve(self) -> None:
        """Receive, decode and dispatch datagrams until the transport fails.

        Returns normally once ``close`` has stopped the transport.

        Raises
        ------
        ReceiveError
            If receiving fails for any reason other than ``close``.
        ServerStateError
            If the loop is already running or the server is closed.
        """
        if self._closed:
            raise ServerStateError("server is closed")
        if self._serving:
            raise ServerStateError("serve() is already running")
        self._serving = True
        self._logger.info("Server listening on %s", self.local_address)
        try:
            while True:
                try:
                    datagram = await self._transport.recv_from(self._config.buffer_size)
                except Exception as e:
                    if self._closed:
                        self._logger.info("Server on %s stopped", self.local_address)
                        return
                    self._logger.error("Error reading from transport: %s", e)
                    msg = f"receive failed on {self.local_address}: {e}"
                    raise ReceiveError(msg) from e

                message = self._decode(datagram)
                if message is None:
                    continue
                await self._handlers.spawn(
                    self._handler, self._transport, datagram.peer, message
                )
        finally:
            self._serving = False

    def _decode(self, datagram: Datagram) -> M | None:
        self._logger.debug("Handling %d bytes from %s", datagram.size, datagram.peer)
        if datagram.truncated:
            self._logger.warning(
                "Datagram from %s truncated: %d bytes received, buffer holds %d",
                datagram.peer, datagram.size, self._config.buffer_size,
            )
            if self._config.drop_truncated:
                return None
        try:
            return self._decoder(datagram.data)
        except DecodeError as e:
            self._logger.warning("Dropping datagram from %s: %s", datagram.peer, e)
        except Exception:
            self._logger.exception("Decoder failed on datagram from %s", datagram.peer)
        return None

    async def close(
        self,
        drain_timeout: float | None = None,
        *,
        cancel_pending: bool = False,
    ) -> None:
        """Close the transport, stopping ``serve``.

        Handler tasks already running are not interrupted unless
        *cancel_pending* is set.

        Parameters
        ----------
        drain_timeout : float or None
            Seconds to wait for running handlers. Falls back to
            ``ServerConfig.drain_timeout``; ``None`` in both means no wait.
        cancel_pending : bool
            Cancel handlers still running after the drain.

        Raises
        ------
        TransportClosedError
            If the transport was already closed.
        """
        self._closed = True
        self._handlers.close()
        self._transport.close()

        timeout = drain_timeout if drain_timeout is not None else self._config.drain_timeout
        if timeout is not None and not await self._handlers.drain(timeout):
            self._logger.warning(
                "%d handler(s) still running after %.2fs", len(self._handlers), timeout
            )
        if cancel_pending and self._handlers:
            self._logger.info("Cancelling %d handler(s)", len(self._handlers))
            await self._handlers.cancel_all()

    async def __aenter__(self) -> Server[M]:
        return self

    async def __aexit__(self, exc_type: type[BaseException] | None, *exc: object) -> None:
        if self._closed:
            return
        try:
            await self.close()
        except TransportClosedError:
            # Already closed by a transport failure; keep the body's exception.
            if exc_type is None:
                raise
            self._logger.debug("Transport on %s was already closed", self.local_address)


async def create_server[M](
    address: Address,
    handler: Handler[M],
    *options: ServerOption,
) -> Server[M]:
    """Build a ``Server`` listening on *address*.

    Parameters
    ----------
    address : Address
        ``(host, port)`` to bind. Ignored when ``with_transport`` is given.
    handler : Handler
        Called once per decoded datagram.
    *options : ServerOption
        Applied in order; the last one setting a field wins.

    Returns
    -------
    Server
        Bound but not yet serving.

    Raises
    ------
    BindError
        If no transport was supplied and binding *address* failed.
    ValueError
        If an option carries an invalid value.
    """
    opts = apply_options(*options)
    transport = opts.transport
    if transport is None:
        host, port = address[0], address[1]
        transport = await open_udp_transport(
            host,
            port,
            max_pending=opts.config.max_pending,
            logger=opts.logger.getChild("transport") if opts.logger else None,
        )
    return Server(
        transport,
        handler,
        decoder=opts.decoder,
        config=opts.config,
        logger=opts.logger,
    )
