"""Construction options for ``create_server``.

Each option is a function from one ``ServerOptions`` value to the next.
Options are applied in the order given, so when two of them set the same
field the last one wins::

    server = await create_server(
        ("0.0.0.0", 6767),
        handler,
        with_buffer_size(1500),
        with_max_concurrency(64),
    )
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from dataclasses import dataclass, field, replace
from functools import reduce
from typing import Any

from udpserve.codec import Decoder, decode
from udpserve.config import ServerConfig
from udpserve.transport import PacketTransport


@dataclass(frozen=True)
class ServerOptions:
    """Everything ``create_server`` needs besides the address and handler.

    Parameters
    ----------
    config : ServerConfig
        Receive loop and dispatch tunables.
    transport : PacketTransport | None
        Pre-bound transport. When set, the bind address is ignored and no
        socket is opened.
    decoder : Decoder
        Turns datagram bytes into messages.
    logger : logging.Logger | None
        Logger for the server. Defaults to ``udpserve.server``.
    """

    config: ServerConfig = field(default_factory=ServerConfig)
    transport: PacketTransport | None = None
    decoder: Decoder[Any] = decode
    logger: logging.Logger | None = None


type ServerOption = Callable[[ServerOptions], ServerOptions]


def apply_options(*options: ServerOption) -> ServerOptions:
    return reduce(lambda opts, option: option(opts), options, ServerOptions())


def with_transport(transport: PacketTransport) -> ServerOption:
    """Serve on an already bound *transport* instead of opening one."""
    return lambda opts: replace(opts, transport=transport)


def with_decoder(decoder: Decoder[Any]) -> ServerOption:
    return lambda opts: replace(opts, decoder=decoder)


def with_logger(logger: logging.Logger) -> ServerOption:
    return lambda opts: replace(opts, logger=logger)


def with_config(config: ServerConfig) -> ServerOption:
    """Replace the whole ``ServerConfig``, e.g. one from ``load_config``."""
    return lambda opts: replace(opts, config=config)


def _with_config_field(**changes: Any) -> ServerOption:
    # ServerConfig.__post_init__ validates the new value when applied.
    return lambda opts: replace(opts, config=replace(opts.config, **changes))


def with_buffer_size(size: int) -> ServerOption:
    return _with_config_field(buffer_size=size)


def with_max_concurrency(limit: int | None) -> ServerOption:
    return _with_config_field(max_concurrency=limit)


def with_drain_timeout(timeout: float | None) -> ServerOption:
    return _with_config_field(drain_timeout=timeout)


def with_max_pending(count: int) -> ServerOption:
    return _with_config_field(max_pending=count)


def with_drop_truncated(enabled: bool = True) -> ServerOption:
    return _with_config_field(drop_truncated=enabled)
