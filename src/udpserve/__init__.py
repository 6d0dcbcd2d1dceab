from udpserve.codec import PROTOCOL_VERSION, Decoder, Message, decode, encode
from udpserve.config import ServerConfig, discover_config, load_config
from udpserve.dispatch import HandlerGroup
from udpserve.errors import (
    BindError,
    DecodeError,
    ReceiveError,
    ServerStateError,
    TransportClosedError,
    UdpServeError,
)
from udpserve.options import (
    ServerOption,
    ServerOptions,
    apply_options,
    with_buffer_size,
    with_config,
    with_decoder,
    with_drain_timeout,
    with_drop_truncated,
    with_logger,
    with_max_concurrency,
    with_max_pending,
    with_transport,
)
from udpserve.server import Handler, Server, create_server
from udpserve.transport import (
    Address,
    Datagram,
    MemoryTransport,
    PacketTransport,
    UdpTransport,
    open_udp_transport,
)

__all__ = [
    # Server
    "Handler",
    "Server",
    "create_server",
    "HandlerGroup",
    # Transport
    "Address",
    "Datagram",
    "MemoryTransport",
    "PacketTransport",
    "UdpTransport",
    "open_udp_transport",
    # Codec
    "PROTOCOL_VERSION",
    "Decoder",
    "Message",
    "decode",
    "encode",
    # Configuration
    "ServerConfig",
    "ServerOption",
    "ServerOptions",
    "apply_options",
    "discover_config",
    "load_config",
    "with_buffer_size",
    "with_config",
    "with_decoder",
    "with_drain_timeout",
    "with_drop_truncated",
    "with_logger",
    "with_max_concurrency",
    "with_max_pending",
    "with_transport",
    # Errors
    "BindError",
    "DecodeError",
    "ReceiveError",
    "ServerStateError",
    "TransportClosedError",
    "UdpServeError",
]
