"""Default message codec.

A message travels as a msgpack array ``[version, xid, op, payload]``::

    >>> decode(encode(Message(op="PING", payload=b"hi", xid=7)))
    Message(op='PING', payload=b'hi', xid=7)

``Server`` only needs a ``Decoder``: any callable turning bytes into a
message and raising ``DecodeError`` on malformed input.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass

import msgpack

from udpserve.errors import DecodeError

type Decoder[M] = Callable[[bytes], M]

PROTOCOL_VERSION: int = 1


@dataclass(frozen=True)
class Message:
    """A decoded protocol message.

    Parameters
    ----------
    op : str
        Operation name, e.g. ``"PING"``.
    payload : bytes
        Opaque message body.
    xid : int
        Transaction id chosen by the client, echoed in replies.
    """

    op: str
    payload: bytes = b""
    xid: int = 0

    def summary(self) -> str:
        return f"{self.op} xid=0x{self.xid:08x} payload={len(self.payload)}B"

    def reply(self, op: str, payload: bytes = b"") -> Message:
        """Build a response carrying the same transaction id."""
        return Message(op=op, payload=payload, xid=self.xid)


def encode(msg: Message) -> bytes:
    return msgpack.packb(
        [PROTOCOL_VERSION, msg.xid, msg.op, msg.payload], use_bin_type=True
    )


def decode(data: bytes) -> Message:
    """Decode one datagram into a ``Message``.

    Raises
    ------
    DecodeError
        If *data* is not a complete msgpack array of the expected shape.
    """
    try:
        raw = msgpack.unpackb(data, raw=False)
    except (msgpack.UnpackException, ValueError, TypeError) as e:
        msg = f"invalid msgpack: {e}"
        raise DecodeError(msg) from e

    match raw:
        case [int(version), int(xid), str(op), bytes(payload)]:
            pass
        case _:
            msg = f"unexpected message shape: {type(raw).__name__}"
            raise DecodeError(msg)

    if version != PROTOCOL_VERSION:
        msg = f"unsupported protocol version {version}"
        raise DecodeError(msg)
    if not op:
        raise DecodeError("empty op")
    if not 0 <= xid <= 0xFFFFFFFF:
        msg = f"xid out of range: {xid}"
        raise DecodeError(msg)
    return Message(op=op, payload=payload, xid=xid)
