from __future__ import annotations

import msgpack
import pytest

from udpserve.codec import PROTOCOL_VERSION, Message, decode, encode
from udpserve.errors import DecodeError


class TestDecode:
    def test_decodes_encoded_message(self) -> None:
        msg = Message(op="PING", payload=b"hello", xid=0xDEADBEEF)
        assert decode(encode(msg)) == msg

    def test_rejects_invalid_bytes(self) -> None:
        with pytest.raises(DecodeError):
            decode(b"\xff\xff")

    def test_rejects_empty_datagram(self) -> None:
        with pytest.raises(DecodeError):
            decode(b"")

    def test_rejects_truncated_message(self) -> None:
        data = encode(Message(op="PING", payload=b"x" * 64))
        with pytest.raises(DecodeError):
            decode(data[:10])

    def test_rejects_unknown_version(self) -> None:
        data = msgpack.packb([PROTOCOL_VERSION + 1, 0, "PING", b""], use_bin_type=True)
        with pytest.raises(DecodeError, match="version"):
            decode(data)

    def test_rejects_map(self) -> None:
        data = msgpack.packb({"op": "PING"}, use_bin_type=True)
        with pytest.raises(DecodeError, match="shape"):
            decode(data)

    def test_rejects_str_payload(self) -> None:
        data = msgpack.packb([PROTOCOL_VERSION, 0, "PING", "text"], use_bin_type=True)
        with pytest.raises(DecodeError):
            decode(data)

    def test_rejects_empty_op(self) -> None:
        data = msgpack.packb([PROTOCOL_VERSION, 0, "", b""], use_bin_type=True)
        with pytest.raises(DecodeError, match="empty op"):
            decode(data)

    def test_rejects_negative_xid(self) -> None:
        data = msgpack.packb([PROTOCOL_VERSION, -1, "PING", b""], use_bin_type=True)
        with pytest.raises(DecodeError, match="xid"):
            decode(data)

    def test_decode_error_chains_msgpack_error(self) -> None:
        with pytest.raises(DecodeError) as exc_info:
            decode(b"\xc1")
        assert exc_info.value.__cause__ is not None


class TestMessage:
    def test_defaults(self) -> None:
        msg = Message(op="PING")
        assert msg.payload == b""
        assert msg.xid == 0

    def test_reply_keeps_xid(self) -> None:
        reply = Message(op="PING", payload=b"a", xid=42).reply("PONG", b"b")
        assert reply == Message(op="PONG", payload=b"b", xid=42)

    def test_summary(self) -> None:
        assert Message(op="PING", payload=b"abc", xid=1).summary() == (
            "PING xid=0x00000001 payload=3B"
        )

    def test_frozen(self) -> None:
        msg = Message(op="PING")
        with pytest.raises(AttributeError):
            msg.op = "PONG"  # type: ignore[misc]
