"""Shared fixtures and test handlers for udpserve tests."""

from __future__ import annotations

import asyncio
import socket
from collections.abc import AsyncIterator, Iterator
from dataclasses import dataclass
from typing import Any

import pytest

from udpserve import MemoryTransport, PacketTransport, Server, create_server, with_transport
from udpserve.transport import Address


@dataclass(frozen=True)
class Call:
    transport: PacketTransport
    peer: Address
    message: Any


class RecordingHandler:
    """Handler that records every invocation."""

    def __init__(self) -> None:
        self.calls: list[Call] = []

    async def __call__(self, transport: PacketTransport, peer: Address, message: Any) -> None:
        self.calls.append(Call(transport, peer, message))

    @property
    def messages(self) -> list[Any]:
        return [c.message for c in self.calls]

    async def wait_for(self, count: int, timeout: float = 1.0) -> None:
        async def poll() -> None:
            while len(self.calls) < count:
                await asyncio.sleep(0.005)

        await asyncio.wait_for(poll(), timeout)


async def wait_until(predicate: Any, timeout: float = 1.0) -> None:
    async def poll() -> None:
        while not predicate():
            await asyncio.sleep(0.005)

    await asyncio.wait_for(poll(), timeout)


@pytest.fixture
def handler() -> RecordingHandler:
    return RecordingHandler()


@pytest.fixture
def memory_transport() -> MemoryTransport:
    return MemoryTransport(("127.0.0.1", 6767))


@pytest.fixture
async def memory_server(
    memory_transport: MemoryTransport, handler: RecordingHandler
) -> AsyncIterator[Server[Any]]:
    """A server on ``memory_transport`` with ``serve`` running in a task."""
    server = await create_server(("127.0.0.1", 0), handler, with_transport(memory_transport))
    task = asyncio.create_task(server.serve())
    await asyncio.sleep(0)
    yield server
    if not server.closed:
        await server.close(cancel_pending=True)
    await asyncio.wait_for(task, 1.0)


@pytest.fixture
def client() -> Iterator[socket.socket]:
    """Non-blocking UDP socket bound to an ephemeral localhost port."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_DGRAM)
    sock.bind(("127.0.0.1", 0))
    sock.setblocking(False)
    yield sock
    sock.close()
