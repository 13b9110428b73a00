"""
Shared fixtures for the sshfleet test suite.

The tunnel runtime only depends on the ISession interface, so most tests
use LoopbackSession, which "opens channels" by dialing plain TCP servers on
the loopback interface instead of going through an SSH host.
"""

import asyncio
import socket
from typing import Any, Dict, List, Optional, Tuple

import pytest

from sshfleet.core.interfaces.tunnel import ICredentialSource, ISession, Outcome
from sshfleet.infrastructure.config.models import split_host_port


class LoopbackSession(ISession):
    """Session whose channels are direct TCP connections."""

    def __init__(
        self,
        address: str = "test-host:22",
        targets: Optional[Dict[str, Tuple[str, int]]] = None,
        fail_times: int = 0,
    ):
        self._address = address
        self._targets = targets or {}
        self.failures_left = fail_times
        self.calls: List[str] = []

    @property
    def address(self) -> str:
        return self._address

    async def open_channel(self, remote_address: str) -> Tuple[Any, Any]:
        self.calls.append(remote_address)
        if self.failures_left > 0:
            self.failures_left -= 1
            raise ConnectionRefusedError(f"channel open to {remote_address} refused")

        host, port = self._targets.get(remote_address) or split_host_port(remote_address)
        return await asyncio.open_connection(host, port)


class StaticCredentials(ICredentialSource):
    """Credential source with a fixed key list."""

    def __init__(self, keys: Optional[List[Any]] = None):
        self.keys = keys if keys is not None else []
        self.requests = 0
        self.closed = False

    async def signers(self) -> List[Any]:
        self.requests += 1
        return list(self.keys)

    def close(self) -> None:
        self.closed = True


class FakeSessionManager:
    """Session manager handing out LoopbackSessions, optionally failing some hosts."""

    def __init__(self, sessions: Dict[str, ISession], failing: Tuple[str, ...] = ()):
        self.sessions = sessions
        self.failing = failing
        self.connected: List[str] = []

    async def connect(self, host: Any) -> Outcome[ISession]:
        self.connected.append(host.address)
        if host.address in self.failing:
            return Outcome.failure(ConnectionRefusedError(f"{host.address} refused"))
        return Outcome.success(self.sessions[host.address])


def free_port() -> int:
    """Return a loopback port that is free right now."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


async def read_until_eof(reader: asyncio.StreamReader, timeout: float = 5.0) -> bytes:
    return await asyncio.wait_for(reader.read(), timeout)


@pytest.fixture
async def echo_server():
    """TCP server echoing everything back; yields its (host, port)."""

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        try:
            while True:
                data = await reader.read(4096)
                if not data:
                    break
                writer.write(data)
                await writer.drain()
        except ConnectionError:
            pass
        finally:
            writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    yield server.sockets[0].getsockname()[:2]
    server.close()


@pytest.fixture
async def connected_pair():
    """
    Factory for connected loopback stream pairs.

    Each call returns ((client_reader, client_writer), (server_reader, server_writer)).
    """
    servers = []
    writers = []

    async def make():
        loop = asyncio.get_running_loop()
        accepted = loop.create_future()

        async def on_connect(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
            accepted.set_result((reader, writer))

        server = await asyncio.start_server(on_connect, "127.0.0.1", 0)
        servers.append(server)
        port = server.sockets[0].getsockname()[1]

        client = await asyncio.open_connection("127.0.0.1", port)
        accepted_pair = await asyncio.wait_for(accepted, 5)
        writers.extend([client[1], accepted_pair[1]])
        return client, accepted_pair

    yield make

    for writer in writers:
        writer.close()
    for server in servers:
        server.close()


@pytest.fixture
def credentials() -> StaticCredentials:
    return StaticCredentials(keys=["key-1", "key-2"])
