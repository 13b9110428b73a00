"""
End-to-end tests for running environments.

These drive the orchestrator with loopback sessions in place of SSH hosts
and check the behaviour seen by local clients.
"""

import asyncio
from pathlib import Path
from typing import Any, Optional

import pytest

from conftest import FakeSessionManager, LoopbackSession, StaticCredentials, free_port, read_until_eof
from sshfleet.application.orchestrator import TunnelOrchestrator
from sshfleet.core.interfaces.tunnel import Outcome, TunnelState
from sshfleet.infrastructure.config.models import (
    ApplicationConfig,
    EndpointConfig,
    HostConfig,
    SSHConfig,
)


REMOTE = "10.0.0.5:22"


async def static_credentials(path: Optional[str]) -> Outcome[Any]:
    return Outcome.success(StaticCredentials(keys=["key"]))


def single_host_config(*endpoints: EndpointConfig) -> ApplicationConfig:
    return ApplicationConfig(
        environment="e2e",
        hosts=[HostConfig(address="bastion:22", name="bastion", endpoints=endpoints)],
        ssh=SSHConfig(username="deploy"),
    )


async def started(config: ApplicationConfig, session: LoopbackSession) -> TunnelOrchestrator:
    orchestrator = TunnelOrchestrator(
        config,
        credential_factory=static_credentials,
        session_manager_factory=lambda ssh, creds: FakeSessionManager({"bastion:22": session}),
    )
    await orchestrator.start()
    await asyncio.gather(*(tunnel.wait_bound() for tunnel in orchestrator.tunnels))
    return orchestrator


async def shutdown(orchestrator: TunnelOrchestrator) -> None:
    tasks = orchestrator.tunnel_tasks
    for tunnel in orchestrator.tunnels:
        tasks.extend(tunnel.relay_tasks)
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)


@pytest.fixture
async def silent_server():
    """TCP server that reads everything and never answers; yields (address, received)."""
    received = []
    finished = asyncio.Event()

    async def handle(reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        received.append(await reader.read())
        finished.set()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    yield server.sockets[0].getsockname()[:2], received, finished
    server.close()


class TestEndToEnd:
    """Test complete environments."""

    async def test_echo_through_tunnel(self, echo_server) -> None:
        """Test a client receives its bytes back from the remote echo service."""
        port = free_port()
        orchestrator = await started(
            single_host_config(EndpointConfig("echo", f"127.0.0.1:{port}", REMOTE)),
            LoopbackSession("bastion:22", targets={REMOTE: echo_server}),
        )
        try:
            reader, writer = await asyncio.open_connection("127.0.0.1", port)
            writer.write(b"ping")
            await writer.drain()

            assert await asyncio.wait_for(reader.readexactly(4), 5) == b"ping"
            writer.close()
        finally:
            await shutdown(orchestrator)

    async def test_shared_local_address(self, echo_server) -> None:
        """Test only one of two endpoints on the same local address binds."""
        port = free_port()
        orchestrator = await started(
            single_host_config(
                EndpointConfig("first", f"127.0.0.1:{port}", REMOTE),
                EndpointConfig("second", f"127.0.0.1:{port}", REMOTE),
            ),
            LoopbackSession("bastion:22", targets={REMOTE: echo_server}),
        )
        try:
            states = sorted(tunnel.state.value for tunnel in orchestrator.tunnels)
            assert states == [TunnelState.ACCEPTING.value, TunnelState.STOPPED.value]

            failed = next(t for t in orchestrator.tunnels if t.state == TunnelState.STOPPED)
            assert failed.bound_address is None
            assert failed.last_error

            reader, writer = await asyncio.open_connection("127.0.0.1", port)
            writer.write(b"ping")
            await writer.drain()
            assert await asyncio.wait_for(reader.readexactly(4), 5) == b"ping"
            writer.close()

            health = await orchestrator.health_check()
            assert health["tunnels_serving"] == 1
            assert health["healthy"] is False
        finally:
            await shutdown(orchestrator)

    async def test_missing_agent_socket(self, tmp_path: Path) -> None:
        """Test a missing agent socket exits before any host is contacted."""
        port = free_port()
        config = single_host_config(EndpointConfig("echo", f"127.0.0.1:{port}", REMOTE))
        config.ssh.agent_path = str(tmp_path / "missing-agent.sock")
        manager = FakeSessionManager({"bastion:22": LoopbackSession("bastion:22")})

        orchestrator = TunnelOrchestrator(
            config, session_manager_factory=lambda ssh, creds: manager)

        with pytest.raises(SystemExit) as exc_info:
            await orchestrator.start()

        assert exc_info.value.code == 1
        assert manager.connected == []
        assert orchestrator.tunnels == []
        with pytest.raises(OSError):
            await asyncio.open_connection("127.0.0.1", port)

    async def test_silent_remote_after_local_eof(self, silent_server) -> None:
        """Test the relay closes when the local side ends and the remote never answers."""
        address, received, finished = silent_server
        port = free_port()
        orchestrator = await started(
            single_host_config(EndpointConfig("sink", f"127.0.0.1:{port}", REMOTE)),
            LoopbackSession("bastion:22", targets={REMOTE: address}),
        )
        try:
            payload = b"x" * 1024
            reader, writer = await asyncio.open_connection("127.0.0.1", port)
            writer.write(payload)
            await writer.drain()
            writer.write_eof()

            assert await read_until_eof(reader) == b""
            await asyncio.wait_for(finished.wait(), 5)
            assert received == [payload]
            writer.close()

            tunnel = orchestrator.tunnels[0]
            for _ in range(100):
                if tunnel.active_relays == 0:
                    break
                await asyncio.sleep(0.05)
            assert tunnel.active_relays == 0
            assert tunnel.state == TunnelState.ACCEPTING
        finally:
            await shutdown(orchestrator)
