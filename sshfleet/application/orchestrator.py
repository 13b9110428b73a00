"""
Tunnel orchestration for sshfleet.

The orchestrator turns an environment description into running tunnels:
it connects to the ssh-agent, opens one SSH session per host in order, then
starts one tunnel per endpoint and keeps the process alive. It is the only
component that terminates the process; every lower layer reports failures
through :class:`~sshfleet.core.interfaces.tunnel.Outcome`.
"""

import asyncio
import logging
import sys
from typing import Any, Awaitable, Callable, Dict, List, Optional, Tuple

from ..core.interfaces.tunnel import ICredentialSource, ISession, Outcome, TunnelState
from ..infrastructure.clients.ssh.agent import AgentCredentialSource
from ..infrastructure.clients.ssh.session import SSHSessionManager
from ..infrastructure.config.models import ApplicationConfig, HostConfig, SSHConfig
from ..infrastructure.services.tunnel.forwarder import Tunnel

logger = logging.getLogger(__name__)

CredentialFactory = Callable[[Optional[str]], Awaitable[Outcome[Any]]]
SessionManagerFactory = Callable[[SSHConfig, ICredentialSource], Any]


class TunnelOrchestrator:
    """
    Starts sessions and tunnels for every configured host.

    Args:
        config: Loaded application configuration
        credential_factory: Coroutine returning an Outcome with the
            credential source, given the agent socket path
        session_manager_factory: Builds the session manager from the SSH
            configuration and the credential source
    """

    def __init__(
        self,
        config: ApplicationConfig,
        credential_factory: CredentialFactory = AgentCredentialSource.connect,
        session_manager_factory: SessionManagerFactory = SSHSessionManager,
    ):
        self._config = config
        self._credential_factory = credential_factory
        self._session_manager_factory = session_manager_factory

        self._credentials: Optional[ICredentialSource] = None
        self._sessions: List[Tuple[HostConfig, ISession]] = []
        self._tunnels: List[Tunnel] = []
        self._tunnel_tasks: List[asyncio.Task] = []
        self._stopped = asyncio.Event()

    @property
    def sessions(self) -> List[ISession]:
        """One session per host entry, in configuration order."""
        return [session for _, session in self._sessions]

    @property
    def tunnels(self) -> List[Tunnel]:
        return list(self._tunnels)

    @property
    def tunnel_tasks(self) -> List[asyncio.Task]:
        return list(self._tunnel_tasks)

    async def run(self) -> None:
        """Start every tunnel, then block until the process is terminated."""
        await self.start()
        await self._stopped.wait()

    async def start(self) -> None:
        """
        Connect to the agent, open sessions in order and launch tunnels.

        Raises:
            SystemExit: If the agent or any host cannot be reached
        """
        environment = self._config.environment or "<unnamed>"
        logger.info(f"Initiating tunnels for {environment}")

        credentials = await self._credential_factory(self._config.ssh.agent_path)
        if not credentials.ok:
            self._abort(f"Failed to open ssh-agent socket: {credentials.error}")
        self._credentials = credentials.value

        if not self._config.ssh.verify_host_keys:
            logger.warning(
                "Remote host identities are NOT verified; pass a known_hosts file to enable checking")

        try:
            manager = self._session_manager_factory(self._config.ssh, self._credentials)
        except ValueError as e:
            self._abort(f"Invalid SSH configuration: {e}")

        for host in self._config.hosts:
            session = await self._connect_host(manager, host)
            self._sessions.append((host, session))

        for host, session in self._sessions:
            for endpoint in host.endpoints:
                tunnel = Tunnel(
                    host.name,
                    endpoint,
                    session,
                    relay_buffer_size=self._config.ssh.relay_buffer_size,
                )
                self._tunnels.append(tunnel)
                task = asyncio.create_task(tunnel.serve(), name=f"tunnel {tunnel.name}")
                task.add_done_callback(self._tunnel_finished)
                self._tunnel_tasks.append(task)

        logger.info(
            f"Started {len(self._tunnels)} tunnel(s) across {len(self._sessions)} host(s)")

    async def _connect_host(self, manager: Any, host: HostConfig) -> ISession:
        logger.info(f"Connecting to {host.name} <{host.address}>")

        outcome = await manager.connect(host)
        if not outcome.ok:
            self._abort(f"Failed to connect to {host.name} <{host.address}>: {outcome.error}")

        logger.info(f"Connected to {host.name} <{host.address}>")
        return outcome.value

    def _tunnel_finished(self, task: asyncio.Task) -> None:
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"{task.get_name()} failed: {error!r}")

    def _abort(self, message: str) -> None:
        logger.critical(message)
        sys.exit(1)

    async def health_check(self) -> Dict[str, Any]:
        """Report the state of every session and tunnel."""
        tunnels = [tunnel.get_info() for tunnel in self._tunnels]
        serving = sum(1 for tunnel in self._tunnels if tunnel.state != TunnelState.STOPPED
                      and tunnel.bound_address is not None)

        return {
            "healthy": bool(self._tunnels) and serving == len(self._tunnels),
            "environment": self._config.environment,
            "sessions": [host.name for host, _ in self._sessions],
            "tunnels_total": len(self._tunnels),
            "tunnels_serving": serving,
            "active_relays": sum(tunnel.active_relays for tunnel in self._tunnels),
            "tunnels": tunnels,
        }


async def run_tunnels(config: ApplicationConfig) -> None:
    """Run the orchestrator for ``config`` until the process is terminated."""
    orchestrator = TunnelOrchestrator(config)
    await orchestrator.run()
