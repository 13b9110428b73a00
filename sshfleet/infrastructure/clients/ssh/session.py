"""
SSH session management for sshfleet.

One :class:`SSHSession` is opened per configured host. It authenticates with
keys from the agent only and exposes ``open_channel`` for the tunnels of
that host.
"""

import logging
from typing import Any, Dict, List, Optional, Tuple

import asyncssh

from ....core.interfaces.tunnel import ICredentialSource, ISession, Outcome
from ...config.models import HostConfig, SSHConfig, split_host_port

logger = logging.getLogger(__name__)


class AgentAuthClient(asyncssh.SSHClient):
    """
    asyncssh client that asks the credential source for keys only when the
    server requests public key authentication.
    """

    def __init__(self, credentials: ICredentialSource, host_label: str):
        self._credentials = credentials
        self._host_label = host_label
        self._offered = False

    async def public_key_auth_requested(self) -> Optional[List[Any]]:
        # all agent keys are handed over at once; a second call means none worked
        if self._offered:
            return None
        self._offered = True

        keys = await self._credentials.signers()
        if not keys:
            logger.warning(f"ssh-agent has no keys to offer to {self._host_label}")
            return None
        return keys

    def auth_completed(self) -> None:
        logger.debug(f"Authenticated to {self._host_label}")


class SSHSession(ISession):
    """Authenticated SSH connection to a single host."""

    def __init__(self, host: HostConfig, connection: asyncssh.SSHClientConnection):
        self._host = host
        self._connection = connection

    @property
    def address(self) -> str:
        return self._host.address

    @property
    def name(self) -> str:
        return self._host.name

    @property
    def connection(self) -> asyncssh.SSHClientConnection:
        return self._connection

    def is_connected(self) -> bool:
        return not self._connection.is_closed()

    async def open_channel(
        self, remote_address: str
    ) -> Tuple[asyncssh.SSHReader, asyncssh.SSHWriter]:
        """Open a direct-tcpip channel to ``remote_address`` through this host."""
        dest_host, dest_port = split_host_port(remote_address)
        return await self._connection.open_connection(dest_host, dest_port)

    def __repr__(self) -> str:
        return f"SSHSession({self._host.name} <{self._host.address}>)"


class SSHSessionManager:
    """
    Opens SSH sessions to configured hosts.

    Host key verification only happens when ``known_hosts_path`` is set in
    the SSH configuration; otherwise any host key is accepted.
    """

    def __init__(self, config: SSHConfig, credentials: ICredentialSource):
        if not config.username:
            raise ValueError("Username is required for SSH sessions")

        self._config = config
        self._credentials = credentials

    async def connect(self, host: HostConfig) -> Outcome[SSHSession]:
        """
        Open and authenticate a session to ``host``.

        Returns:
            Outcome holding the session, or the error that prevented it
        """
        if not self._config.verify_host_keys:
            logger.warning(
                f"Host key verification is disabled for {host.name} <{host.address}>")

        try:
            connection = await asyncssh.connect(**self.to_asyncssh_kwargs(host))
        except (OSError, asyncssh.Error) as e:
            return Outcome.failure(e)

        return Outcome.success(SSHSession(host, connection))

    def to_asyncssh_kwargs(self, host: HostConfig) -> Dict[str, Any]:
        """Convert the SSH configuration to asyncssh connection kwargs."""
        label = f"{host.name} <{host.address}>"
        credentials = self._credentials

        kwargs: Dict[str, Any] = {
            'host': host.hostname,
            'port': host.port,
            'username': self._config.username,
            'client_factory': lambda: AgentAuthClient(credentials, label),
            'connect_timeout': self._config.connect_timeout,
            # agent keys only, supplied by AgentAuthClient
            'client_keys': None,
            'agent_path': None,
            'public_key_auth': True,
            'password_auth': False,
            'kbdint_auth': False,
            'known_hosts': self._config.known_hosts_path,
        }

        if self._config.keepalive_interval:
            kwargs['keepalive_interval'] = self._config.keepalive_interval

        return kwargs
