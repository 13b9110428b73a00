"""
SSH agent credential source.

Keys are never loaded from disk: every signature is produced by the
ssh-agent(1) process listening on ``$SSH_AUTH_SOCK``.
"""

import logging
import os
from typing import List, Optional

import asyncssh

from ....core.interfaces.tunnel import ICredentialSource, Outcome

logger = logging.getLogger(__name__)

AGENT_SOCKET_ENV = "SSH_AUTH_SOCK"


class AgentCredentialSource(ICredentialSource):
    """Credential source backed by a single ssh-agent connection."""

    def __init__(self, agent: asyncssh.SSHAgentClient, path: str):
        self._agent = agent
        self._path = path
        self._closed = False

    @property
    def path(self) -> str:
        return self._path

    @classmethod
    async def connect(cls, path: Optional[str] = None) -> Outcome['AgentCredentialSource']:
        """
        Connect to the agent socket.

        Args:
            path: Agent socket path, defaults to ``$SSH_AUTH_SOCK``

        Returns:
            Outcome holding the credential source, or the connection error
        """
        agent_path = path or os.environ.get(AGENT_SOCKET_ENV, "")
        if not agent_path:
            return Outcome.failure(
                OSError(f"{AGENT_SOCKET_ENV} is not set; an ssh-agent is required"))

        try:
            agent = await asyncssh.connect_agent(agent_path)
        except (OSError, asyncssh.Error) as e:
            return Outcome.failure(e)

        # older asyncssh releases report failure by returning None
        if agent is None:
            return Outcome.failure(OSError(f"Unable to connect to ssh-agent at {agent_path}"))

        logger.debug(f"Connected to ssh-agent at {agent_path}")
        return Outcome.success(cls(agent, agent_path))

    async def signers(self) -> List[asyncssh.SSHKeyPair]:
        """Fetch the identities currently held by the agent."""
        keys = await self._agent.get_keys()
        logger.debug(f"ssh-agent offered {len(keys)} key(s)")
        return list(keys)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._agent.close()
