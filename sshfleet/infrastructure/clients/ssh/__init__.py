"""
SSH client components.

This module provides the agent-backed credential source and the per-host
SSH session manager.
"""

from .agent import AgentCredentialSource, AGENT_SOCKET_ENV
from .session import AgentAuthClient, SSHSession, SSHSessionManager

__all__ = [
    "AgentCredentialSource",
    "AGENT_SOCKET_ENV",
    "AgentAuthClient",
    "SSHSession",
    "SSHSessionManager",
]
