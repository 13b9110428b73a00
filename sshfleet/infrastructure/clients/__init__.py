"""
Client implementations for sshfleet.
"""

from .ssh import AgentCredentialSource, SSHSession, SSHSessionManager

__all__ = [
    "AgentCredentialSource",
    "SSHSession",
    "SSHSessionManager",
]
