"""
Core interfaces for sshfleet.

The tunnel runtime depends on these abstractions rather than on asyncssh
directly, so tunnels and relays can be driven by any session implementation.
"""

from .tunnel import ICredentialSource, ISession, Outcome, TunnelState

__all__ = [
    "ICredentialSource",
    "ISession",
    "Outcome",
    "TunnelState",
]
