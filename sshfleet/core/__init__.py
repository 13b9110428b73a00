"""
Core module for sshfleet.

Contains the interfaces the tunnel runtime is written against.
"""

from .interfaces import ICredentialSource, ISession, Outcome, TunnelState

__all__ = [
    "ICredentialSource",
    "ISession",
    "Outcome",
    "TunnelState",
]
