"""
Infrastructure services for sshfleet.
"""

from .tunnel import Relay, StreamPair, Tunnel

__all__ = [
    "Relay",
    "StreamPair",
    "Tunnel",
]
