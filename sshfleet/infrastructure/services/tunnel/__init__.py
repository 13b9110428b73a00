"""
Tunnel services for sshfleet.

This module provides the per-endpoint tunnel and the relay it starts for
every accepted connection.
"""

from .forwarder import Tunnel
from .relay import Relay, StreamPair

__all__ = [
    "Tunnel",
    "Relay",
    "StreamPair",
]
