"""
Application layer for sshfleet.

Wires configuration, credentials, sessions and tunnels together.
"""

from .orchestrator import TunnelOrchestrator, run_tunnels

__all__ = [
    "TunnelOrchestrator",
    "run_tunnels",
]
