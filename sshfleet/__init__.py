"""
sshfleet - forward remote services from many SSH hosts to local ports.

For every host of an environment a single SSH session is opened with keys
from the ssh-agent; every endpoint of that host then gets a local listener
whose connections are relayed through the session to the remote service.
"""

__version__ = "0.1.0"

from .core.interfaces.tunnel import ICredentialSource, ISession, Outcome, TunnelState
from .infrastructure.config.models import ApplicationConfig, EndpointConfig, HostConfig
from .application.orchestrator import TunnelOrchestrator

__all__ = [
    "ICredentialSource",
    "ISession",
    "Outcome",
    "TunnelState",
    "ApplicationConfig",
    "EndpointConfig",
    "HostConfig",
    "TunnelOrchestrator",
]
