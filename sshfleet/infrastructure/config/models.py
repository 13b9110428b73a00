"""
Configuration models and data structures.

This module defines the environment description (hosts and the endpoints
forwarded from each of them) together with the SSH and logging settings
used by the tunnel runtime.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple


DEFAULT_SSH_PORT = 22


def split_host_port(address: str, default_port: Optional[int] = None) -> Tuple[str, int]:
    """
    Split a ``host:port`` string.

    IPv6 hosts are written in brackets (``[::1]:8080``). The host part may be
    empty, which callers binding a listener treat as "all interfaces".

    Args:
        address: Address string
        default_port: Port to use when the address has none

    Returns:
        Tuple of (host, port)

    Raises:
        ValueError: If the address cannot be parsed
    """
    if not isinstance(address, str) or not address.strip():
        raise ValueError(f"Invalid address: {address!r}")

    address = address.strip()
    port_str: Optional[str] = None

    if address.startswith('['):
        end = address.find(']')
        if end == -1:
            raise ValueError(f"Invalid address: {address!r} (unclosed bracket)")
        host = address[1:end]
        rest = address[end + 1:]
        if rest:
            if not rest.startswith(':'):
                raise ValueError(f"Invalid address: {address!r}")
            port_str = rest[1:]
    elif address.count(':') == 1:
        host, port_str = address.split(':')
    elif ':' in address:
        raise ValueError(f"Invalid address: {address!r} (IPv6 hosts need brackets)")
    else:
        host = address

    if port_str is None:
        if default_port is None:
            raise ValueError(f"Invalid address: {address!r} (missing port)")
        return host, default_port

    try:
        port = int(port_str)
    except ValueError:
        raise ValueError(f"Invalid port in address {address!r}")

    if not (0 <= port <= 65535):
        raise ValueError(f"Port must be between 0 and 65535, got {port}")

    return host, port


@dataclass(frozen=True)
class EndpointConfig:
    """A remote service forwarded to a local address."""
    name: str
    local: str
    remote: str

    def __post_init__(self) -> None:
        split_host_port(self.local)
        remote_host, _ = split_host_port(self.remote)
        if not remote_host:
            raise ValueError(f"Endpoint {self.name!r}: remote address needs a host")

    def to_dict(self) -> Dict[str, Any]:
        return {"name": self.name, "local": self.local, "remote": self.remote}


@dataclass(frozen=True)
class HostConfig:
    """An SSH host and the endpoints reached through it."""
    address: str
    name: str = ""
    endpoints: Tuple[EndpointConfig, ...] = ()

    def __post_init__(self) -> None:
        host, _ = split_host_port(self.address, DEFAULT_SSH_PORT)
        if not host:
            raise ValueError(f"Host address needs a host name: {self.address!r}")
        if not self.name:
            object.__setattr__(self, "name", self.address)
        object.__setattr__(self, "endpoints", tuple(self.endpoints))

    @property
    def hostname(self) -> str:
        return split_host_port(self.address, DEFAULT_SSH_PORT)[0]

    @property
    def port(self) -> int:
        return split_host_port(self.address, DEFAULT_SSH_PORT)[1]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "address": self.address,
            "name": self.name,
            "endpoints": [endpoint.to_dict() for endpoint in self.endpoints],
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'HostConfig':
        """Create a host description from a dictionary."""
        if not isinstance(data, dict):
            raise ValueError(f"Host entry must be a mapping, got {type(data).__name__}")

        endpoints = []
        for entry in data.get('endpoints') or []:
            if not isinstance(entry, dict):
                raise ValueError(f"Endpoint entry must be a mapping, got {type(entry).__name__}")
            try:
                endpoints.append(EndpointConfig(
                    name=str(entry.get('name', '')),
                    local=entry['local'],
                    remote=entry['remote'],
                ))
            except KeyError as e:
                raise ValueError(f"Endpoint {entry.get('name', '?')!r} is missing {e}")

        if 'address' not in data:
            raise ValueError(f"Host {data.get('name', '?')!r} is missing 'address'")

        return cls(
            address=data['address'],
            name=data.get('name', ''),
            endpoints=tuple(endpoints),
        )


@dataclass
class SSHConfig:
    """SSH session settings shared by every host."""
    username: Optional[str] = None
    known_hosts_path: Optional[str] = None
    agent_path: Optional[str] = None
    connect_timeout: float = 30.0
    keepalive_interval: float = 0.0
    relay_buffer_size: int = 65536

    @property
    def verify_host_keys(self) -> bool:
        return self.known_hosts_path is not None


@dataclass
class LoggingConfig:
    """Logging configuration."""
    level: str = "INFO"
    format: str = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"
    log_directory: str = "logs"
    max_file_size: str = "10MB"
    backup_count: int = 5
    console_enabled: bool = True
    file_enabled: bool = False


@dataclass
class ApplicationConfig:
    """Main application configuration."""

    environment: str = ""
    hosts: List[HostConfig] = field(default_factory=list)

    ssh: SSHConfig = field(default_factory=SSHConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    config_file_path: Optional[str] = None

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        self._validate_ssh()
        self._validate_logging()

    def _validate_ssh(self) -> None:
        if self.ssh.connect_timeout <= 0:
            raise ValueError(
                f"SSH connect timeout must be positive, got {self.ssh.connect_timeout}")
        if self.ssh.keepalive_interval < 0:
            raise ValueError(
                f"SSH keepalive interval must not be negative, got {self.ssh.keepalive_interval}")
        if self.ssh.relay_buffer_size < 1:
            raise ValueError(
                f"Relay buffer size must be at least 1, got {self.ssh.relay_buffer_size}")

    def _validate_logging(self) -> None:
        valid_levels = ("TRACE", "DEBUG", "INFO", "SUCCESS", "WARNING", "ERROR", "CRITICAL")
        if self.logging.level.upper() not in valid_levels:
            raise ValueError(f"Invalid log level: {self.logging.level}")

    @property
    def endpoint_count(self) -> int:
        return sum(len(host.endpoints) for host in self.hosts)

    def to_dict(self) -> Dict[str, Any]:
        """Convert configuration to dictionary."""
        return {
            "environment": self.environment,
            "hosts": [host.to_dict() for host in self.hosts],
            "ssh": dict(self.ssh.__dict__),
            "logging": dict(self.logging.__dict__),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'ApplicationConfig':
        """Create configuration from dictionary."""
        if not isinstance(data, dict):
            raise ValueError(f"Configuration must be a mapping, got {type(data).__name__}")

        hosts_data = data.get('hosts') or []
        if not isinstance(hosts_data, list):
            raise ValueError("'hosts' must be a list")

        try:
            ssh_config = SSHConfig(**data.get('ssh', {}))
            logging_config = LoggingConfig(**data.get('logging', {}))
        except TypeError as e:
            raise ValueError(f"Invalid configuration section: {e}")

        return cls(
            environment=str(data.get('environment', '')),
            hosts=[HostConfig.from_dict(host) for host in hosts_data],
            ssh=ssh_config,
            logging=logging_config,
            config_file_path=data.get('config_file_path'),
        )
