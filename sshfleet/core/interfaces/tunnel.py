"""
Tunnel service interfaces for sshfleet.

This module defines the contracts shared by the tunnel runtime: the
credential source used for authentication, the per-host session that opens
forwarded channels, the tunnel state machine and the outcome type returned
by operations whose failure is decided on by the caller.
"""

from abc import ABC, abstractmethod
from dataclasses import dataclass
from enum import Enum
from typing import Any, Generic, List, Optional, Tuple, TypeVar


T = TypeVar("T")


class TunnelState(Enum):
    """Tunnel lifecycle states."""
    UNBOUND = "unbound"
    LISTENING = "listening"
    ACCEPTING = "accepting"
    STOPPED = "stopped"


@dataclass(frozen=True)
class Outcome(Generic[T]):
    """
    Result of an operation that may fail.

    Exactly one of ``value`` and ``error`` is set. Lower layers return an
    Outcome instead of terminating the process; the caller decides how
    fatal a failure is.
    """
    value: Optional[T] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: T) -> 'Outcome[T]':
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> 'Outcome[T]':
        return cls(error=error)


class ICredentialSource(ABC):
    """Interface for the signing keys offered during authentication."""

    @abstractmethod
    async def signers(self) -> List[Any]:
        """
        Return the key pairs to offer to the remote host.

        Called only when the remote host asks for public key authentication.
        """
        pass

    @abstractmethod
    def close(self) -> None:
        """Release the connection backing this source."""
        pass


class ISession(ABC):
    """
    Interface for an authenticated transport to one host.

    ``open_channel`` may be called concurrently by every tunnel of the host.
    """

    @property
    @abstractmethod
    def address(self) -> str:
        """Host address this session is connected to."""
        pass

    @abstractmethod
    async def open_channel(self, remote_address: str) -> Tuple[Any, Any]:
        """
        Open a forwarded channel to ``remote_address``.

        Returns:
            A (reader, writer) stream pair

        Raises:
            OSError or asyncssh.Error: If the channel cannot be opened
        """
        pass
