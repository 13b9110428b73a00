"""
Per-endpoint tunnel for sshfleet.

A :class:`Tunnel` binds one local listener for an endpoint and accepts
connections on it. Each accepted connection gets a channel on the host's
session and a :class:`Relay` of its own. Failures are contained: a bind or
accept error stops only this tunnel, and a channel open error drops only the
connection that triggered it.
"""

import asyncio
import logging
import socket
import sys
from typing import Any, Dict, Optional, Set, Tuple

import asyncssh

from ....core.interfaces.tunnel import ISession, TunnelState
from ...config.models import EndpointConfig, split_host_port
from .relay import DEFAULT_BUFFER_SIZE, Relay, StreamPair

logger = logging.getLogger(__name__)

LISTEN_BACKLOG = 128


class Tunnel:
    """Forwards one local address to one remote address through a session."""

    def __init__(
        self,
        host_name: str,
        endpoint: EndpointConfig,
        session: ISession,
        relay_buffer_size: int = DEFAULT_BUFFER_SIZE,
    ):
        self._host_name = host_name
        self._endpoint = endpoint
        self._session = session
        self._relay_buffer_size = relay_buffer_size

        self._state = TunnelState.UNBOUND
        self._listener: Optional[socket.socket] = None
        self._bound_address: Optional[Tuple[str, int]] = None
        self._bind_attempted = asyncio.Event()
        self._relay_tasks: Set[asyncio.Task] = set()
        self._connection_ids = 0

        self.accepted = 0
        self.channel_failures = 0
        self.last_error: Optional[str] = None

    @property
    def name(self) -> str:
        return f"{self._host_name}/{self._endpoint.name}"

    @property
    def endpoint(self) -> EndpointConfig:
        return self._endpoint

    @property
    def session(self) -> ISession:
        return self._session

    @property
    def state(self) -> TunnelState:
        return self._state

    @property
    def bound_address(self) -> Optional[Tuple[str, int]]:
        """Address the listener is bound to, once bound."""
        return self._bound_address

    @property
    def active_relays(self) -> int:
        return len(self._relay_tasks)

    @property
    def relay_tasks(self) -> Set[asyncio.Task]:
        return set(self._relay_tasks)

    async def wait_bound(self) -> bool:
        """Wait until the bind attempt has finished; True if it succeeded."""
        await self._bind_attempted.wait()
        return self._bound_address is not None

    def get_info(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "local": self._endpoint.local,
            "remote": self._endpoint.remote,
            "state": self._state.value,
            "bound_address": self._bound_address,
            "accepted": self.accepted,
            "channel_failures": self.channel_failures,
            "active_relays": self.active_relays,
            "last_error": self.last_error,
        }

    async def serve(self) -> None:
        """Bind the listener and accept connections until an accept error."""
        logger.info(
            f"Forwarding {self.name} from <{self._endpoint.remote}> to <{self._endpoint.local}>")

        try:
            self._listener = await self._bind()
        except (OSError, ValueError) as e:
            # ValueError covers UnicodeError from idna encoding of bad host names
            self.last_error = str(e)
            self._state = TunnelState.STOPPED
            logger.error(f"{self.name}: forwarding port bind error: {e}")
            return
        finally:
            self._bind_attempted.set()

        try:
            await self._accept_loop(self._listener)
        finally:
            self._listener.close()
            self._state = TunnelState.STOPPED

    async def _bind(self) -> socket.socket:
        host, port = split_host_port(self._endpoint.local)
        loop = asyncio.get_running_loop()

        infos = await loop.getaddrinfo(
            host or None, port,
            type=socket.SOCK_STREAM,
            flags=socket.AI_PASSIVE,
        )
        if not infos:
            raise OSError(f"Cannot resolve local address {self._endpoint.local}")

        family, sock_type, proto, _, sockaddr = infos[0]
        sock = socket.socket(family, sock_type, proto)
        try:
            if sys.platform != "win32":
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(sockaddr)
            sock.listen(LISTEN_BACKLOG)
            sock.setblocking(False)
        except OSError:
            sock.close()
            raise

        self._bound_address = sock.getsockname()[:2]
        self._state = TunnelState.LISTENING
        logger.debug(f"{self.name}: listening on {self._bound_address[0]}:{self._bound_address[1]}")
        return sock

    async def _accept(self, listener: socket.socket) -> Tuple[socket.socket, Any]:
        loop = asyncio.get_running_loop()
        return await loop.sock_accept(listener)

    async def _accept_loop(self, listener: socket.socket) -> None:
        self._state = TunnelState.ACCEPTING

        while True:
            try:
                conn, peer = await self._accept(listener)
            except OSError as e:
                self.last_error = str(e)
                logger.error(f"{self.name}: local accept error: {e}")
                return

            self.accepted += 1
            await self._handle_connection(conn, peer)

    async def _handle_connection(self, conn: socket.socket, peer: Any) -> None:
        try:
            channel_reader, channel_writer = await self._session.open_channel(
                self._endpoint.remote)
        except (OSError, asyncssh.Error) as e:
            self.channel_failures += 1
            self.last_error = str(e)
            logger.warning(f"{self.name}: remote dial error for {self._endpoint.remote}: {e}")
            conn.close()
            return

        channel = StreamPair(channel_reader, channel_writer, f"{self.name} channel")

        try:
            local_reader, local_writer = await asyncio.open_connection(sock=conn)
        except OSError as e:
            logger.warning(f"{self.name}: cannot use accepted connection from {peer}: {e}")
            conn.close()
            channel.close()
            return

        self._connection_ids += 1
        relay = Relay(
            StreamPair(local_reader, local_writer, f"{self.name} local {peer}"),
            channel,
            name=f"{self.name}#{self._connection_ids}",
            buffer_size=self._relay_buffer_size,
        )
        self._spawn_relay(relay)

    def _spawn_relay(self, relay: Relay) -> asyncio.Task:
        task = asyncio.create_task(relay.run(), name=f"relay {relay.name}")
        self._relay_tasks.add(task)
        task.add_done_callback(self._relay_finished)
        return task

    def _relay_finished(self, task: asyncio.Task) -> None:
        self._relay_tasks.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is not None:
            logger.error(f"{self.name}: relay {task.get_name()} failed: {error}")
