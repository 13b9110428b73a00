"""
Bidirectional byte relay between a local connection and a forwarded channel.

The relay is protocol agnostic: bytes are copied verbatim in both directions
until either side reaches end of stream or fails, at which point both ends
are closed together.
"""

import asyncio
import logging
from typing import Any, Dict, List, Optional

import asyncssh

logger = logging.getLogger(__name__)

DEFAULT_BUFFER_SIZE = 65536
DEFAULT_CLOSE_GRACE = 5.0


class StreamPair:
    """
    One end of a relay: a reader and writer with a one-shot close.

    ``close`` may be called from both copy directions; only the first call
    reaches the underlying writer.
    """

    def __init__(self, reader: Any, writer: Any, label: str):
        self._reader = reader
        self._writer = writer
        self._label = label
        self._closed = False

    @property
    def label(self) -> str:
        return self._label

    @property
    def closed(self) -> bool:
        return self._closed

    async def read(self, size: int) -> bytes:
        return await self._reader.read(size)

    async def write(self, data: bytes) -> None:
        self._writer.write(data)
        await self._writer.drain()

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True

        try:
            self._writer.close()
        except (OSError, RuntimeError, asyncssh.Error) as e:
            logger.debug(f"Error closing {self._label}: {e}")


class Relay:
    """Copies bytes in both directions between two stream pairs."""

    def __init__(
        self,
        local: StreamPair,
        remote: StreamPair,
        name: str,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        close_grace: float = DEFAULT_CLOSE_GRACE,
    ):
        self._local = local
        self._remote = remote
        self._name = name
        self._buffer_size = buffer_size
        self._close_grace = close_grace
        self._tasks: List[asyncio.Task] = []
        self._bytes: Dict[str, int] = {"local->remote": 0, "remote->local": 0}
        self._errors: Dict[str, Optional[BaseException]] = {}

    @property
    def name(self) -> str:
        return self._name

    @property
    def bytes_transferred(self) -> Dict[str, int]:
        return dict(self._bytes)

    @property
    def errors(self) -> Dict[str, Optional[BaseException]]:
        return dict(self._errors)

    @property
    def closed(self) -> bool:
        return self._local.closed and self._remote.closed

    def close(self) -> None:
        """Close both ends. Safe to call any number of times."""
        self._local.close()
        self._remote.close()

    async def run(self) -> None:
        """Relay until either direction finishes, then close both ends."""
        self._tasks = [
            asyncio.create_task(self._copy(self._local, self._remote, "local->remote")),
            asyncio.create_task(self._copy(self._remote, self._local, "remote->local")),
        ]

        try:
            _, pending = await asyncio.wait(self._tasks, return_when=asyncio.FIRST_COMPLETED)
            self.close()

            if pending:
                _, pending = await asyncio.wait(pending, timeout=self._close_grace)
            for task in pending:
                task.cancel()
            if pending:
                await asyncio.gather(*pending, return_exceptions=True)
        finally:
            for task in self._tasks:
                if not task.done():
                    task.cancel()
            self.close()

        logger.debug(
            f"Relay {self._name} finished "
            f"(local->remote {self._bytes['local->remote']} bytes, "
            f"remote->local {self._bytes['remote->local']} bytes)"
        )

    async def _copy(self, src: StreamPair, dst: StreamPair, direction: str) -> None:
        try:
            while True:
                data = await src.read(self._buffer_size)
                if not data:
                    break
                await dst.write(data)
                self._bytes[direction] += len(data)
            self._errors[direction] = None
        except (OSError, asyncssh.Error, asyncio.IncompleteReadError) as e:
            self._errors[direction] = e
            # a direction failing after the other side already closed is expected
            if not (src.closed or dst.closed):
                logger.warning(f"copy <{direction}> error on {self._name}: {e}")
        finally:
            self.close()
