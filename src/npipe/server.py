"""Server side of a named pipe: create, accept one peer, expose it as a channel.

A :class:`ServerHandle` services exactly one connection::

    CREATED --accept_one ok--> CONNECTED --close--> CLOSED
    CREATED --accept_one fails--> CLOSED
    CREATED --close--> CLOSED

A multi-client server runs one handle per connection.
"""

from __future__ import annotations

import enum
import logging
from collections.abc import Iterator
from contextlib import contextmanager
from dataclasses import dataclass, field
from types import TracebackType
from typing import Any

from npipe._platform import PipeBackend, default_backend
from npipe.channel import PipeChannel
from npipe.config import DEFAULT_BUFFER_SIZE
from npipe.endpoint import AccessMode, Endpoint, PipeMode
from npipe.errors import ConnectFailed, CreateFailed

log = logging.getLogger(__name__)


class ServerState(enum.Enum):
    CREATED = "created"
    CONNECTED = "connected"
    CLOSED = "closed"


class Session:
    """A connected server endpoint with its transfer buffer and byte counter."""

    def __init__(self, channel: PipeChannel, buffer_size: int) -> None:
        self.channel = channel
        self.buffer_size = buffer_size
        self.buffer = bytearray(buffer_size)
        self.bytes_transferred = 0

    @property
    def closed(self) -> bool:
        return self.channel.closed

    def count(self, n: int) -> None:
        self.bytes_transferred += n

    def close(self) -> None:
        self.channel.close()

    def __enter__(self) -> Session:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()


@dataclass
class ServerHandle:
    endpoint: Endpoint
    access: AccessMode
    mode: PipeMode
    buffer_size: int
    listener: Any = field(repr=False)
    state: ServerState = ServerState.CREATED
    session: Session | None = field(default=None, repr=False)


class PipeServer:
    def __init__(self, backend: PipeBackend | None = None) -> None:
        self.backend = backend if backend is not None else default_backend()

    def create(
        self,
        endpoint: Endpoint,
        access: AccessMode = AccessMode.DUPLEX,
        pipe_mode: PipeMode = PipeMode.BYTE,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> ServerHandle:
        """Create *endpoint* with the requested capabilities.

        Raises:
            CreateFailed: Malformed or remote name, name already owned, or an
                unsupported mode combination.
        """
        if not endpoint.is_local:
            raise CreateFailed(f"cannot create {endpoint}: pipes can only be hosted locally")
        if buffer_size < 1:
            raise CreateFailed(f"cannot create {endpoint}: buffer size must be >= 1")
        try:
            listener = self.backend.create(endpoint, access, pipe_mode, buffer_size)
        except OSError as exc:
            raise CreateFailed.from_os_error(f"cannot create {endpoint}", exc) from exc
        log.debug(
            "created %s (%s, mode %#x, buffer %d)", endpoint, access.name.lower(), pipe_mode, buffer_size
        )
        return ServerHandle(
            endpoint=endpoint,
            access=access,
            mode=pipe_mode,
            buffer_size=buffer_size,
            listener=listener,
        )

    def accept_one(self, handle: ServerHandle) -> Session:
        """Block until one peer connects and return its session.

        A peer that connects and leaves at once still yields a session; its
        channel simply reports end-of-stream.

        Raises:
            ConnectFailed: The handle was already used or closed, or the OS
                connect failed. On OS failure the handle is closed.
        """
        if handle.state is not ServerState.CREATED:
            raise ConnectFailed(f"{handle.endpoint}: server handle is {handle.state.value}, cannot accept")
        try:
            conn = self.backend.accept(handle.listener)
        except OSError as exc:
            self._release(handle)
            raise ConnectFailed.from_os_error(f"accept on {handle.endpoint} failed", exc) from exc
        channel = PipeChannel(
            self.backend,
            conn,
            handle.access,
            endpoint=handle.endpoint,
            release=self.backend.disconnect,
        )
        session = Session(channel, handle.buffer_size)
        handle.session = session
        handle.state = ServerState.CONNECTED
        log.debug("peer connected to %s", handle.endpoint)
        return session

    def close(self, handle: ServerHandle | None) -> None:
        """Disconnect any connected peer, then release the endpoint.

        Safe to call with ``None`` (create failed) and on a closed handle.
        """
        if handle is None or handle.state is ServerState.CLOSED:
            return
        if handle.session is not None:
            handle.session.close()
        self._release(handle)
        log.debug("closed %s", handle.endpoint)

    def _release(self, handle: ServerHandle) -> None:
        handle.state = ServerState.CLOSED
        self.backend.close(handle.listener)

    @contextmanager
    def listen(
        self,
        endpoint: Endpoint,
        access: AccessMode = AccessMode.DUPLEX,
        pipe_mode: PipeMode = PipeMode.BYTE,
        buffer_size: int = DEFAULT_BUFFER_SIZE,
    ) -> Iterator[ServerHandle]:
        """Create *endpoint* and close it on exit, whatever happens inside."""
        handle = self.create(endpoint, access, pipe_mode, buffer_size)
        try:
            yield handle
        finally:
            self.close(handle)
