"""Session flows composed from the client, server and relay.

- :meth:`SessionDriver.transact`: one request/response call.
- :meth:`SessionDriver.serve`: host a pipe, accept one peer and relay
  between the chosen input and output until the input ends.
- :meth:`SessionDriver.send`: connect to a pipe as a stream, relay a file
  into it, then relay the reply out.

Each flow returns an :class:`Outcome` instead of raising; every handle and
file opened along the way is released before it returns.
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from contextlib import ExitStack
from dataclasses import dataclass
from pathlib import Path

from npipe._platform import PipeBackend, default_backend
from npipe.channel import BufferChannel, ByteChannel, FileChannel
from npipe.client import PipeClient
from npipe.config import Settings
from npipe.endpoint import AccessMode, Endpoint, PipeMode
from npipe.errors import InvalidArgument, PipeError
from npipe.relay import relay
from npipe.server import PipeServer, ServerHandle

log = logging.getLogger(__name__)

PIPE = "-"
"""Input/output selector meaning "the pipe itself"."""

Target = str | Path | ByteChannel | None


@dataclass(frozen=True)
class Outcome:
    ok: bool
    cause: str
    bytes_transferred: int = 0
    data: bytes = b""
    error: PipeError | None = None
    # The reply filled the whole buffer, so more may have been dropped.
    truncated: bool = False

    @property
    def kind(self) -> str:
        return "ok" if self.error is None else self.error.kind

    def exit_code(self, *, legacy: bool = False) -> int:
        """Process exit status; *legacy* inverts to 1 on success, 0 on failure."""
        if legacy:
            return 1 if self.ok else 0
        if self.ok:
            return 0
        return self.error.exit_code if self.error is not None else 1

    @classmethod
    def failed(cls, exc: PipeError, transferred: int = 0) -> Outcome:
        return cls(ok=False, cause=str(exc), bytes_transferred=transferred, error=exc)


def _open_source(stack: ExitStack, source: Target) -> ByteChannel | None:
    if source is None or source == PIPE:
        return None
    if isinstance(source, ByteChannel):
        return stack.enter_context(source)
    return stack.enter_context(FileChannel.open_read(source))


def _open_sink(stack: ExitStack, sink: Target) -> ByteChannel | None:
    if sink is None or sink == PIPE:
        return None
    if isinstance(sink, ByteChannel):
        return stack.enter_context(sink)
    return stack.enter_context(FileChannel.open_write(sink))


class SessionDriver:
    def __init__(self, backend: PipeBackend | None = None, settings: Settings | None = None) -> None:
        self.settings = settings if settings is not None else Settings()
        self.backend = backend if backend is not None else default_backend(self.settings.pipe_dir)
        self.client = PipeClient(self.backend)
        self.server = PipeServer(self.backend)

    def transact(self, target: Endpoint, *, source: Target = None, sink: Target = None) -> Outcome:
        """Send *source* (or nothing) to *target* and write the reply to *sink*.

        With no *sink* the reply is only returned in ``Outcome.data``.
        """
        buffer_size = self.settings.buffer_size
        try:
            with ExitStack() as stack:
                src = _open_source(stack, source)
                dst = _open_sink(stack, sink)
                request = b""
                if src is not None:
                    collected = BufferChannel()
                    relay(src, collected, bytearray(buffer_size), strict=True)
                    request = collected.getvalue()
                response = self.client.call(target, request, buffer_size, self.settings.timeout)
                truncated = len(response) >= buffer_size
                if truncated:
                    log.warning(
                        "reply from %s filled the %d-byte buffer and may be truncated", target, buffer_size
                    )
                written = len(response)
                if dst is not None and response:
                    written = relay(BufferChannel(response), dst, bytearray(len(response)))
        except PipeError as exc:
            log.debug("transaction with %s failed: %s", target, exc)
            return Outcome.failed(exc)
        cause = f"sent {len(request)} bytes, received {len(response)} bytes"
        if truncated:
            cause += " (reply may be truncated)"
        return Outcome(ok=True, cause=cause, bytes_transferred=written, data=response, truncated=truncated)

    def serve(
        self,
        endpoint: Endpoint,
        *,
        source: Target = PIPE,
        sink: Target = PIPE,
        access: AccessMode = AccessMode.DUPLEX,
        pipe_mode: PipeMode = PipeMode.BYTE,
        strict: bool = False,
        on_listening: Callable[[ServerHandle], None] | None = None,
    ) -> Outcome:
        """Host *endpoint*, accept one peer and relay *source* into *sink*.

        *source*/*sink* default to :data:`PIPE`, which reads from or writes
        to the connected peer; the default therefore echoes the peer's bytes
        back to it. The relay runs until *source* reaches end-of-stream.
        """
        transferred = 0
        try:
            if (source is None or source == PIPE) and not access.readable:
                raise InvalidArgument(f"input is the pipe but access mode is {access.name.lower()}-only")
            if (sink is None or sink == PIPE) and not access.writable:
                raise InvalidArgument(f"output is the pipe but access mode is {access.name.lower()}-only")
            with ExitStack() as stack:
                src = _open_source(stack, source)
                dst = _open_sink(stack, sink)
                handle = stack.enter_context(
                    self.server.listen(endpoint, access, pipe_mode, self.settings.buffer_size)
                )
                if on_listening is not None:
                    on_listening(handle)
                session = stack.enter_context(self.server.accept_one(handle))
                transferred = relay(
                    src if src is not None else session.channel,
                    dst if dst is not None else session.channel,
                    session.buffer,
                    strict=strict,
                    on_chunk=session.count,
                )
        except PipeError as exc:
            log.debug("relay session on %s failed: %s", endpoint, exc)
            return Outcome.failed(exc, transferred)
        return Outcome(ok=True, cause=f"relayed {transferred} bytes", bytes_transferred=transferred)

    def send(
        self,
        target: Endpoint,
        *,
        source: Target = None,
        sink: Target = None,
        strict: bool = False,
    ) -> Outcome:
        """Stream *source* into *target*, then stream the reply into *sink*.

        Without a *sink* the reply is not read and the pipe is opened
        write-only.
        """
        sent = received = 0
        try:
            with ExitStack() as stack:
                src = _open_source(stack, source)
                dst = _open_sink(stack, sink)
                access = AccessMode.DUPLEX if dst is not None else AccessMode.WRITE
                channel = stack.enter_context(self.client.connect(target, access, self.settings.timeout))
                buffer = bytearray(self.settings.buffer_size)
                if src is not None:
                    sent = relay(src, channel, buffer, strict=strict)
                if dst is not None:
                    channel.finish_writing()
                    received = relay(channel, dst, buffer, strict=strict)
        except PipeError as exc:
            log.debug("stream to %s failed: %s", target, exc)
            return Outcome.failed(exc, sent + received)
        return Outcome(
            ok=True,
            cause=f"sent {sent} bytes, received {received} bytes",
            bytes_transferred=sent + received,
        )
