"""Byte channels: things bytes can be read from and/or written to.

Every channel exposes the same three calls:

- ``readinto(buffer) -> int``: fill *buffer* with up to ``len(buffer)``
  bytes; ``0`` means end-of-stream.
- ``write(data) -> int``: hand *data* to the channel in one call and return
  how many bytes it accepted, which may be fewer than ``len(data)``.
- ``close()``: idempotent. Afterwards ``readinto``/``write`` raise
  :class:`~npipe.errors.ChannelClosed`.
"""

from __future__ import annotations

import io
import logging
from collections.abc import Callable
from pathlib import Path
from types import TracebackType
from typing import Any, BinaryIO

from npipe._platform import PipeBackend
from npipe.endpoint import AccessMode, Endpoint
from npipe.errors import AccessModeError, ChannelClosed, FileOpenFailed

log = logging.getLogger(__name__)

Buffer = bytearray | memoryview


class ByteChannel:
    label = "channel"

    def __init__(self) -> None:
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def readinto(self, buffer: Buffer) -> int:
        self._check_open()
        return self._readinto(buffer)

    def write(self, data: bytes | memoryview) -> int:
        self._check_open()
        return self._write(data)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        self._close()

    def __enter__(self) -> ByteChannel:
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        self.close()

    def __repr__(self) -> str:
        state = "closed" if self._closed else "open"
        return f"<{type(self).__name__} {self.label} {state}>"

    def _check_open(self) -> None:
        if self._closed:
            raise ChannelClosed(f"{self.label}: channel is closed")

    def _readinto(self, buffer: Buffer) -> int:
        raise AccessModeError(f"{self.label}: channel is not readable")

    def _write(self, data: bytes | memoryview) -> int:
        raise AccessModeError(f"{self.label}: channel is not writable")

    def _close(self) -> None:
        pass


class FileChannel(ByteChannel):
    """A local file opened unbuffered for reading or writing, or a wrapped stdio stream."""

    def __init__(self, raw: io.RawIOBase | BinaryIO, label: str, *, owned: bool = True) -> None:
        super().__init__()
        self._raw = raw
        self._owned = owned
        self.label = label

    @classmethod
    def open_read(cls, path: str | Path) -> FileChannel:
        try:
            raw = open(path, "rb", buffering=0)  # noqa: SIM115
        except OSError as exc:
            raise FileOpenFailed.from_os_error(f"cannot open {path} for reading", exc) from exc
        return cls(raw, str(path))

    @classmethod
    def open_write(cls, path: str | Path) -> FileChannel:
        """Open *path* for writing, creating or truncating it."""
        try:
            raw = open(path, "wb", buffering=0)  # noqa: SIM115
        except OSError as exc:
            raise FileOpenFailed.from_os_error(f"cannot open {path} for writing", exc) from exc
        return cls(raw, str(path))

    @classmethod
    def wrap(cls, stream: BinaryIO, label: str) -> FileChannel:
        """Wrap an already open binary stream such as stdout; close only flushes it."""
        return cls(stream, label, owned=False)

    def _readinto(self, buffer: Buffer) -> int:
        if not self._raw.readable():
            return super()._readinto(buffer)
        return self._raw.readinto(buffer) or 0

    def _write(self, data: bytes | memoryview) -> int:
        if not self._raw.writable():
            return super()._write(data)
        return self._raw.write(data) or 0

    def _close(self) -> None:
        if self._owned:
            self._raw.close()
        else:
            self._raw.flush()


class BufferChannel(ByteChannel):
    """In-memory loopback channel.

    Reads drain *initial*; writes accumulate and are returned by
    :meth:`getvalue`. With *write_limit* set, each write accepts at most
    that many bytes.
    """

    label = "buffer"

    def __init__(self, initial: bytes = b"", *, write_limit: int | None = None) -> None:
        super().__init__()
        self._source = memoryview(bytes(initial))
        self._pos = 0
        self._sink = bytearray()
        self.write_limit = write_limit
        self.write_calls = 0

    def _readinto(self, buffer: Buffer) -> int:
        n = min(len(buffer), len(self._source) - self._pos)
        buffer[:n] = self._source[self._pos : self._pos + n]
        self._pos += n
        return n

    def _write(self, data: bytes | memoryview) -> int:
        self.write_calls += 1
        n = len(data) if self.write_limit is None else min(len(data), self.write_limit)
        self._sink += data[:n]
        return n

    def getvalue(self) -> bytes:
        return bytes(self._sink)


class PipeChannel(ByteChannel):
    """One connected end of a named pipe.

    The access mode the pipe was opened with is enforced before any OS call:
    reading a write-only pipe or writing a read-only one raises
    :class:`AccessModeError`. *release* is invoked once on close.
    """

    def __init__(
        self,
        backend: PipeBackend,
        handle: Any,
        access: AccessMode,
        *,
        endpoint: Endpoint,
        release: Callable[[Any], None],
    ) -> None:
        super().__init__()
        self.backend = backend
        self.handle = handle
        self.access = access
        self.endpoint = endpoint
        self.label = endpoint.path
        self._release = release

    def _readinto(self, buffer: Buffer) -> int:
        if not self.access.readable:
            raise AccessModeError(f"{self.label}: pipe opened {self.access.name.lower()}-only, cannot read")
        try:
            data = self.backend.read(self.handle, len(buffer))
        except (ConnectionResetError, BrokenPipeError):
            log.debug("peer disconnected from %s", self.label)
            return 0
        n = len(data)
        buffer[:n] = data
        return n

    def _write(self, data: bytes | memoryview) -> int:
        if not self.access.writable:
            raise AccessModeError(f"{self.label}: pipe opened {self.access.name.lower()}-only, cannot write")
        return self.backend.write(self.handle, data)

    def available(self) -> int:
        """Return how many bytes can be read now without blocking.

        A peer that has gone away reports 0, like end-of-stream.
        """
        self._check_open()
        if not self.access.readable:
            raise AccessModeError(f"{self.label}: pipe opened {self.access.name.lower()}-only, cannot peek")
        try:
            return self.backend.peek(self.handle)
        except (ConnectionResetError, BrokenPipeError):
            log.debug("peer disconnected from %s", self.label)
            return 0

    def finish_writing(self) -> None:
        """Signal end-of-stream to the peer while keeping the read side open."""
        self._check_open()
        self.backend.shutdown_write(self.handle)

    def _close(self) -> None:
        log.debug("closing pipe channel %s", self.label)
        self._release(self.handle)
