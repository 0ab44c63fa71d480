"""Platform abstraction layer for npipe.

Centralises every OS call behind a backend object so that the client,
server and channel modules never need ``sys.platform`` checks themselves.
Backends raise plain ``OSError`` (with ``errno`` or ``winerror`` set); the
callers translate those into the typed errors in :mod:`npipe.errors`.
"""

from __future__ import annotations

import contextlib
import errno
import logging
import os
import socket
import struct
import sys
import threading
import time
from collections.abc import Iterator
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Protocol

from npipe.config import default_pipe_dir
from npipe.endpoint import AccessMode, Endpoint, PipeMode

_WIN: bool = sys.platform == "win32"

log = logging.getLogger(__name__)

POLL_INTERVAL_S = 0.05
RECV_CHUNK = 64 * 1024

# Exclusive-lock attempts before a name counts as owned. A client checking
# for a live owner holds a shared lock for an instant.
_LOCK_ATTEMPTS = 3


class PipeBackend(Protocol):
    def create(self, endpoint: Endpoint, access: AccessMode, mode: PipeMode, buffer_size: int) -> Any: ...

    def accept(self, listener: Any) -> Any: ...

    def call(self, endpoint: Endpoint, request: bytes, buffer_size: int, timeout: float | None) -> bytes: ...

    def connect(self, endpoint: Endpoint, access: AccessMode, timeout: float | None) -> Any: ...

    def read(self, handle: Any, size: int) -> bytes: ...

    def write(self, handle: Any, data: bytes | memoryview) -> int: ...

    def peek(self, handle: Any) -> int: ...

    def shutdown_write(self, handle: Any) -> None: ...

    def disconnect(self, handle: Any) -> None: ...

    def close(self, listener: Any) -> None: ...

    def release(self, handle: Any) -> None: ...


def secure_dir_permissions(path: Path) -> None:
    """Ensure *path* exists as a directory with restricted permissions."""
    path.mkdir(parents=True, exist_ok=True)
    if not _WIN:
        path.chmod(0o700)


def _deadline(timeout: float | None) -> float | None:
    return None if timeout is None else time.monotonic() + timeout


def _expired(deadline: float | None) -> bool:
    return deadline is not None and time.monotonic() >= deadline


def lock_path(path: Path) -> Path:
    """Return the ownership lock file for the socket at *path*."""
    return path.with_name(path.name + ".lock")


def _same_file(fd: int, path: Path) -> bool:
    try:
        st = os.stat(path)
    except FileNotFoundError:
        return False
    fst = os.fstat(fd)
    return (st.st_dev, st.st_ino) == (fst.st_dev, fst.st_ino)


def _send_request(sock: socket.socket, request: bytes, failures: list[OSError]) -> None:
    try:
        sock.sendall(request)
        sock.shutdown(socket.SHUT_WR)
    except (BrokenPipeError, ConnectionResetError):
        # The server stopped reading; its reply so far is still returned.
        log.debug("server closed before reading the whole request")
    except OSError as exc:
        failures.append(exc)


@dataclass
class _Listener:
    sock: socket.socket
    path: Path
    lock_fd: int


class PosixPipeBackend:
    """Named pipes emulated with Unix-domain stream sockets.

    ``\\\\.\\pipe\\name`` maps to the socket file ``<pipe_dir>/name``. An
    ``flock`` held on ``<pipe_dir>/name.lock`` marks exclusive ownership of
    the name; a socket file whose lock nobody holds is left over from a dead
    server.
    """

    def __init__(self, pipe_dir: Path | None = None) -> None:
        self.pipe_dir = pipe_dir if pipe_dir is not None else default_pipe_dir()

    def socket_path(self, endpoint: Endpoint) -> Path:
        if not endpoint.is_local:
            raise FileNotFoundError(
                errno.EHOSTUNREACH, f"remote pipe server {endpoint.server!r} not reachable", endpoint.path
            )
        return self.pipe_dir / endpoint.name

    def _lock_name(self, path: Path) -> int:
        import fcntl

        busy = 0
        while True:
            lock_fd = os.open(lock_path(path), os.O_RDWR | os.O_CREAT, 0o600)
            try:
                fcntl.flock(lock_fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
            except BlockingIOError:
                os.close(lock_fd)
                busy += 1
                if busy >= _LOCK_ATTEMPTS:
                    raise OSError(
                        errno.EADDRINUSE, "pipe name already owned by another server", str(path)
                    ) from None
                time.sleep(POLL_INTERVAL_S)
                continue
            except OSError:
                os.close(lock_fd)
                raise
            # A closing server unlinks its lock file before releasing it; a
            # lock on an unlinked file owns nothing.
            if _same_file(lock_fd, lock_path(path)):
                return lock_fd
            os.close(lock_fd)

    def has_owner(self, path: Path) -> bool:
        """Return True if a live server holds the lock for the socket at *path*."""
        import fcntl

        try:
            lock_fd = os.open(lock_path(path), os.O_RDONLY)
        except FileNotFoundError:
            return False
        try:
            fcntl.flock(lock_fd, fcntl.LOCK_SH | fcntl.LOCK_NB)
        except BlockingIOError:
            return True
        finally:
            os.close(lock_fd)
        return False

    def create(self, endpoint: Endpoint, access: AccessMode, mode: PipeMode, buffer_size: int) -> _Listener:
        if mode.is_message:
            raise OSError(errno.EINVAL, "message-type pipes are not supported on this platform")
        path = self.socket_path(endpoint)
        secure_dir_permissions(self.pipe_dir)
        lock_fd = self._lock_name(path)

        if path.exists():
            log.warning("removing stale pipe socket %s", path)
            path.unlink()

        sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_RCVBUF, buffer_size)
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_SNDBUF, buffer_size)
            sock.bind(str(path))
            path.chmod(0o600)
            sock.listen(1)
        except OSError:
            sock.close()
            path.unlink(missing_ok=True)
            lock_path(path).unlink(missing_ok=True)
            os.close(lock_fd)
            raise
        sock.setblocking(mode.blocking)
        return _Listener(sock=sock, path=path, lock_fd=lock_fd)

    def accept(self, listener: _Listener) -> socket.socket:
        conn, _addr = listener.sock.accept()
        conn.setblocking(True)
        return conn

    def connect(self, endpoint: Endpoint, access: AccessMode, timeout: float | None) -> socket.socket:
        path = self.socket_path(endpoint)
        deadline = _deadline(timeout)
        while True:
            if not path.exists():
                raise FileNotFoundError(errno.ENOENT, "no such pipe", endpoint.path)
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.connect(str(path))
            except (ConnectionRefusedError, BlockingIOError) as exc:
                sock.close()
                if isinstance(exc, ConnectionRefusedError) and not self.has_owner(path):
                    raise FileNotFoundError(errno.ENOENT, "no server owns pipe", endpoint.path) from None
                # Owned but not listening yet, or backlog full: the server is busy.
                if _expired(deadline):
                    raise TimeoutError(errno.ETIMEDOUT, "timed out waiting for pipe", endpoint.path) from None
                time.sleep(POLL_INTERVAL_S)
                continue
            except OSError:
                sock.close()
                raise
            return sock

    def call(self, endpoint: Endpoint, request: bytes, buffer_size: int, timeout: float | None) -> bytes:
        """Send *request* and read up to *buffer_size* reply bytes.

        The request is sent from a helper thread while this thread reads, so
        a server that answers as it reads (an echo) cannot fill both socket
        buffers and stall the exchange.
        """
        sock = self.connect(endpoint, AccessMode.DUPLEX, timeout)
        failures: list[OSError] = []
        sender = threading.Thread(target=_send_request, args=(sock, request, failures), daemon=True)
        chunks: list[bytes] = []
        try:
            sender.start()
            remaining = buffer_size
            while remaining > 0:
                chunk = sock.recv(min(remaining, RECV_CHUNK))
                if not chunk:
                    break
                chunks.append(chunk)
                remaining -= len(chunk)
        finally:
            # Unblocks a sender still writing once the reply budget is spent.
            with contextlib.suppress(OSError):
                sock.shutdown(socket.SHUT_RDWR)
            sender.join()
            sock.close()
        if failures:
            raise failures[0]
        return b"".join(chunks)

    def read(self, handle: socket.socket, size: int) -> bytes:
        return handle.recv(size)

    def write(self, handle: socket.socket, data: bytes | memoryview) -> int:
        return handle.send(data)

    def peek(self, handle: socket.socket) -> int:
        import fcntl
        import termios

        raw = fcntl.ioctl(handle.fileno(), termios.FIONREAD, b"\0\0\0\0")
        return int(struct.unpack("i", raw)[0])

    def shutdown_write(self, handle: socket.socket) -> None:
        handle.shutdown(socket.SHUT_WR)

    def disconnect(self, handle: socket.socket) -> None:
        # ENOTCONN once the peer has already gone away.
        with contextlib.suppress(OSError):
            handle.shutdown(socket.SHUT_RDWR)
        handle.close()

    def close(self, listener: _Listener) -> None:
        listener.sock.close()
        listener.path.unlink(missing_ok=True)
        # Unlink while still locked; later lockers of this inode see it gone.
        lock_path(listener.path).unlink(missing_ok=True)
        os.close(listener.lock_fd)

    def release(self, handle: socket.socket) -> None:
        handle.close()


@contextlib.contextmanager
def _win32_errors() -> Iterator[None]:
    """Re-raise ``pywintypes.error`` as ``OSError`` carrying its ``winerror``."""
    import pywintypes

    try:
        yield
    except pywintypes.error as exc:
        raise OSError(None, exc.strerror, None, exc.winerror) from exc


class WindowsPipeBackend:  # pragma: no cover
    """Native named pipes through pywin32."""

    FILE_FLAG_FIRST_PIPE_INSTANCE = 0x00080000
    ERROR_BROKEN_PIPE = 109
    ERROR_PIPE_BUSY = 231
    ERROR_MORE_DATA = 234

    def __init__(self) -> None:
        import pywintypes
        import win32file
        import win32pipe

        self._pywintypes = pywintypes
        self._win32file = win32file
        self._win32pipe = win32pipe

    def _wait_ms(self, timeout: float | None) -> int:
        if timeout is None:
            return int(self._win32pipe.NMPWAIT_WAIT_FOREVER)
        # 0 selects the server's default timeout; 1 ms is the shortest real wait.
        return max(1, int(timeout * 1000))

    def create(self, endpoint: Endpoint, access: AccessMode, mode: PipeMode, buffer_size: int) -> Any:
        with _win32_errors():
            return self._win32pipe.CreateNamedPipe(
                endpoint.path,
                int(access) | self.FILE_FLAG_FIRST_PIPE_INSTANCE,
                int(mode),
                1,
                buffer_size,
                buffer_size,
                0,
                None,
            )

    def accept(self, listener: Any) -> Any:
        # Returns ERROR_PIPE_CONNECTED when the client arrived first.
        with _win32_errors():
            self._win32pipe.ConnectNamedPipe(listener, None)
        return listener

    def connect(self, endpoint: Endpoint, access: AccessMode, timeout: float | None) -> Any:
        desired = 0
        if access.readable:
            desired |= self._win32file.GENERIC_READ
        if access.writable:
            desired |= self._win32file.GENERIC_WRITE
        deadline = _deadline(timeout)
        with _win32_errors():
            while True:
                self._win32pipe.WaitNamedPipe(endpoint.path, self._wait_ms(timeout))
                try:
                    return self._win32file.CreateFile(
                        endpoint.path, desired, 0, None, self._win32file.OPEN_EXISTING, 0, None
                    )
                except self._pywintypes.error as exc:
                    # Another client took the free instance between wait and open.
                    if exc.winerror != self.ERROR_PIPE_BUSY or _expired(deadline):
                        raise
                    if deadline is not None:
                        timeout = max(0.0, deadline - time.monotonic())

    def call(self, endpoint: Endpoint, request: bytes, buffer_size: int, timeout: float | None) -> bytes:
        """Write *request*, then read one reply of at most *buffer_size* bytes.

        Message-type pipes deliver the reply in ``ERROR_MORE_DATA`` pieces;
        whatever is left past *buffer_size* is dropped with the handle.
        """
        handle = self.connect(endpoint, AccessMode.DUPLEX, timeout)
        chunks: list[bytes] = []
        try:
            with _win32_errors():
                if request:
                    self._win32file.WriteFile(handle, request)
                remaining = buffer_size
                while remaining > 0:
                    try:
                        hr, data = self._win32file.ReadFile(handle, remaining)
                    except self._pywintypes.error as exc:
                        if exc.winerror == self.ERROR_BROKEN_PIPE:
                            break
                        raise
                    chunks.append(bytes(data))
                    remaining -= len(data)
                    if hr != self.ERROR_MORE_DATA:
                        break
        finally:
            self.release(handle)
        return b"".join(chunks)

    def read(self, handle: Any, size: int) -> bytes:
        with _win32_errors():
            try:
                _hr, data = self._win32file.ReadFile(handle, size)
            except self._pywintypes.error as exc:
                if exc.winerror == self.ERROR_BROKEN_PIPE:
                    return b""
                raise
        return bytes(data)

    def write(self, handle: Any, data: bytes | memoryview) -> int:
        with _win32_errors():
            _hr, written = self._win32file.WriteFile(handle, bytes(data))
        return int(written)

    def peek(self, handle: Any) -> int:
        with _win32_errors():
            try:
                _data, available, _left = self._win32pipe.PeekNamedPipe(handle, 0)
            except self._pywintypes.error as exc:
                if exc.winerror == self.ERROR_BROKEN_PIPE:
                    return 0
                raise
        return int(available)

    def shutdown_write(self, handle: Any) -> None:
        # Named pipes have no half-close; the peer sees end-of-stream on close.
        with _win32_errors():
            self._win32file.FlushFileBuffers(handle)

    def disconnect(self, handle: Any) -> None:
        # Flushing fails once the client has gone; the disconnect still applies.
        with contextlib.suppress(self._pywintypes.error):
            self._win32file.FlushFileBuffers(handle)
        with _win32_errors():
            self._win32pipe.DisconnectNamedPipe(handle)

    def close(self, listener: Any) -> None:
        with _win32_errors():
            self._win32file.CloseHandle(listener)

    def release(self, handle: Any) -> None:
        with _win32_errors():
            self._win32file.CloseHandle(handle)


def default_backend(pipe_dir: Path | None = None) -> PipeBackend:
    """Return the OS pipe backend for this platform."""
    if _WIN:  # pragma: no cover
        return WindowsPipeBackend()
    return PosixPipeBackend(pipe_dir)
