"""Client side of a named pipe: one-shot transactions and stream connections."""

from __future__ import annotations

import logging

from npipe._platform import PipeBackend, default_backend
from npipe.channel import PipeChannel
from npipe.config import DEFAULT_BUFFER_SIZE, WAIT_FOREVER
from npipe.endpoint import AccessMode, Endpoint
from npipe.errors import EndpointUnavailable, InvalidArgument, TransactionFailed

log = logging.getLogger(__name__)

# ERROR_FILE_NOT_FOUND, ERROR_SEM_TIMEOUT, ERROR_PIPE_BUSY
_WIN_UNAVAILABLE = (2, 121, 231)


def _is_unavailable(exc: OSError) -> bool:
    if isinstance(exc, (FileNotFoundError, TimeoutError)):
        return True
    return getattr(exc, "winerror", None) in _WIN_UNAVAILABLE


class PipeClient:
    def __init__(self, backend: PipeBackend | None = None) -> None:
        self.backend = backend if backend is not None else default_backend()

    def call(
        self,
        endpoint: Endpoint,
        request: bytes = b"",
        buffer_size: int = DEFAULT_BUFFER_SIZE,
        timeout: float | None = WAIT_FOREVER,
    ) -> bytes:
        """Send *request* and return up to *buffer_size* bytes of reply.

        Waiting for the server, sending and receiving happen as one
        operation. An empty *request* still expects a reply. A reply longer
        than *buffer_size* is silently truncated to *buffer_size* bytes.

        Args:
            endpoint: Pipe to call.
            request: Request payload, possibly empty.
            buffer_size: Maximum reply length.
            timeout: Seconds to wait for the server; ``None`` waits forever.

        Raises:
            EndpointUnavailable: The pipe does not exist or the wait expired.
            TransactionFailed: The exchange itself failed.
        """
        if buffer_size < 1:
            raise InvalidArgument("buffer size must be >= 1")
        log.debug("call %s: %d request bytes, buffer %d", endpoint, len(request), buffer_size)
        try:
            response = self.backend.call(endpoint, request, buffer_size, timeout)
        except OSError as exc:
            if _is_unavailable(exc):
                raise EndpointUnavailable.from_os_error(f"{endpoint} unavailable", exc) from exc
            raise TransactionFailed.from_os_error(f"transaction on {endpoint} failed", exc) from exc
        log.debug("call %s: %d response bytes", endpoint, len(response))
        return response

    def connect(
        self,
        endpoint: Endpoint,
        access: AccessMode = AccessMode.DUPLEX,
        timeout: float | None = WAIT_FOREVER,
    ) -> PipeChannel:
        """Wait for *endpoint* and open it as a stream channel.

        Raises:
            EndpointUnavailable: The pipe does not exist, the wait expired, or
                the open was refused.
        """
        try:
            handle = self.backend.connect(endpoint, access, timeout)
        except OSError as exc:
            raise EndpointUnavailable.from_os_error(f"{endpoint} unavailable", exc) from exc
        log.debug("connected to %s (%s)", endpoint, access.name.lower())
        return PipeChannel(self.backend, handle, access, endpoint=endpoint, release=self.backend.release)
