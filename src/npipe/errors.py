"""Error kinds raised across the pipe session layer.

Each kind carries a stable ``kind`` string and a distinct ``exit_code`` so
callers (and tests) can branch on the category rather than message text.
The originating OS error code, when there is one, is kept in ``code``.
"""

from __future__ import annotations


class PipeError(Exception):
    kind: str = "pipe_error"
    exit_code: int = 1

    def __init__(self, message: str, *, code: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        self.code = code

    def __str__(self) -> str:
        if self.code is None:
            return self.message
        return f"{self.message} (os error {self.code})"

    @classmethod
    def from_os_error(cls, message: str, exc: OSError) -> PipeError:
        """Build an error of this kind from *exc*, keeping its OS error code."""
        code = getattr(exc, "winerror", None) or exc.errno
        detail = exc.strerror or str(exc) or type(exc).__name__
        return cls(f"{message}: {detail}", code=code)


class InvalidArgument(PipeError, ValueError):
    kind = "invalid_argument"
    exit_code = 2


class FileOpenFailed(PipeError):
    kind = "file_open_failed"
    exit_code = 3


class EndpointUnavailable(PipeError):
    kind = "endpoint_unavailable"
    exit_code = 4


class CreateFailed(PipeError):
    kind = "create_failed"
    exit_code = 5


class ConnectFailed(PipeError):
    kind = "connect_failed"
    exit_code = 6


class TransactionFailed(PipeError):
    kind = "transaction_failed"
    exit_code = 7


class RelayReadFailed(PipeError):
    kind = "relay_read_failed"
    exit_code = 8


class RelayWriteFailed(PipeError):
    kind = "relay_write_failed"
    exit_code = 9


class ChannelClosed(PipeError):
    kind = "channel_closed"


class AccessModeError(PipeError, ValueError):
    """Operation not permitted by the access mode the channel was opened with."""

    kind = "access_mode"


ERROR_KINDS: tuple[type[PipeError], ...] = (
    InvalidArgument,
    FileOpenFailed,
    EndpointUnavailable,
    CreateFailed,
    ConnectFailed,
    TransactionFailed,
    RelayReadFailed,
    RelayWriteFailed,
)
