"""Named-pipe addresses and the capabilities requested on them."""

from __future__ import annotations

import enum
import re
from dataclasses import dataclass

from npipe.errors import InvalidArgument

LOCAL_SERVER = "."

_PIPE_PATH_RE = re.compile(r"^\\\\(?P<server>[^\\/]+)\\pipe\\(?P<name>[^\\/]+)$", re.I)
_BARE_NAME_RE = re.compile(r"^[A-Za-z0-9_.\-]{1,200}$")


class AccessMode(enum.IntEnum):
    """Direction of data flow, using the PIPE_ACCESS_* values."""

    READ = 0x1
    WRITE = 0x2
    DUPLEX = 0x3

    @property
    def readable(self) -> bool:
        return bool(self & AccessMode.READ)

    @property
    def writable(self) -> bool:
        return bool(self & AccessMode.WRITE)

    @classmethod
    def from_value(cls, value: int) -> AccessMode:
        if value not in (1, 2, 3):
            raise InvalidArgument(f"access mode {value:#x} must be 0x1 (read), 0x2 (write) or 0x3 (duplex)")
        return cls(value)


class PipeMode(enum.IntFlag):
    """Pipe type and wait flags, using the PIPE_* values."""

    BYTE = 0x0
    NOWAIT = 0x1
    READMODE_MESSAGE = 0x2
    TYPE_MESSAGE = 0x4

    @property
    def is_message(self) -> bool:
        return bool(self & (PipeMode.TYPE_MESSAGE | PipeMode.READMODE_MESSAGE))

    @property
    def blocking(self) -> bool:
        return not self & PipeMode.NOWAIT

    @classmethod
    def from_value(cls, value: int) -> PipeMode:
        known = cls.NOWAIT | cls.READMODE_MESSAGE | cls.TYPE_MESSAGE
        if value & ~int(known):
            raise InvalidArgument(f"unknown pipe mode bits {value & ~int(known):#x}")
        if value & cls.READMODE_MESSAGE and not value & cls.TYPE_MESSAGE:
            raise InvalidArgument("message read mode requires a message-type pipe")
        return cls(value)


@dataclass(frozen=True)
class Endpoint:
    """A named-pipe address: ``\\\\server\\pipe\\name``."""

    name: str
    server: str = LOCAL_SERVER

    @property
    def is_local(self) -> bool:
        return self.server in (LOCAL_SERVER, "localhost")

    @property
    def path(self) -> str:
        return f"\\\\{self.server}\\pipe\\{self.name}"

    def __str__(self) -> str:
        return self.path

    @classmethod
    def parse(cls, text: str) -> Endpoint:
        """Parse a full pipe path, or a bare name for a local pipe."""
        if not text:
            raise InvalidArgument("missing pipe target")
        match = _PIPE_PATH_RE.match(text)
        if match:
            return cls(name=match.group("name"), server=match.group("server"))
        if _BARE_NAME_RE.match(text):
            return cls(name=text)
        raise InvalidArgument(f"malformed pipe name {text!r}; expected \\\\server\\pipe\\name")

    @classmethod
    def local(cls, name: str) -> Endpoint:
        """Parse *name* as an endpoint hosted on this machine."""
        endpoint = cls.parse(name)
        if not endpoint.is_local:
            raise InvalidArgument(f"cannot host a pipe on remote server {endpoint.server!r}")
        return endpoint
