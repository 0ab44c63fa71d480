"""Defaults and environment overrides."""

from __future__ import annotations

import os
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path

from npipe.errors import InvalidArgument
from npipe.options import parse_number

DEFAULT_BUFFER_SIZE = 65535
WAIT_FOREVER: float | None = None

ENV_BUFFER_SIZE = "NPIPE_BUFFER_SIZE"
ENV_TIMEOUT = "NPIPE_TIMEOUT"
ENV_PIPE_DIR = "NPIPE_PIPE_DIR"


def default_pipe_dir(env: Mapping[str, str] | None = None) -> Path:
    """Return the directory holding POSIX pipe sockets."""
    env = os.environ if env is None else env
    override = env.get(ENV_PIPE_DIR)
    if override:
        return Path(override)
    runtime = env.get("XDG_RUNTIME_DIR")
    if runtime:
        return Path(runtime) / "npipe"
    return Path.home() / ".npipe" / "pipes"


def ms_to_timeout(ms: int | None) -> float | None:
    """Convert a millisecond option to seconds; ``None`` waits forever."""
    if ms is None:
        return WAIT_FOREVER
    return ms / 1000.0


@dataclass(frozen=True)
class Settings:
    buffer_size: int = DEFAULT_BUFFER_SIZE
    timeout: float | None = WAIT_FOREVER
    pipe_dir: Path | None = None

    def __post_init__(self) -> None:
        if self.buffer_size < 1:
            raise InvalidArgument(f"buffer size must be >= 1, got {self.buffer_size}")

    @classmethod
    def from_env(cls, env: Mapping[str, str] | None = None) -> Settings:
        """Resolve settings from *env* (default: ``os.environ``).

        Raises:
            InvalidArgument: If a numeric variable is malformed.
        """
        env = os.environ if env is None else env
        buffer_size = DEFAULT_BUFFER_SIZE
        timeout = WAIT_FOREVER
        raw = env.get(ENV_BUFFER_SIZE)
        if raw:
            buffer_size = parse_number(raw, name=ENV_BUFFER_SIZE, minimum=1)
        raw = env.get(ENV_TIMEOUT)
        if raw:
            timeout = ms_to_timeout(parse_number(raw, name=ENV_TIMEOUT))
        return cls(buffer_size=buffer_size, timeout=timeout, pipe_dir=default_pipe_dir(env))

    def with_overrides(self, *, buffer_size: int | None = None, timeout_ms: int | None = None) -> Settings:
        return Settings(
            buffer_size=self.buffer_size if buffer_size is None else buffer_size,
            timeout=self.timeout if timeout_ms is None else ms_to_timeout(timeout_ms),
            pipe_dir=self.pipe_dir,
        )
