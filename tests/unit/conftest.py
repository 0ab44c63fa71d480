"""Shared helpers for unit tests."""

from __future__ import annotations

import sys
import threading
from collections.abc import Callable, Generator
from pathlib import Path
from typing import Any

import pytest

# Make mock module importable
sys.path.insert(0, str(Path(__file__).parent.parent / "mocks"))

from fake_pipes import FakePipeBackend  # noqa: E402

from npipe._platform import PosixPipeBackend  # noqa: E402
from npipe.config import Settings  # noqa: E402
from npipe.endpoint import Endpoint  # noqa: E402
from npipe.session import SessionDriver  # noqa: E402

TEST_PIPE = Endpoint.parse("\\\\.\\pipe\\test1")


@pytest.fixture
def fake_backend() -> FakePipeBackend:
    return FakePipeBackend()


@pytest.fixture
def posix_backend(pipe_dir: Path) -> PosixPipeBackend:
    return PosixPipeBackend(pipe_dir)


def make_driver(backend: Any, *, buffer_size: int = 65535, timeout: float | None = 5.0) -> SessionDriver:
    """Build a SessionDriver over *backend* with test-friendly settings."""
    return SessionDriver(backend=backend, settings=Settings(buffer_size=buffer_size, timeout=timeout))


class ServerThread:
    """Run *target* in a thread and surface its result or exception on join."""

    def __init__(self, target: Callable[[], Any]) -> None:
        self.result: Any = None
        self.error: BaseException | None = None
        self._target = target
        self._thread = threading.Thread(target=self._run, daemon=True)

    def _run(self) -> None:
        try:
            self.result = self._target()
        except BaseException as exc:  # noqa: BLE001
            self.error = exc

    def start(self) -> ServerThread:
        self._thread.start()
        return self

    def join(self, timeout: float = 10.0) -> Any:
        self._thread.join(timeout)
        assert not self._thread.is_alive(), "server thread did not finish"
        if self.error is not None:
            raise self.error
        return self.result


@pytest.fixture
def write_file(tmp_path: Path) -> Generator[Callable[[str, bytes], Path], None, None]:
    def _write(name: str, data: bytes) -> Path:
        path = tmp_path / name
        path.write_bytes(data)
        return path

    yield _write
