"""Shared fixtures and markers for npipe test suite."""

from __future__ import annotations

import os
import shutil
import tempfile
from collections.abc import Generator
from pathlib import Path

import pytest


def pytest_configure(config: pytest.Config) -> None:
    config.addinivalue_line("markers", "posix: exercises real Unix-domain sockets")


@pytest.fixture
def pipe_dir() -> Generator[Path, None, None]:
    """Short-lived socket directory.

    Kept directly under the system temp dir: Unix socket paths are limited
    to about 100 bytes, which deep ``tmp_path`` directories can exceed.
    """
    path = Path(tempfile.mkdtemp(prefix="npipe-"))
    yield path
    shutil.rmtree(path, ignore_errors=True)


@pytest.fixture(autouse=True)
def _isolate_env(monkeypatch: pytest.MonkeyPatch) -> None:
    for name in ("NPIPE_BUFFER_SIZE", "NPIPE_TIMEOUT", "NPIPE_PIPE_DIR"):
        monkeypatch.delenv(name, raising=False)


skip_on_windows = pytest.mark.skipif(os.name == "nt", reason="Unix-domain socket backend only")
