"""Tests for file, buffer and pipe byte channels."""

from __future__ import annotations

import errno
import io
from collections.abc import Callable
from pathlib import Path

import pytest
from conftest import TEST_PIPE
from fake_pipes import FakePipeBackend

from npipe.channel import BufferChannel, FileChannel, PipeChannel
from npipe.endpoint import AccessMode
from npipe.errors import AccessModeError, ChannelClosed, FileOpenFailed


def _pipe_channel(backend: FakePipeBackend, access: AccessMode, reply: bytes = b"") -> PipeChannel:
    backend.script_reply(TEST_PIPE, reply)
    handle = backend.connect(TEST_PIPE, access, None)
    return PipeChannel(backend, handle, access, endpoint=TEST_PIPE, release=backend.release)


# ── FileChannel ───────────────────────────────────────────────────────


class TestFileChannel:
    def test_reads_until_end_of_stream(self, write_file: Callable[[str, bytes], Path]) -> None:
        path = write_file("in.bin", b"0123456789")
        buf = bytearray(4)
        chunks: list[bytes] = []
        with FileChannel.open_read(path) as ch:
            while n := ch.readinto(buf):
                chunks.append(bytes(buf[:n]))
        assert chunks == [b"0123", b"4567", b"89"]

    def test_open_read_missing_file(self, tmp_path: Path) -> None:
        with pytest.raises(FileOpenFailed) as info:
            FileChannel.open_read(tmp_path / "missing")
        assert info.value.code == errno.ENOENT
        assert info.value.kind == "file_open_failed"

    def test_open_write_truncates(self, write_file: Callable[[str, bytes], Path]) -> None:
        path = write_file("out.bin", b"old contents")
        with FileChannel.open_write(path) as ch:
            assert ch.write(b"new") == 3
        assert path.read_bytes() == b"new"

    def test_open_write_creates(self, tmp_path: Path) -> None:
        path = tmp_path / "fresh.bin"
        with FileChannel.open_write(path) as ch:
            ch.write(b"x")
        assert path.read_bytes() == b"x"

    def test_open_write_into_directory_fails(self, tmp_path: Path) -> None:
        with pytest.raises(FileOpenFailed):
            FileChannel.open_write(tmp_path)

    def test_write_on_read_only_file(self, write_file: Callable[[str, bytes], Path]) -> None:
        with FileChannel.open_read(write_file("in.bin", b"abc")) as ch, pytest.raises(AccessModeError):
            ch.write(b"zz")

    def test_closed_channel_rejects_io(self, write_file: Callable[[str, bytes], Path]) -> None:
        ch = FileChannel.open_read(write_file("in.bin", b"abc"))
        ch.close()
        ch.close()
        assert ch.closed
        with pytest.raises(ChannelClosed):
            ch.readinto(bytearray(1))
        with pytest.raises(ChannelClosed):
            ch.write(b"x")

    def test_wrapped_stream_is_not_closed(self) -> None:
        stream = io.BytesIO()
        with FileChannel.wrap(stream, "<stdout>") as ch:
            ch.write(b"reply")
        assert not stream.closed
        assert stream.getvalue() == b"reply"


# ── BufferChannel ─────────────────────────────────────────────────────


class TestBufferChannel:
    def test_loopback(self) -> None:
        ch = BufferChannel(b"abc")
        buf = bytearray(8)
        assert ch.readinto(buf) == 3
        assert ch.readinto(buf) == 0
        ch.write(b"xyz")
        assert ch.getvalue() == b"xyz"

    def test_write_limit(self) -> None:
        ch = BufferChannel(write_limit=2)
        assert ch.write(b"abcdef") == 2
        assert ch.getvalue() == b"ab"
        assert ch.write_calls == 1

    def test_repr_shows_state(self) -> None:
        ch = BufferChannel()
        assert "open" in repr(ch)
        ch.close()
        assert "closed" in repr(ch)


# ── PipeChannel ───────────────────────────────────────────────────────


class TestPipeChannel:
    def test_duplex_read_write(self, fake_backend: FakePipeBackend) -> None:
        ch = _pipe_channel(fake_backend, AccessMode.DUPLEX, reply=b"pong")
        assert ch.write(b"ping") == 4
        buf = bytearray(16)
        assert ch.readinto(buf) == 4
        assert bytes(buf[:4]) == b"pong"
        assert fake_backend.replies[TEST_PIPE.path].received == b"ping"

    def test_write_only_pipe_cannot_be_read(self, fake_backend: FakePipeBackend) -> None:
        ch = _pipe_channel(fake_backend, AccessMode.WRITE, reply=b"data")
        with pytest.raises(AccessModeError, match="write-only"):
            ch.readinto(bytearray(4))
        assert fake_backend.replies[TEST_PIPE.path].pos == 0

    def test_read_only_pipe_cannot_be_written(self, fake_backend: FakePipeBackend) -> None:
        ch = _pipe_channel(fake_backend, AccessMode.READ)
        with pytest.raises(AccessModeError, match="read-only"):
            ch.write(b"data")
        assert fake_backend.replies[TEST_PIPE.path].received == b""

    def test_access_error_is_value_error(self, fake_backend: FakePipeBackend) -> None:
        ch = _pipe_channel(fake_backend, AccessMode.READ)
        with pytest.raises(ValueError):
            ch.write(b"data")

    def test_peer_reset_reads_as_end_of_stream(self, fake_backend: FakePipeBackend) -> None:
        ch = _pipe_channel(fake_backend, AccessMode.DUPLEX)
        fake_backend.replies[TEST_PIPE.path].read_error = ConnectionResetError(errno.ECONNRESET, "reset")
        assert ch.readinto(bytearray(4)) == 0

    def test_other_read_errors_propagate(self, fake_backend: FakePipeBackend) -> None:
        ch = _pipe_channel(fake_backend, AccessMode.DUPLEX)
        fake_backend.replies[TEST_PIPE.path].read_error = OSError(errno.EIO, "io")
        with pytest.raises(OSError):
            ch.readinto(bytearray(4))

    def test_close_releases_handle_once(self, fake_backend: FakePipeBackend) -> None:
        ch = _pipe_channel(fake_backend, AccessMode.DUPLEX)
        assert fake_backend.open_count == 1
        ch.close()
        ch.close()
        assert fake_backend.open_count == 0
        assert len(fake_backend.released) == 1
        with pytest.raises(ChannelClosed):
            ch.readinto(bytearray(1))

    def test_finish_writing_half_closes(self, fake_backend: FakePipeBackend) -> None:
        ch = _pipe_channel(fake_backend, AccessMode.DUPLEX)
        ch.finish_writing()
        assert fake_backend.replies[TEST_PIPE.path].write_closed

    def test_available_counts_unread_bytes(self, fake_backend: FakePipeBackend) -> None:
        ch = _pipe_channel(fake_backend, AccessMode.DUPLEX, reply=b"abcdef")
        assert ch.available() == 6
        ch.readinto(bytearray(4))
        assert ch.available() == 2

    def test_available_after_peer_reset_is_zero(self, fake_backend: FakePipeBackend) -> None:
        ch = _pipe_channel(fake_backend, AccessMode.DUPLEX, reply=b"abc")
        fake_backend.replies[TEST_PIPE.path].read_error = BrokenPipeError(errno.EPIPE, "gone")
        assert ch.available() == 0

    def test_available_on_write_only_pipe(self, fake_backend: FakePipeBackend) -> None:
        ch = _pipe_channel(fake_backend, AccessMode.WRITE, reply=b"abc")
        with pytest.raises(AccessModeError, match="cannot peek"):
            ch.available()

    def test_available_after_close(self, fake_backend: FakePipeBackend) -> None:
        ch = _pipe_channel(fake_backend, AccessMode.DUPLEX, reply=b"abc")
        ch.close()
        with pytest.raises(ChannelClosed):
            ch.available()
