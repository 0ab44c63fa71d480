"""Tests for npipe.endpoint: pipe names, access modes and pipe modes."""

from __future__ import annotations

import dataclasses

import pytest

from npipe.endpoint import AccessMode, Endpoint, PipeMode
from npipe.errors import InvalidArgument

# ── Endpoint ──────────────────────────────────────────────────────────


class TestEndpointParse:
    def test_local_full_path(self) -> None:
        ep = Endpoint.parse(r"\\.\pipe\test1")
        assert ep.name == "test1"
        assert ep.server == "."
        assert ep.is_local
        assert ep.path == r"\\.\pipe\test1"

    def test_remote_full_path(self) -> None:
        ep = Endpoint.parse(r"\\fileserver\pipe\spoolss")
        assert ep.server == "fileserver"
        assert ep.name == "spoolss"
        assert not ep.is_local

    def test_pipe_segment_case_insensitive(self) -> None:
        assert Endpoint.parse(r"\\.\PIPE\x").name == "x"

    def test_bare_name_is_local(self) -> None:
        ep = Endpoint.parse("test1")
        assert ep.is_local
        assert str(ep) == r"\\.\pipe\test1"

    @pytest.mark.parametrize("text", ["", r"\\srv\share\x", "a/b", r"\\.\pipe\\", "has space"])
    def test_malformed(self, text: str) -> None:
        with pytest.raises(InvalidArgument):
            Endpoint.parse(text)

    def test_local_rejects_remote_server(self) -> None:
        with pytest.raises(InvalidArgument, match="remote"):
            Endpoint.local(r"\\other\pipe\x")

    def test_immutable(self) -> None:
        ep = Endpoint.parse("test1")
        with pytest.raises(dataclasses.FrozenInstanceError):
            ep.name = "other"  # type: ignore[misc]


# ── AccessMode / PipeMode ─────────────────────────────────────────────


class TestAccessMode:
    def test_duplex_is_read_write(self) -> None:
        mode = AccessMode.from_value(0x3)
        assert mode is AccessMode.DUPLEX
        assert mode.readable and mode.writable

    def test_read_only(self) -> None:
        mode = AccessMode.from_value(1)
        assert mode.readable
        assert not mode.writable

    def test_write_only(self) -> None:
        mode = AccessMode.from_value(2)
        assert mode.writable
        assert not mode.readable

    @pytest.mark.parametrize("value", [0, 4, 0x40000003])
    def test_invalid(self, value: int) -> None:
        with pytest.raises(InvalidArgument):
            AccessMode.from_value(value)


class TestPipeMode:
    def test_default_is_blocking_byte(self) -> None:
        mode = PipeMode.from_value(0)
        assert mode.blocking
        assert not mode.is_message

    def test_nowait(self) -> None:
        assert not PipeMode.from_value(0x1).blocking

    def test_message_type(self) -> None:
        assert PipeMode.from_value(0x6).is_message

    def test_unknown_bits(self) -> None:
        with pytest.raises(InvalidArgument, match="unknown"):
            PipeMode.from_value(0x8)

    def test_message_read_needs_message_type(self) -> None:
        with pytest.raises(InvalidArgument, match="message-type"):
            PipeMode.from_value(0x2)
