"""npipe flags: reference for numeric access and mode options."""

from __future__ import annotations

import click

from npipe.endpoint import AccessMode, PipeMode

_NOTES: dict[str, str] = {
    "READ": "server reads, client writes (PIPE_ACCESS_INBOUND)",
    "WRITE": "server writes, client reads (PIPE_ACCESS_OUTBOUND)",
    "DUPLEX": "both directions (PIPE_ACCESS_DUPLEX)",
    "BYTE": "byte stream, blocking (default)",
    "NOWAIT": "accept returns at once when no client is waiting",
    "READMODE_MESSAGE": "read whole messages; needs TYPE_MESSAGE (Windows only)",
    "TYPE_MESSAGE": "message-type pipe (Windows only)",
}


def flag_rows() -> list[tuple[str, str, str]]:
    """Return (option, value, meaning) rows for every known flag."""
    rows: list[tuple[str, str, str]] = []
    for access in AccessMode:
        rows.append(("--access", f"{access.value:#x}", f"{access.name}: {_NOTES[access.name]}"))
    for name in ("BYTE", "NOWAIT", "READMODE_MESSAGE", "TYPE_MESSAGE"):
        rows.append(("--mode", f"{PipeMode[name].value:#x}", f"{name}: {_NOTES[name]}"))
    return rows


@click.command("flags")
def flags_cmd() -> None:
    """Show the values accepted by --access and --mode."""
    for option, value, meaning in flag_rows():
        click.echo(f"{option:<9}{value:<6}{meaning}")
    click.echo("Numbers may be decimal or 0x-prefixed hex; mode bits combine with OR.")
