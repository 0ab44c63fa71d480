"""npipe listen: host a pipe and relay one connection."""

from __future__ import annotations

import click

from npipe.commands._helpers import fail, make_driver, report
from npipe.endpoint import AccessMode, Endpoint, PipeMode
from npipe.errors import InvalidArgument
from npipe.options import as_buffer_size, as_number
from npipe.server import ServerHandle
from npipe.session import PIPE


def _announce(handle: ServerHandle) -> None:
    click.echo(f"listening on {handle.endpoint}", err=True)


@click.command("listen")
@click.argument("name")
@click.option(
    "-i", "--input", "source", default=PIPE, show_default=True, help="Relay input: a file, or - for the pipe."
)
@click.option(
    "-o", "--output", "sink", default=PIPE, show_default=True, help="Relay output: a file, or - for the pipe."
)
@click.option(
    "-a", "--access", default="0x3", callback=as_number, show_default=True, help="PIPE_ACCESS_* bits."
)
@click.option(
    "-m",
    "--mode",
    "pipe_mode",
    default="0x0",
    callback=as_number,
    show_default=True,
    help="PIPE_* type/wait bits.",
)
@click.option(
    "-b", "--buffer-size", callback=as_buffer_size, help="Transfer buffer size (default 65535)."
)
@click.option("--strict", is_flag=True, help="Retry short writes instead of dropping the remainder.")
def listen_cmd(
    name: str,
    source: str,
    sink: str,
    access: int,
    pipe_mode: int,
    buffer_size: int | None,
    strict: bool,
) -> None:
    """Create pipe NAME, accept one client and relay until the input ends.

    With the defaults the client's bytes are echoed back to it.
    """
    try:
        endpoint = Endpoint.local(name)
        access_mode = AccessMode.from_value(access)
        mode = PipeMode.from_value(pipe_mode)
    except InvalidArgument as exc:
        fail(exc)
    driver = make_driver(buffer_size, None)
    outcome = driver.serve(
        endpoint,
        source=source,
        sink=sink,
        access=access_mode,
        pipe_mode=mode,
        strict=strict,
        on_listening=_announce,
    )
    report(outcome)
