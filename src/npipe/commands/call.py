"""npipe call: one request/response transaction against a pipe."""

from __future__ import annotations

from pathlib import Path

import click

from npipe.channel import FileChannel
from npipe.commands._helpers import fail, make_driver, report
from npipe.endpoint import Endpoint
from npipe.errors import InvalidArgument
from npipe.options import as_buffer_size, as_number


@click.command("call")
@click.argument("target")
@click.option(
    "-i", "--input", "input_path", type=click.Path(path_type=Path), help="File holding the request."
)
@click.option(
    "-o", "--output", "output_path", type=click.Path(path_type=Path), help="Write the reply here."
)
@click.option(
    "-b", "--buffer-size", callback=as_buffer_size, help="Maximum reply size (default 65535)."
)
@click.option("-t", "--timeout", "timeout_ms", callback=as_number, help="Wait for the server, in ms.")
def call_cmd(
    target: str,
    input_path: Path | None,
    output_path: Path | None,
    buffer_size: int | None,
    timeout_ms: int | None,
) -> None:
    """Send one request to TARGET and print or save the reply.

    TARGET is \\\\server\\pipe\\name or a bare local pipe name. Without
    --input an empty request is sent. Replies longer than the buffer size
    are truncated.
    """
    try:
        endpoint = Endpoint.parse(target)
    except InvalidArgument as exc:
        fail(exc)
    driver = make_driver(buffer_size, timeout_ms)
    sink: Path | FileChannel
    if output_path is not None:
        sink = output_path
    else:
        sink = FileChannel.wrap(click.get_binary_stream("stdout"), "<stdout>")
    report(driver.transact(endpoint, source=input_path, sink=sink))
