"""npipe send: stream a file into a pipe and save the reply."""

from __future__ import annotations

from pathlib import Path

import click

from npipe.commands._helpers import fail, make_driver, report
from npipe.endpoint import Endpoint
from npipe.errors import InvalidArgument
from npipe.options import as_buffer_size, as_number


@click.command("send")
@click.argument("target")
@click.option(
    "-i", "--input", "input_path", type=click.Path(path_type=Path), help="File streamed into the pipe."
)
@click.option(
    "-o", "--output", "output_path", type=click.Path(path_type=Path), help="Save the reply here."
)
@click.option(
    "-b", "--buffer-size", callback=as_buffer_size, help="Transfer buffer size (default 65535)."
)
@click.option("-t", "--timeout", "timeout_ms", callback=as_number, help="Wait for the server, in ms.")
@click.option("--strict", is_flag=True, help="Retry short writes instead of dropping the remainder.")
def send_cmd(
    target: str,
    input_path: Path | None,
    output_path: Path | None,
    buffer_size: int | None,
    timeout_ms: int | None,
    strict: bool,
) -> None:
    """Connect to TARGET, stream --input into it, then read the reply to --output."""
    try:
        endpoint = Endpoint.parse(target)
    except InvalidArgument as exc:
        fail(exc)
    driver = make_driver(buffer_size, timeout_ms)
    report(driver.send(endpoint, source=input_path, sink=output_path, strict=strict))
