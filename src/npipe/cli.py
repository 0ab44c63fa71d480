from __future__ import annotations

import logging

import click

from npipe import __version__
from npipe.commands._helpers import CliState
from npipe.commands.call import call_cmd
from npipe.commands.flags import flags_cmd
from npipe.commands.listen import listen_cmd
from npipe.commands.send import send_cmd


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.version_option(version=__version__, prog_name="npipe")
@click.option("-v", "--verbose", is_flag=True, help="Log pipe activity to stderr.")
@click.option(
    "--legacy-exit-codes",
    is_flag=True,
    help="Exit 1 on success and 0 on failure, like the original tools.",
)
@click.pass_context
def main(ctx: click.Context, verbose: bool, legacy_exit_codes: bool) -> None:
    """npipe: named-pipe transactions and relay sessions."""
    ctx.obj = CliState(legacy_exit_codes=legacy_exit_codes, verbose=verbose)
    if verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(levelname)s %(name)s: %(message)s")


main.add_command(call_cmd, name="call")
main.add_command(listen_cmd, name="listen")
main.add_command(send_cmd, name="send")
main.add_command(flags_cmd, name="flags")


if __name__ == "__main__":
    main()
