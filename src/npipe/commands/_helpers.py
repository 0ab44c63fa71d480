"""Shared CLI helpers: settings resolution and outcome reporting."""

from __future__ import annotations

from dataclasses import dataclass
from typing import NoReturn

import click

from npipe.config import Settings
from npipe.errors import InvalidArgument, PipeError
from npipe.session import Outcome, SessionDriver

__all__ = ["CliState", "make_driver", "fail", "report"]


@dataclass
class CliState:
    legacy_exit_codes: bool = False
    verbose: bool = False


def _state() -> CliState:
    ctx = click.get_current_context(silent=True)
    if ctx is None:
        return CliState()
    state = ctx.find_object(CliState)
    return state if state is not None else CliState()


def fail(exc: PipeError) -> NoReturn:
    """Print the diagnostic for *exc* and exit with its status."""
    click.echo(f"error[{exc.kind}]: {exc}", err=True)
    raise SystemExit(0 if _state().legacy_exit_codes else exc.exit_code)


def make_driver(buffer_size: int | None, timeout_ms: int | None) -> SessionDriver:
    """Build a driver from the environment plus command-line overrides."""
    try:
        settings = Settings.from_env().with_overrides(buffer_size=buffer_size, timeout_ms=timeout_ms)
    except InvalidArgument as exc:
        fail(exc)
    return SessionDriver(settings=settings)


def report(outcome: Outcome) -> None:
    """Print *outcome* and exit with the matching status."""
    if outcome.error is not None:
        fail(outcome.error)
    click.echo(outcome.cause, err=True)
    code = outcome.exit_code(legacy=_state().legacy_exit_codes)
    if code:
        raise SystemExit(code)
