"""Hexadecimal-or-decimal numeric option parsing."""

from __future__ import annotations

import re

import click

from npipe.errors import InvalidArgument

DWORD_MAX = 0xFFFFFFFF

_HEX_RE = re.compile(r"^0[xX][0-9a-fA-F]+$")
_DEC_RE = re.compile(r"^[0-9]+$")


def parse_number(text: str, *, name: str = "value", minimum: int = 0, maximum: int = DWORD_MAX) -> int:
    """Parse *text* as ``0x``-prefixed hexadecimal or plain decimal.

    Raises:
        InvalidArgument: If *text* is not a number or falls outside the range.
    """
    stripped = text.strip()
    if _HEX_RE.match(stripped):
        value = int(stripped, 16)
    elif _DEC_RE.match(stripped):
        value = int(stripped, 10)
    else:
        raise InvalidArgument(f"{name}: {text!r} is not a decimal or 0x-prefixed hex number")
    if not minimum <= value <= maximum:
        raise InvalidArgument(f"{name}: {value} out of range [{minimum}, {maximum}]")
    return value


def _convert(ctx: click.Context, param: click.Parameter, value: str | None, minimum: int) -> int | None:
    if value is None:
        return None
    try:
        return parse_number(value, name=param.name or "value", minimum=minimum)
    except InvalidArgument as exc:
        raise click.BadParameter(exc.message, ctx=ctx, param=param) from exc


def as_number(ctx: click.Context, param: click.Parameter, value: str | None) -> int | None:
    """Click callback: parse a hex or decimal DWORD option."""
    return _convert(ctx, param, value, 0)


def as_buffer_size(ctx: click.Context, param: click.Parameter, value: str | None) -> int | None:
    """Click callback: like :func:`as_number` but at least 1."""
    return _convert(ctx, param, value, 1)
