"""Chunked byte copy from one channel to another."""

from __future__ import annotations

import logging
from collections.abc import Callable

from npipe.channel import Buffer, ByteChannel
from npipe.errors import AccessModeError, PipeError, RelayReadFailed, RelayWriteFailed

log = logging.getLogger(__name__)


def relay(
    source: ByteChannel,
    sink: ByteChannel,
    buffer: Buffer,
    *,
    strict: bool = False,
    on_chunk: Callable[[int], None] | None = None,
) -> int:
    """Copy *source* into *sink* through *buffer* until end-of-stream.

    Args:
        source: Channel to read from.
        sink: Channel to write to.
        buffer: Reused transfer buffer; its length bounds each chunk.
        strict: Keep writing the remainder of a chunk until the sink has
            taken all of it. Off by default: each chunk is written with a
            single call and whatever the sink did not accept is dropped.
        on_chunk: Called with the number of bytes written for each chunk.

    Returns:
        Total bytes accepted by *sink*. In the default mode this is smaller
        than the bytes read whenever the sink under-accepted a write.

    Raises:
        RelayReadFailed: Reading *source* failed.
        RelayWriteFailed: Writing *sink* failed, or in strict mode the sink
            accepted nothing.
    """
    if len(buffer) == 0:
        raise ValueError("relay buffer must not be empty")
    view = memoryview(buffer)
    total = 0
    while True:
        try:
            n = source.readinto(view)
        except (AccessModeError, RelayReadFailed):
            raise
        except (OSError, PipeError) as exc:
            raise _wrap(RelayReadFailed, f"read from {source.label} failed", exc) from exc
        if n == 0:
            break
        try:
            written = _write_chunk(sink, view[:n], strict)
        except (AccessModeError, RelayWriteFailed):
            raise
        except (OSError, PipeError) as exc:
            raise _wrap(RelayWriteFailed, f"write to {sink.label} failed", exc) from exc
        if written < n:
            log.debug("sink %s accepted %d of %d bytes; %d dropped", sink.label, written, n, n - written)
        total += written
        if on_chunk is not None:
            on_chunk(written)
    log.debug("relay %s -> %s finished: %d bytes", source.label, sink.label, total)
    return total


def _write_chunk(sink: ByteChannel, chunk: memoryview, strict: bool) -> int:
    written = sink.write(chunk)
    if not strict:
        return written
    while written < len(chunk):
        n = sink.write(chunk[written:])
        if n == 0:
            raise RelayWriteFailed(f"{sink.label} accepted no bytes, {len(chunk) - written} still pending")
        written += n
    return written


def _wrap(kind: type[PipeError], message: str, exc: OSError | PipeError) -> PipeError:
    if isinstance(exc, OSError):
        return kind.from_os_error(message, exc)
    return kind(f"{message}: {exc.message}", code=exc.code)
