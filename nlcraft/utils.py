"""Helpers for reading netlink byte streams."""

_CHUNK_SIZE = 1024


def read_exact(reader, size):
    """Read exactly ``size`` bytes from ``reader``; raise EOFError if the stream ends first."""
    chunks = []
    remaining = size
    while remaining > 0:
        chunk = reader.read(remaining)
        if not chunk:
            raise EOFError(
                f"failed to fill whole buffer: {size - remaining} of {size} bytes read"
            )
        chunks.append(chunk)
        remaining -= len(chunk)
    return b"".join(chunks)


def skip_n_bytes(reader, n):
    """Discard up to ``n`` bytes from ``reader``, stopping early at end of stream."""
    while n > 0:
        chunk = reader.read(min(n, _CHUNK_SIZE))
        if not chunk:
            break
        n -= len(chunk)