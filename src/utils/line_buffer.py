"""Reassembles newline-delimited records from arbitrarily chunked input."""

import codecs


class LineBuffer:
    """
    Accumulates partial reads and yields only complete lines.

    Byte chunks are decoded incrementally, so a multi-byte UTF-8 character
    split across two reads is still decoded correctly.

    Example:
        >>> buf = LineBuffer()
        >>> buf.feed('PROGRESS:{"a"')
        []
        >>> buf.feed(': 1}\\nERR')
        ['PROGRESS:{"a": 1}']
        >>> buf.flush()
        'ERR'
    """

    def __init__(self):
        self._pending = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")()

    def feed(self, chunk: str | bytes) -> list[str]:
        """Add a chunk and return every line it completed (without newline)."""
        if isinstance(chunk, bytes):
            chunk = self._decoder.decode(chunk)
        self._pending += chunk
        *complete, self._pending = self._pending.split("\n")
        return [line.rstrip("\r") for line in complete]

    def flush(self) -> str:
        """Return and clear whatever is left after the final newline."""
        tail = self._decoder.decode(b"", final=True)
        rest = (self._pending + tail).rstrip("\r")
        self._pending = ""
        return rest

    @property
    def pending(self) -> str:
        return self._pending
