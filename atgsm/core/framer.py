"""
Line framer.

Accumulates raw bytes into terminator-delimited lines.
"""

from typing import Iterable


class LineFramer:
    """
    Byte accumulator producing complete line frames.

    Lines are only observable after ``is_complete()``; ``drain()`` empties the
    buffer. A frame is complete when the decoded buffer ends with the
    terminator, or when the trailing unterminated fragment starts with one of
    the ``partials`` passed to ``is_complete`` (prompts such as ``"> "`` are
    never followed by a terminator).

    Example:

    .. code-block:: python

        framer = LineFramer("\\r\\n")
        framer.add(b"\\r\\n+CSQ: 2")
        framer.is_complete()       # False
        framer.add(b"4,99\\r\\n\\r\\nOK\\r\\n")
        framer.drain()             # ['+CSQ: 24,99', 'OK']
    """

    def __init__(self, terminator: str = "\r\n") -> None:
        self.terminator = terminator
        self._buffer = bytearray()

    def add(self, data: bytes) -> "LineFramer":
        """Append received bytes."""
        self._buffer.extend(data)
        return self

    def is_complete(self, partials: Iterable[str] = ()) -> bool:
        """Check if a complete frame is buffered."""
        if not self._buffer:
            return False
        text = self._text()
        if text.endswith(self.terminator):
            return True
        tail = text.rsplit(self.terminator, 1)[-1]
        return any(p and tail.startswith(p) for p in partials)

    def drain(self) -> list[str]:
        """Return the buffered non-blank lines and clear the buffer."""
        text = self._text()
        self._buffer.clear()
        return [line for line in text.split(self.terminator) if line.strip()]

    def clear(self) -> None:
        """Discard buffered data."""
        self._buffer.clear()

    def __len__(self) -> int:
        return len(self._buffer)

    def _text(self) -> str:
        return self._buffer.decode("utf-8", errors="replace")
