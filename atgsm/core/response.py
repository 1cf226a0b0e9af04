"""
Transaction matcher.

Classifies the lines received for one outstanding AT command and decides
when the command is finished.
"""

import logging
from typing import Iterable, Optional, Union

logger = logging.getLogger(__name__)

Patterns = Union[str, Iterable[str], None]

OK_MARKERS = ("OK",)
ERROR_MARKERS = ("ERROR", "NO CARRIER", "COMMAND NOT SUPPORT", "+CME ERROR:", "+CMS ERROR:")
RETAINED_MARKERS = ("+CME ERROR:", "+CMS ERROR:")


def as_patterns(value: Patterns) -> list[str]:
    """Normalize a pattern or pattern list, dropping empty entries."""
    if value is None:
        return []
    if isinstance(value, str):
        return [value] if value else []
    return [v for v in value if v]


def starts_with(line: str, pattern: str) -> bool:
    """Case-insensitive prefix test."""
    return bool(pattern) and line[:len(pattern)].lower() == pattern.lower()


class Transaction:
    """
    Runtime state of one AT command.

    ``check`` is fed every complete frame received while the command is
    outstanding. The priority is: explicit ``expect`` patterns, then the
    success marker, then error markers. Lines before the matched line form
    the response (minus ``ignore`` patterns and the command echo); lines
    after it are ``extras`` that belong to the notification path.

    Structured error lines (``+CME ERROR:``/``+CMS ERROR:``) stay in the
    response and their detail is exposed as ``error_code``.

    Attributes:
        command: Transmitted text, without terminator
        okay: Finished with success (expect or OK)
        error: Finished with an error marker
        timed_out: Finished by timeout
        responses: Captured response lines
        extras: Lines that arrived after the conclusive line
        matched: The pattern that concluded the transaction
        error_code: Detail of a structured error
        result: Fields decoded from the responses (filled by the modem core)
    """

    def __init__(
        self,
        command: str,
        expect: Patterns = None,
        ignore: Patterns = None,
        ok_markers: Iterable[str] = OK_MARKERS,
        error_markers: Iterable[str] = ERROR_MARKERS,
        retained_markers: Iterable[str] = RETAINED_MARKERS
    ) -> None:
        self.command = command
        self.expect = as_patterns(expect)
        self.ignore = as_patterns(ignore)
        self.ok_markers = as_patterns(list(ok_markers))
        self.error_markers = as_patterns(list(error_markers))
        self.retained_markers = as_patterns(list(retained_markers))

        self.okay = False
        self.error = False
        self.timed_out = False
        self.responses: list[str] = []
        self.extras: list[str] = []
        self.matched: Optional[str] = None
        self.error_code: Optional[str] = None
        self.result: dict = {}

    @property
    def finished(self) -> bool:
        """Check if the transaction reached a conclusion."""
        return self.okay or self.error or self.timed_out

    def check(self, lines: Iterable[str]) -> bool:
        """
        Add newly framed lines and try to conclude.

        Once finished, further calls change nothing, so the matched window
        (and its extras) are consumed exactly once.

        Args:
            lines: Newly received complete lines

        Returns:
            True if the transaction is finished
        """
        if self.finished:
            return True

        candidates = self.responses + list(lines)

        found = None
        if self.expect:
            found = self._find(candidates, self.expect)
            if found:
                self.okay = True
        if found is None:
            found = self._find(candidates, self.ok_markers)
            if found:
                self.okay = True
        if found is None:
            found = self._find(candidates, self.error_markers)
            if found:
                self.error = True

        if found is None:
            # Keep raw lines: a later frame may complete a split line
            self.responses = candidates
            return False

        position, pattern = found
        self.matched = pattern
        retain = self.error and pattern in self.retained_markers
        if retain:
            self.error_code = candidates[position][len(pattern):].strip()

        captured = candidates[:position + 1] if retain else candidates[:position]
        self.responses = self._collect(captured)
        self.extras = candidates[position + 1:]
        return True

    def finish_timeout(self) -> None:
        """Conclude the transaction as timed out."""
        self.timed_out = True
        self.responses = self._collect(self.responses)

    def _collect(self, lines: list[str]) -> list[str]:
        lines = [line for line in lines if not self._is_ignored(line)]
        if lines and lines[0].strip() == self.command.strip():
            logger.debug(f"Stripping echo line: {lines[0]}")
            lines = lines[1:]
        return lines

    def _is_ignored(self, line: str) -> bool:
        return any(starts_with(line, pattern) for pattern in self.ignore)

    def _find(self, candidates: list[str], patterns: list[str]) -> Optional[tuple[int, str]]:
        for position in range(len(candidates)):
            for pattern in patterns:
                if self._try_match(candidates, position, pattern):
                    return position, pattern
        return None

    def _try_match(self, candidates: list[str], position: int, pattern: str) -> bool:
        line = candidates[position]
        if starts_with(line, pattern):
            return True

        # A reply split across writes: line is a fragment of the pattern
        if not pattern.lower().startswith(line.lower()):
            return False
        combined = line
        for end in range(position + 1, len(candidates)):
            combined += candidates[end]
            if starts_with(combined, pattern):
                candidates[position:end + 1] = [combined]
                return True
        return False

    # Convenience accessors

    def res(self) -> str:
        """Response lines joined with a space."""
        return " ".join(self.responses)

    def pick(self) -> Optional[str]:
        """First response line, if any."""
        return self.responses[0] if self.responses else None

    def has_response(self) -> bool:
        """Check if any response line was captured."""
        return bool(self.responses)

    def describe(self) -> str:
        """Short human readable outcome."""
        if self.timed_out:
            return f"{self.command}: Operation timeout"
        if self.error and self.responses:
            return f"{self.command}: {self.res()}"
        if self.error:
            return f"{self.command}: Operation failed"
        return f"{self.command}: OK"

    def __repr__(self) -> str:
        state = "okay" if self.okay else "error" if self.error else \
            "timeout" if self.timed_out else "pending"
        return f"<Transaction {self.command!r} {state} responses={self.responses}>"
