"""
Notification processor.

Matches line groups against a static table of response signatures, hands
each match to its decode function and reports which lines nothing matched.
"""

import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator, Optional

from .response import starts_with
from ..driver import Driver, DriverKeys
from ..exceptions import ATParseError
from ..parsers.tokens import Token, split_tokens

logger = logging.getLogger(__name__)

# handler(match, context) -> update dict or None
Handler = Callable[["Match", Any], Optional[dict]]


class IncompleteMatch(Exception):
    """
    Raised by a handler whose continuation lines have not arrived yet.

    The matched lines stay unprocessed so the backlog can retry them once
    the rest is read.
    """


@dataclass(frozen=True)
class Signature:
    """
    A registered response signature.

    Attributes:
        key: Driver key of the line prefix (the literal prefix when ``raw``)
        min_tokens: Tokens required after the prefix; 0 matches the bare prefix
        handler: Decode function producing a state update
        separator: Joiner used when a match spans several lines
        raw: ``key`` is a literal prefix rather than a driver key
    """
    key: str
    min_tokens: int
    handler: Handler
    separator: Optional[str] = None
    raw: bool = False


@dataclass
class Match:
    """
    One signature matched at one line position.

    ``end`` is exclusive; a match extended across lines, or a handler that
    consumes continuation lines, moves it forward.
    """
    signature: Signature
    index: int
    end: int
    prefix: str
    value: Optional[str]
    tokens: Optional[list[Token]]
    lines: list[str] = field(repr=False)
    boundary: Callable[[str], bool] = field(repr=False)

    def continuation(self) -> list[str]:
        """Lines following the match up to the next signature line."""
        result = []
        for line in self.lines[self.end:]:
            if self.boundary(line):
                break
            result.append(line)
        return result

    def consume(self, count: int) -> None:
        """Mark ``count`` lines after the match as consumed."""
        self.end = min(self.end + count, len(self.lines))

    def token(self, index: int, default: Optional[Token] = None) -> Optional[Token]:
        """Token at ``index`` or ``default``."""
        if self.tokens is not None and index < len(self.tokens):
            return self.tokens[index]
        return default


@dataclass
class ProcessorResult:
    """
    Outcome of one processing pass.

    Attributes:
        updates: State updates, one per match, in line order
        unprocessed: Lines no signature matched
        remaining: Input positions of the unprocessed lines
    """
    updates: list[dict] = field(default_factory=list)
    unprocessed: list[str] = field(default_factory=list)
    remaining: list[int] = field(default_factory=list)

    @property
    def result(self) -> dict:
        """All updates merged; list values are concatenated."""
        merged: dict = {}
        for update in self.updates:
            for key, value in update.items():
                if isinstance(value, list) and isinstance(merged.get(key), list):
                    merged[key] = merged[key] + value
                else:
                    merged[key] = value
        return merged

    def extend(self, other: "ProcessorResult") -> None:
        """Append another pass's updates."""
        self.updates.extend(other.updates)


class NotificationProcessor:
    """
    Signature matcher.

    Every signature is tried at every line position; matches run in line
    order. A signature needing more tokens than its line provides is
    extended over the following lines (joined with its separator) until the
    count is reached. Lines consumed by matches are removed from the
    result; the rest are reported as unprocessed.

    Example:

    .. code-block:: python

        processor = NotificationProcessor(driver, SIGNATURES)
        result = processor.process(['+CPMS: "SM",6,40,"SR",6,40'], context)
        result.result["storage"]    # 'SM'
    """

    def __init__(self, driver: Driver, signatures: Iterable[Signature]) -> None:
        self.driver = driver
        self.signatures = tuple(signatures)

    @property
    def sentinels(self) -> list[str]:
        """Plain success/error lines that carry no information on their own."""
        values = [self.driver.get(DriverKeys.RESPONSE_OK), self.driver.get(DriverKeys.RESPONSE_ERROR)]
        return [v for v in values if v]

    def prefix(self, signature: Signature) -> Optional[str]:
        """Literal prefix of a signature, None when the driver disables it."""
        if signature.raw:
            return signature.key or None
        return self.driver.get(signature.key) or None

    def is_boundary(self, line: str) -> bool:
        """Check if a line starts with any active signature prefix."""
        for signature in self.signatures:
            prefix = self.prefix(signature)
            if prefix and starts_with(line, prefix):
                return True
        return False

    def handle(self, lines: list[str]) -> list[Match]:
        """Collect all signature matches, ordered by line position."""
        matches = []
        for signature in self.signatures:
            for index in range(len(lines)):
                match = self.match_at(signature, lines, index)
                if match is not None:
                    matches.append(match)
        matches.sort(key=lambda m: m.index)
        return matches

    def match_at(self, signature: Signature, lines: list[str], index: int) -> Optional[Match]:
        """Try one signature at one line position."""
        if index >= len(lines):
            return None
        prefix = self.prefix(signature)
        line = lines[index]
        if not prefix or not starts_with(line, prefix):
            return None

        if signature.min_tokens == 0:
            return Match(signature, index, index + 1, prefix, None, None, lines, self.is_boundary)

        value = line[len(prefix):].lstrip()
        if not value:
            return None

        for end in range(index, len(lines)):
            if end > index:
                value += (signature.separator or "") + lines[end]
            try:
                tokens = split_tokens(value)
            except ATParseError:
                continue
            if len(tokens) >= signature.min_tokens:
                return Match(signature, index, end + 1, prefix, value, tokens, lines, self.is_boundary)
        return None

    def process(self, lines: Iterable[str], context: Any = None) -> ProcessorResult:
        """
        Run one processing pass.

        Handler errors are logged; the matched lines still count as consumed.
        A handler raising :class:`IncompleteMatch` leaves its lines unprocessed.

        Args:
            lines: Complete lines in arrival order
            context: Passed to every handler

        Returns:
            ProcessorResult with updates and unprocessed lines
        """
        work = list(lines)
        result = ProcessorResult()
        consumed: set[int] = set()

        for match in self.handle(work):
            if match.index in consumed:
                continue
            try:
                update = match.signature.handler(match, context)
            except IncompleteMatch:
                logger.debug(f"Waiting for the rest of {work[match.index]!r}")
                continue
            except Exception as e:
                logger.error(f"Handler for {match.prefix} failed on {work[match.index]!r}: {e}",
                             exc_info=True)
                update = None
            consumed.update(range(match.index, match.end))
            if update:
                result.updates.append(update)

        for index, line in enumerate(work):
            if index not in consumed:
                result.unprocessed.append(line)
                result.remaining.append(index)
        return result


class UnprocessedBacklog:
    """
    Recovery of notifications split across more lines than a single pass covers.

    Unprocessed lines are kept between passes. Each pass drops success/error
    sentinels and reprocesses backlog plus new lines as they are, so a
    header retained while its continuation was missing gets matched. Failing
    that, every window ``i..j`` is joined into one line and the first join
    whose reprocessing yields an update is kept. Lines older than
    ``max_age`` seconds or beyond ``max_lines`` are dropped with a warning.
    Never raises.
    """

    def __init__(
        self,
        max_lines: int = 64,
        max_age: float = 300.0,
        clock: Callable[[], float] = time.monotonic
    ) -> None:
        self.max_lines = max_lines
        self.max_age = max_age
        self._clock = clock
        self._entries: list[tuple[str, float]] = []

    @property
    def lines(self) -> list[str]:
        """Currently retained lines, oldest first."""
        return [line for line, _ in self._entries]

    def __len__(self) -> int:
        return len(self._entries)

    def clear(self) -> None:
        self._entries = []

    def resolve(
        self,
        processor: NotificationProcessor,
        unprocessed: Iterable[str],
        context: Any = None
    ) -> Optional[ProcessorResult]:
        """
        Add unprocessed lines and attempt recovery.

        Returns:
            The reprocessing result when a window matched, else None
        """
        try:
            return self._resolve(processor, list(unprocessed), context)
        except Exception as e:
            logger.debug(f"Backlog recovery failed: {e}", exc_info=True)
            return None

    def _resolve(
        self,
        processor: NotificationProcessor,
        unprocessed: list[str],
        context: Any
    ) -> Optional[ProcessorResult]:
        now = self._clock()
        entries = [(line, ts) for line, ts in self._entries if now - ts <= self.max_age]
        expired = len(self._entries) - len(entries)
        if expired:
            logger.warning(f"Dropped {expired} unresolved line(s) older than {self.max_age}s")
        retained = len(entries)
        entries.extend((line, now) for line in unprocessed)

        sentinels = set(processor.sentinels)
        entries = [(line, ts) for line, ts in entries if line.strip() not in sentinels]

        # Whole lines first (a header waiting for its PDU), then joined windows
        candidates = self._windows(processor, entries)
        if retained:
            candidates = itertools.chain([entries], candidates)

        result = None
        for candidate in candidates:
            attempt = processor.process([line for line, _ in candidate], context)
            if attempt.updates:
                logger.debug(f"Unprocessed resolved {attempt.result}")
                result = attempt
                entries = [candidate[i] for i in attempt.remaining]
                break

        overflow = len(entries) - self.max_lines
        if overflow > 0:
            logger.warning(f"Unresolved backlog full, dropped {overflow} oldest line(s)")
            entries = entries[overflow:]

        for line, _ in entries:
            logger.debug(f"Unresolved: [{line}]")
        self._entries = entries
        return result

    @staticmethod
    def _windows(
        processor: NotificationProcessor,
        entries: list[tuple[str, float]]
    ) -> Iterator[list[tuple[str, float]]]:
        """Entry lists with one run of lines joined, for every run that matches a signature."""
        for start in range(len(entries)):
            combined = entries[start][0]
            for end in range(start + 1, len(entries)):
                combined += entries[end][0]
                if processor.handle([combined]):
                    stamp = min(ts for _, ts in entries[start:end + 1])
                    yield entries[:start] + [(combined, stamp)] + entries[end + 1:]
