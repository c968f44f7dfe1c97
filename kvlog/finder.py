"""
kvlog Message Finder

Read-only query engine over the entries captured by a Scavenger.

Every query takes a snapshot of the entry store under its lock and then
searches the snapshot, so no lock is held while patterns are evaluated.

Pattern mini-language used by ``find``, ``find_unique``, ``find_all`` and
``find_sequence``: a pattern is a literal substring unless it starts with
``rex:``, in which case the remainder (leading whitespace stripped) is a
regular expression. An empty literal or an empty regular expression matches
only messages that are exactly empty.
"""

import re
from typing import Callable, List, NamedTuple, Sequence, TYPE_CHECKING

from kvlog.exceptions import InvalidPatternError

if TYPE_CHECKING:
    from kvlog.scavenger import EntryStore

REX_PREFIX = "rex:"

Matcher = Callable[[str], bool]


class FindResult(NamedTuple):
    """Outcome of a single-entry search.

    ``index`` is -1 when nothing matched.
    """
    message: str
    index: int
    found: bool


class SequenceResult(NamedTuple):
    """Outcome of a sequence search.

    Attributes:
        matched: Number of leading patterns that were satisfied
        indices: Entry index that satisfied each of those patterns
        complete: Whether every pattern was satisfied
    """
    matched: int
    indices: List[int]
    complete: bool


NOT_FOUND = FindResult("", -1, False)


def _is_empty(message: str) -> bool:
    return message == ""


def string_matcher(substr: str) -> Matcher:
    if substr == "":
        return _is_empty
    return lambda message: substr in message


def regexp_matcher(pattern: str) -> Matcher:
    """
    Compile a regular expression into a matcher.

    Raises:
        InvalidPatternError: If the pattern does not compile
    """
    if pattern == "":
        return _is_empty
    try:
        rex = re.compile(pattern)
    except re.error as error:
        raise InvalidPatternError(
            f"invalid regular expression {pattern!r}: {error}",
            details={"pattern": pattern},
        ) from error
    return lambda message: rex.search(message) is not None


def split_rex_prefix(pattern: str):
    """Return ``(is_regexp, body)`` for a mini-language pattern."""
    if pattern.startswith(REX_PREFIX):
        return True, pattern[len(REX_PREFIX):].lstrip()
    return False, pattern


def pattern_matcher(pattern: str) -> Matcher:
    is_regexp, body = split_rex_prefix(pattern)
    return regexp_matcher(body) if is_regexp else string_matcher(body)


class MessageFinder:
    """
    Query engine over one EntryStore.

    All ``find_*`` methods search the messages in store order. Searches are
    linear in the number of entries times the number of patterns, which is
    plenty for test-sized stores.
    """

    def __init__(self, store: "EntryStore"):
        self._store = store

    def _messages(self) -> List[str]:
        return [entry.message for entry in self._store.snapshot()]

    def _first(self, matcher: Matcher) -> FindResult:
        for i, message in enumerate(self._messages()):
            if matcher(message):
                return FindResult(message, i, True)
        return NOT_FOUND

    def _unique(self, matcher: Matcher) -> FindResult:
        first = NOT_FOUND
        for i, message in enumerate(self._messages()):
            if not matcher(message):
                continue
            if first.found:
                return FindResult(first.message, first.index, False)
            first = FindResult(message, i, True)
        return first

    def _all(self, matcher: Matcher) -> List[int]:
        return [i for i, message in enumerate(self._messages()) if matcher(message)]

    def _sequence(self, matchers: Sequence[Matcher]) -> SequenceResult:
        indices: List[int] = []
        if matchers:
            j = 0
            for i, message in enumerate(self._messages()):
                if matchers[j](message):
                    indices.append(i)
                    j += 1
                    if j == len(matchers):
                        break
        return SequenceResult(len(indices), indices, len(indices) == len(matchers))

    # Substring searches

    def find_string(self, substr: str) -> FindResult:
        """Find the first message containing ``substr``."""
        return self._first(string_matcher(substr))

    def find_unique_string(self, substr: str) -> FindResult:
        """Find the only message containing ``substr``.

        With two or more matches the first match is returned with
        ``found=False``.
        """
        return self._unique(string_matcher(substr))

    def find_all_string(self, substr: str) -> List[int]:
        return self._all(string_matcher(substr))

    def find_string_sequence(self, substrs: Sequence[str]) -> SequenceResult:
        """
        Match substrings against the entries in order.

        A single left-to-right scan: each entry can satisfy at most the next
        unsatisfied pattern, and there is no backtracking.

        Args:
            substrs: Substrings that must appear in this order

        Returns:
            SequenceResult with the satisfied positions
        """
        return self._sequence([string_matcher(s) for s in substrs])

    # Regular expression searches

    def find_regexp(self, pattern: str) -> FindResult:
        """Find the first message the regular expression matches.

        Raises:
            InvalidPatternError: If the pattern does not compile
        """
        return self._first(regexp_matcher(pattern))

    def find_unique_regexp(self, pattern: str) -> FindResult:
        return self._unique(regexp_matcher(pattern))

    def find_all_regexp(self, pattern: str) -> List[int]:
        return self._all(regexp_matcher(pattern))

    def find_regexp_sequence(self, patterns: Sequence[str]) -> SequenceResult:
        # Compile everything up front so a bad pattern fails before scanning.
        return self._sequence([regexp_matcher(p) for p in patterns])

    # Prefix-dispatched searches

    def find(self, pattern: str) -> FindResult:
        """Like ``find_string``, or ``find_regexp`` for ``rex:`` patterns."""
        return self._first(pattern_matcher(pattern))

    def find_unique(self, pattern: str) -> FindResult:
        return self._unique(pattern_matcher(pattern))

    def find_all(self, pattern: str) -> List[int]:
        return self._all(pattern_matcher(pattern))

    def find_sequence(self, patterns: Sequence[str]) -> SequenceResult:
        """Sequence search mixing literal and ``rex:`` patterns."""
        return self._sequence([pattern_matcher(p) for p in patterns])
