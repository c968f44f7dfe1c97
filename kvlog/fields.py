"""
kvlog Field Canonicalization

Turns the loosely-typed key/value arguments accepted by every backend into a
deterministic field block of the form ``{"key1": value1, "key2": value2}``.

Key features:
- Pre-typed ``Field`` objects and alternating key/value pairs can be mixed
- Malformed input (dangling key, non-string key) is reported as diagnostics
  instead of raising
- Values are stringified best-effort: scalars bare, strings quoted, everything
  else JSON-encoded with a bounded debug fallback
- Context field sets are merged last-write-wins and sorted by key
"""

import ctypes
import dataclasses
import json
import reprlib
from dataclasses import dataclass, field
from decimal import Decimal
from typing import Any, Iterable, List, Optional, Sequence, Tuple

from kvlog.levels import Level

IGNORED_KEY_MESSAGE = "Ignored key without a value."
INVALID_KEYS_MESSAGE = "Ignored key-value pairs with non-string keys."

_debug_repr = reprlib.Repr()
_debug_repr.maxlevel = 4
_debug_repr.maxstring = 256
_debug_repr.maxother = 256
_debug_repr.maxlist = 32
_debug_repr.maxdict = 32


@dataclass(frozen=True)
class Field:
    """
    A pre-typed key/value field.

    A Field occupies a single slot in a key/value argument sequence, so
    ``logger.infow("msg", Field("name", "ariel"), "foo", 100)`` carries two
    fields.

    Attributes:
        key: Field name
        value: Field value, rendered with ``stringify``
    """
    key: str
    value: Any


@dataclass(frozen=True)
class Diagnostic:
    """
    A synthetic ERROR entry describing malformed key/value input.

    Attributes:
        message: Fixed diagnostic message
        key: Name of the single field describing the offending input
        value: Offending input, already reduced to JSON-friendly values
    """
    message: str
    key: str
    value: Any

    @property
    def level(self) -> Level:
        return Level.ERROR

    @property
    def block(self) -> str:
        return FieldSet.from_pairs([(self.key, self.value)]).render()

    def render(self) -> str:
        return join_message(self.message, self.block)


@dataclass
class FieldSplit:
    """
    Result of splitting a key/value argument sequence.

    Attributes:
        pairs: Well-formed (key, value) pairs in call order
        dangling: Trailing key that had no value, if any
        has_dangling: Whether ``dangling`` is set (the key itself may be None)
        invalid: (key, value) pairs skipped because the key is not a string
    """
    pairs: List[Tuple[str, Any]] = field(default_factory=list)
    dangling: Any = None
    has_dangling: bool = False
    invalid: List[Tuple[Any, Any]] = field(default_factory=list)

    @property
    def malformed(self) -> bool:
        return self.has_dangling or bool(self.invalid)

    def diagnostics(self) -> List[Diagnostic]:
        """
        Build the diagnostic entries for malformed input.

        The dangling-key diagnostic always precedes the non-string-key one.

        Returns:
            Zero, one or two Diagnostic records
        """
        result = []
        if self.has_dangling:
            result.append(Diagnostic(IGNORED_KEY_MESSAGE, "ignored", _plain(self.dangling)))
        if self.invalid:
            pairs = [[_plain(k), _plain(v)] for k, v in self.invalid]
            result.append(Diagnostic(INVALID_KEYS_MESSAGE, "invalid", pairs))
        return result


def split_fields(key_vals: Sequence[Any]) -> FieldSplit:
    """
    Split a flat key/value sequence into well-formed pairs and diagnostics.

    Slots are processed left to right. A ``Field`` consumes one slot; anything
    else consumes two as ``(key, value)``. A pair whose key is not a ``str`` is
    collected into ``invalid`` and skipped. A final unpaired slot becomes the
    dangling key. Processing always continues with the next slot.

    Args:
        key_vals: Alternating keys and values, possibly mixed with Fields

    Returns:
        FieldSplit describing the usable pairs and the malformed remainder
    """
    split = FieldSplit()
    i, n = 0, len(key_vals)
    while i < n:
        item = key_vals[i]
        if isinstance(item, Field):
            split.pairs.append((item.key, item.value))
            i += 1
            continue
        if i + 1 >= n:
            split.dangling = item
            split.has_dangling = True
            break
        value = key_vals[i + 1]
        if isinstance(item, str):
            split.pairs.append((str(item), value))
        else:
            split.invalid.append((item, value))
        i += 2
    return split


def stringify(value: Any) -> str:
    """
    Render a field value for a field block.

    Strings are JSON-quoted, numbers and booleans are bare, pointer-sized
    integers are hex. Anything else is encoded as compact JSON; when that
    fails the value is rendered with a depth-bounded debug representation.
    This function never raises.

    Args:
        value: Any Python object

    Returns:
        Textual form of the value
    """
    try:
        if isinstance(value, bool):
            return "true" if value else "false"
        if isinstance(value, str):
            return json.dumps(value, ensure_ascii=False)
        if isinstance(value, (int, float, Decimal)):
            return str(value)
        if isinstance(value, ctypes.c_void_p):
            return hex(value.value or 0)
        return json.dumps(
            value,
            ensure_ascii=False,
            separators=(",", ":"),
            default=_json_default,
        )
    except Exception:
        # Oversized ints, broken __str__ or model_dump, circular references.
        return _safe_repr(value)


def _json_default(value: Any) -> Any:
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {f.name: getattr(value, f.name) for f in dataclasses.fields(value)}
    if callable(getattr(value, "model_dump", None)):
        return value.model_dump(mode="json")
    if isinstance(value, (set, frozenset)):
        return list(value)
    if isinstance(value, (bytes, bytearray)):
        return value.decode("utf-8", errors="replace")
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _safe_repr(value: Any) -> str:
    try:
        return _debug_repr.repr(value)
    except Exception:
        return object.__repr__(value)


def _plain(value: Any) -> Any:
    """Reduce a value to something json.dumps accepts without a fallback."""
    if value is None or isinstance(value, (bool, int, float, str)):
        return value
    return _safe_repr(value)


class FieldSet:
    """
    Immutable, ordered collection of rendered fields.

    Each entry is a ``(key, rendered_value)`` pair where the value has already
    been passed through ``stringify``. A FieldSet is never mutated after it is
    built; ``merge`` and ``extend`` return new instances, which is what lets a
    derived logger share nothing mutable with its parent.
    """

    __slots__ = ("_items",)

    def __init__(self, items: Iterable[Tuple[str, str]] = ()):
        self._items: Tuple[Tuple[str, str], ...] = tuple(items)

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, Any]]) -> "FieldSet":
        """Build a sorted, de-duplicated FieldSet from raw (key, value) pairs."""
        return cls().merge_pairs(pairs)

    def merge_pairs(self, pairs: Iterable[Tuple[str, Any]]) -> "FieldSet":
        merged = dict(self._items)
        for key, value in pairs:
            merged[key] = stringify(value)
        return FieldSet(sorted(merged.items()))

    def merge(self, key_vals: Sequence[Any]) -> Tuple["FieldSet", FieldSplit]:
        """
        Overlay new key/value arguments onto this set.

        Later occurrences of a key overwrite earlier ones, and the result is
        sorted by key so that rendering depends only on the final key/value
        set.

        Args:
            key_vals: Alternating keys and values, possibly mixed with Fields

        Returns:
            Tuple of (new FieldSet, FieldSplit carrying any diagnostics)
        """
        split = split_fields(key_vals)
        return self.merge_pairs(split.pairs), split

    def extend(self, key_vals: Sequence[Any]) -> Tuple["FieldSet", FieldSplit]:
        """
        Append per-call fields after this set's fields.

        Existing keys keep their position (a per-call value replaces theirs);
        new keys follow in call order, a repeated per-call key keeping its
        first position with its last value.

        Unlike ``merge``, the result is not re-sorted: the rendered block of a
        ``*w`` call depends on the order its per-call keys were passed in, so
        ``warnw("m", "foo", 1, "bar", 2)`` renders ``{"foo": 1, "bar": 2}``.
        Only context fields are canonical (sorted, order-independent).

        Args:
            key_vals: Alternating keys and values, possibly mixed with Fields

        Returns:
            Tuple of (new FieldSet, FieldSplit carrying any diagnostics)
        """
        split = split_fields(key_vals)
        if not split.pairs:
            return self, split
        ordered = dict(self._items)
        for key, value in split.pairs:
            ordered[key] = stringify(value)
        return FieldSet(ordered.items()), split

    def render(self) -> str:
        if not self._items:
            return ""
        body = ", ".join(f"{json.dumps(k, ensure_ascii=False)}: {v}" for k, v in self._items)
        return "{" + body + "}"

    def keys(self) -> List[str]:
        return [k for k, _ in self._items]

    def items(self) -> Tuple[Tuple[str, str], ...]:
        return self._items

    def __len__(self) -> int:
        return len(self._items)

    def __bool__(self) -> bool:
        return bool(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, FieldSet):
            return NotImplemented
        return self._items == other._items

    def __hash__(self) -> int:
        return hash(self._items)

    def __repr__(self) -> str:
        return f"FieldSet({self.render()!r})"


EMPTY_FIELDS = FieldSet()


def join_message(message: str, block: str) -> str:
    """Join a message and a field block with a tab, omitting empty parts."""
    if message and block:
        return f"{message}\t{block}"
    return message or block


def sprint(*args: Any) -> str:
    """
    Concatenate operands into a message.

    A space is inserted between two adjacent operands when neither of them is
    a string, so ``sprint("3", "c")`` gives ``"3c"`` and ``sprint(100, 200)``
    gives ``"100 200"``.
    """
    parts = []
    previous_is_str = True
    for i, arg in enumerate(args):
        is_str = isinstance(arg, str)
        if i > 0 and not is_str and not previous_is_str:
            parts.append(" ")
        parts.append(arg if is_str else _operand_text(arg))
        previous_is_str = is_str
    return "".join(parts)


def _operand_text(arg: Any) -> str:
    try:
        return str(arg)
    except Exception:
        return _safe_repr(arg)


def sprintf(template: str, *args: Any) -> str:
    """
    Render a ``%``-style template; a trailing newline is stripped.

    With no arguments the template is used verbatim. A template that does not
    fit its arguments is rendered as the template followed by
    ``%!(BADFORMAT ...)`` instead of raising.
    """
    if not args:
        text = template
    else:
        try:
            text = template % args
        except Exception:
            text = f"{template}%!(BADFORMAT {', '.join(_safe_repr(a) for a in args)})"
    return strip_newline(text)


def strip_newline(text: str) -> str:
    return text[:-1] if text.endswith("\n") else text


def render_with_fields(message: str, fields: FieldSet, key_vals: Optional[Sequence[Any]] = None) -> Tuple[str, List[Diagnostic]]:
    """
    Render a message with context fields and optional per-call fields.

    Args:
        message: Already rendered message text
        fields: Context FieldSet of the calling logger
        key_vals: Per-call key/value arguments, if any

    Returns:
        Tuple of (rendered line, diagnostics to record before it)
    """
    if not key_vals:
        return join_message(strip_newline(message), fields.render()), []
    combined, split = fields.extend(key_vals)
    return join_message(strip_newline(message), combined.render()), split.diagnostics()
