"""Filter predicates for selecting which seed records a step loads.

A filter spec is one of:

- ``None`` or ``True``: keep every record
- ``False``: keep nothing
- a predicate object, e.g. ``{"equals": {"field": "Type", "value": "Customer"}}``
- a list of predicate objects, all of which must match

Predicates: exists, missing, equals, neq, in, nin, regex, gt, gte, lt, lte,
contains, startsWith, endsWith, length, plus the combinators all, any, not.
A predicate of an unknown kind matches.
"""

import logging
import math
import re
from enum import Enum
from typing import Any, Callable, Dict, List, Optional

from ..errors import ConfigurationError
from ..utils import get_by_path, stringify

logger = logging.getLogger(__name__)


class PredicateKind(str, Enum):
    """Predicate kinds, in detection order (combinators first)."""
    ALL = "all"
    ANY = "any"
    NOT = "not"
    EXISTS = "exists"
    MISSING = "missing"
    EQUALS = "equals"
    NEQ = "neq"
    IN = "in"
    NIN = "nin"
    REGEX = "regex"
    GT = "gt"
    GTE = "gte"
    LT = "lt"
    LTE = "lte"
    CONTAINS = "contains"
    STARTS_WITH = "startsWith"
    ENDS_WITH = "endsWith"
    LENGTH = "length"


_REGEX_FLAGS = {
    "i": re.IGNORECASE,
    "m": re.MULTILINE,
    "s": re.DOTALL,
    "x": re.VERBOSE,
}


def _present(value: Any) -> bool:
    """A predicate key counts when its argument is set: empty lists and objects do, null, false, 0 and "" do not."""
    if isinstance(value, (list, dict)):
        return True
    if isinstance(value, float) and math.isnan(value):
        return False
    return bool(value)


def detect_kind(predicate: Dict[str, Any]) -> Optional[PredicateKind]:
    """Return the kind of a predicate object, or None if it has none we know."""
    for kind in PredicateKind:
        if kind.value in predicate and _present(predicate[kind.value]):
            return kind
    return None


def _text(value: Any, ci: bool = False) -> str:
    s = stringify(value)
    return s.lower() if ci else s


def _same(a: Any, b: Any) -> bool:
    """Strict equality: booleans never equal numbers."""
    if isinstance(a, bool) != isinstance(b, bool):
        return False
    return a == b


def _to_number(value: Any) -> Optional[float]:
    """Coerce a value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    elif isinstance(value, str):
        if not value.strip():
            return None
        try:
            number = float(value)
        except ValueError:
            return None
    else:
        return None
    return number if math.isfinite(number) else None


def _compile_regex(pattern: Any, flags: Optional[str]):
    re_flags = 0
    for flag in flags or "":
        # Global / unicode / sticky have no meaning for a single search
        re_flags |= _REGEX_FLAGS.get(flag, 0)
    try:
        return re.compile(str(pattern), re_flags)
    except re.error as e:
        raise ConfigurationError(f"Invalid regex filter pattern {pattern!r}: {e}")


def _as_list(value: Any) -> List[Any]:
    return value if isinstance(value, list) else [value]


def _match_all(record, arg):
    return all(evaluate(record, p) for p in _as_list(arg))


def _match_any(record, arg):
    return any(evaluate(record, p) for p in _as_list(arg))


def _match_not(record, arg):
    return not evaluate(record, arg)


def _match_exists(record, arg):
    return get_by_path(record, arg) is not None


def _match_missing(record, arg):
    return get_by_path(record, arg) is None


def _match_equals(record, arg):
    value = get_by_path(record, arg.get("field"))
    if arg.get("ci"):
        return _text(value, True) == _text(arg.get("value"), True)
    return _same(value, arg.get("value"))


def _match_neq(record, arg):
    return not _match_equals(record, arg)


def _match_in(record, arg):
    value = get_by_path(record, arg.get("field"))
    values = arg.get("values") or []
    if arg.get("ci"):
        return _text(value, True) in [_text(v, True) for v in values]
    return any(_same(value, v) for v in values)


def _match_nin(record, arg):
    return not _match_in(record, arg)


def _match_regex(record, arg):
    value = get_by_path(record, arg.get("field"))
    if value is None:
        return False
    rx = _compile_regex(arg.get("pattern", ""), arg.get("flags"))
    return rx.search(stringify(value)) is not None


def _numeric(compare: Callable[[float, float], bool]):
    def match(record, arg):
        a = _to_number(get_by_path(record, arg.get("field")))
        b = _to_number(arg.get("value"))
        if a is None or b is None:
            return False
        return compare(a, b)
    return match


def _text_match(compare: Callable[[str, str], bool]):
    def match(record, arg):
        value = get_by_path(record, arg.get("field"))
        if value is None:
            return False
        ci = bool(arg.get("ci"))
        return compare(_text(value, ci), _text(arg.get("value"), ci))
    return match


_LENGTH_OPS = {
    "eq": lambda a, b: a == b,
    "neq": lambda a, b: a != b,
    "gt": lambda a, b: a > b,
    "gte": lambda a, b: a >= b,
    "lt": lambda a, b: a < b,
    "lte": lambda a, b: a <= b,
}


def _match_length(record, arg):
    value = get_by_path(record, arg.get("field"))
    if value is None:
        length = 0
    elif isinstance(value, (list, tuple, dict)):
        length = len(value)
    else:
        length = len(stringify(value))

    compare = _LENGTH_OPS.get(arg.get("op", "eq"))
    expected = _to_number(arg.get("value"))
    if compare is None or expected is None:
        return False
    return compare(length, expected)


_PATH_KINDS = (
    PredicateKind.ALL, PredicateKind.ANY, PredicateKind.NOT,
    PredicateKind.EXISTS, PredicateKind.MISSING,
)

_HANDLERS: Dict[PredicateKind, Callable[[Dict[str, Any], Any], bool]] = {
    PredicateKind.ALL: _match_all,
    PredicateKind.ANY: _match_any,
    PredicateKind.NOT: _match_not,
    PredicateKind.EXISTS: _match_exists,
    PredicateKind.MISSING: _match_missing,
    PredicateKind.EQUALS: _match_equals,
    PredicateKind.NEQ: _match_neq,
    PredicateKind.IN: _match_in,
    PredicateKind.NIN: _match_nin,
    PredicateKind.REGEX: _match_regex,
    PredicateKind.GT: _numeric(lambda a, b: a > b),
    PredicateKind.GTE: _numeric(lambda a, b: a >= b),
    PredicateKind.LT: _numeric(lambda a, b: a < b),
    PredicateKind.LTE: _numeric(lambda a, b: a <= b),
    PredicateKind.CONTAINS: _text_match(lambda a, b: b in a),
    PredicateKind.STARTS_WITH: _text_match(lambda a, b: a.startswith(b)),
    PredicateKind.ENDS_WITH: _text_match(lambda a, b: a.endswith(b)),
    PredicateKind.LENGTH: _match_length,
}


def evaluate(record: Dict[str, Any], spec: Any) -> bool:
    """
    Evaluate a filter spec against one record.

    Args:
        record: Seed record
        spec: Filter spec (bool, predicate object or list of predicates)

    Returns:
        True if the record is kept

    Raises:
        ConfigurationError: If a regex predicate has an invalid pattern
    """
    if spec is None or spec is True:
        return True
    if spec is False:
        return False
    if isinstance(spec, list):
        return all(evaluate(record, p) for p in spec)
    if not isinstance(spec, dict):
        logger.debug(f"Ignoring filter spec of unsupported type: {spec!r}")
        return True

    kind = detect_kind(spec)
    if kind is None:
        logger.debug(f"Unknown filter predicate {list(spec)}; treating as match")
        return True

    arg = spec[kind.value]
    if kind not in _PATH_KINDS and not isinstance(arg, dict):
        # An argument that is not an object names no field or value
        logger.debug(f"Filter predicate '{kind.value}' expects an object, got {arg!r}")
        arg = {}

    return _HANDLERS[kind](record, arg)


def apply_filter(records: List[Dict[str, Any]], spec: Any) -> List[Dict[str, Any]]:
    """Return the records matching the filter spec, in their original order."""
    if spec is None or spec is True:
        return list(records)
    if spec is False:
        return []
    predicates = spec if isinstance(spec, list) else [spec]
    return [r for r in records if all(evaluate(r, p) for p in predicates)]
