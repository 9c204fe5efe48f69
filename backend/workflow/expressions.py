"""Reference expressions and guard conditions.

A string starting with ``$.`` is a path into the execution context
(``$.player.position.x``, ``$.data.0.id``, ``$.items.length``). Anything
else is a literal. Guards compare a resolved context value against an
expected value using loosely-typed comparison rules, so that definitions
authored against JSON payloads behave the same whether a number arrives
as ``5`` or ``"5"``.
"""

import json
import math
from typing import Any, Callable, Mapping, Optional

REFERENCE_PREFIX = "$."


def is_reference(expr: Any) -> bool:
    return isinstance(expr, str) and expr.startswith(REFERENCE_PREFIX)


def resolve_path(path: str, context: Any) -> Any:
    """Walk a dotted path. Returns None when any segment is absent."""
    value = context
    for segment in path.split("."):
        if isinstance(value, Mapping):
            if segment not in value:
                return None
            value = value[segment]
        elif isinstance(value, list):
            if segment == "length":
                value = len(value)
            elif segment.isdigit() and int(segment) < len(value):
                value = value[int(segment)]
            else:
                return None
        else:
            return None
    return value


def resolve_value(expr: Any, context: Mapping[str, Any]) -> Any:
    """Resolve a ``$.path`` reference against ``context``; return literals unchanged."""
    if is_reference(expr):
        return resolve_path(expr[len(REFERENCE_PREFIX):], context)
    return expr


def resolve_inputs(mapping: Mapping[str, Any], context: Mapping[str, Any]) -> dict[str, Any]:
    """Resolve every top-level value of an input mapping."""
    return {key: resolve_value(expr, context) for key, expr in mapping.items()}


# ─── Loose value semantics ─────────────────────────────────


def to_number(value: Any) -> float:
    """Numeric coercion of a JSON value. Unconvertible values give NaN."""
    if value is None:
        return math.nan
    if isinstance(value, bool):
        return 1.0 if value else 0.0
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return 0.0
        if text in ("Infinity", "+Infinity"):
            return math.inf
        if text == "-Infinity":
            return -math.inf
        if "_" in text or text.lower() in ("inf", "+inf", "-inf", "nan", "infinity", "+infinity", "-infinity"):
            return math.nan
        try:
            if text.lower().startswith(("0x", "0o", "0b")):
                return float(int(text, 0))
            return float(text)
        except ValueError:
            return math.nan
    if isinstance(value, list):
        if not value:
            return 0.0
        if len(value) == 1:
            return to_number(to_display_string(value[0]))
        return math.nan
    return math.nan


def to_display_string(value: Any) -> str:
    """String form used for query strings, substring checks and loose equality."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, float):
        if math.isnan(value):
            return "NaN"
        if math.isinf(value):
            return "Infinity" if value > 0 else "-Infinity"
        if value.is_integer():
            return str(int(value))
        return repr(value)
    if isinstance(value, list):
        return ",".join(to_display_string(v) for v in value)
    if isinstance(value, Mapping):
        return "[object Object]"
    return str(value)


def _to_primitive(value: Any) -> Any:
    if isinstance(value, (list, Mapping)):
        return to_display_string(value)
    return value


def loose_equals(actual: Any, expected: Any) -> bool:
    """Coercive equality between two JSON values.

    Null only equals null. Containers compare by identity against each
    other and by string form against primitives. Booleans compare as
    numbers; a number and a string compare numerically.
    """
    if actual is None or expected is None:
        return actual is None and expected is None

    actual_container = isinstance(actual, (list, Mapping))
    expected_container = isinstance(expected, (list, Mapping))
    if actual_container and expected_container:
        return actual is expected
    if actual_container or expected_container:
        return loose_equals(_to_primitive(actual), _to_primitive(expected))

    if isinstance(actual, bool) or isinstance(expected, bool):
        if isinstance(actual, bool) and isinstance(expected, bool):
            return actual == expected
        return to_number(actual) == to_number(expected)

    if isinstance(actual, str) and isinstance(expected, str):
        return actual == expected
    if isinstance(actual, str) or isinstance(expected, str):
        return to_number(actual) == to_number(expected)

    return actual == expected


def _compare(op: Callable[[float, float], bool]) -> Callable[[Any, Any], bool]:
    def compare(actual: Any, expected: Any) -> bool:
        a, b = to_number(actual), to_number(expected)
        if math.isnan(a) or math.isnan(b):
            return False
        return op(a, b)
    return compare


def _contains(actual: Any, expected: Any) -> bool:
    if expected is None:
        return False
    return isinstance(actual, str) and to_display_string(expected) in actual


_OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "==": loose_equals,
    "!=": lambda actual, expected: not loose_equals(actual, expected),
    ">": _compare(lambda a, b: a > b),
    "<": _compare(lambda a, b: a < b),
    ">=": _compare(lambda a, b: a >= b),
    "<=": _compare(lambda a, b: a <= b),
    "contains": _contains,
    "exists": lambda actual, _expected: actual is not None,
}


def evaluate_condition(params: Optional[Mapping[str, Any]], context: Mapping[str, Any]) -> bool:
    """Evaluate ``{key, operator, value}`` against the context.

    ``key`` is a context path without the ``$.`` prefix. Unknown operators
    fall back to equality.
    """
    params = params or {}
    key = params.get("key")
    operator = params.get("operator") or "=="
    expected = params.get("value")

    actual = resolve_path(str(key), context) if key is not None else None
    return _OPERATORS.get(operator, loose_equals)(actual, expected)


def fingerprint(state: str, context: Mapping[str, Any]) -> str:
    """Stable identity of a (state, context) pair for loop detection."""
    return f"{state}:{json.dumps(context, sort_keys=True, default=str)}"
