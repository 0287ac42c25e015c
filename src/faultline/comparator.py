"""Comparison of probe outcomes against their expected values.

Numeric criteria: ``==``, ``!=``, ``>``, ``<``, ``>=``, ``<=``, ``oneOf``
(expected value is a comma-separated list or ``[a,b,c]``) and ``between``
(expected value is ``low,high`` or ``[low,high]``, inclusive).

String criteria: ``equal``, ``notEqual``, ``contains``, ``notContains``,
``matches``, ``notMatches`` (regular expressions) and ``oneOf``.
"""

from __future__ import annotations

import operator
import re
from collections.abc import Callable

from faultline.errors import ProbeError
from faultline.models import ComparatorType, Comparison

_NUMERIC_OPERATORS: dict[str, Callable[[float, float], bool]] = {
    "==": operator.eq,
    "!=": operator.ne,
    ">": operator.gt,
    "<": operator.lt,
    ">=": operator.ge,
    "<=": operator.le,
}


def _split_list(value: str) -> list[str]:
    return [item.strip() for item in value.strip().strip("[]").split(",") if item.strip()]


def _to_number(value: object, kind: ComparatorType, probe: str | None) -> float:
    try:
        return int(str(value).strip()) if kind == ComparatorType.int else float(str(value).strip())
    except ValueError:
        raise ProbeError(
            f"unable to parse '{value}' as {kind.value}", target=probe
        ) from None


def _compare_numeric(actual: object, comparison: Comparison, probe: str | None) -> bool:
    kind = comparison.type
    lhs = _to_number(actual, kind, probe)
    criteria = comparison.criteria

    if criteria in _NUMERIC_OPERATORS:
        return _NUMERIC_OPERATORS[criteria](lhs, _to_number(comparison.value, kind, probe))
    if criteria == "oneOf":
        return lhs in [_to_number(item, kind, probe) for item in _split_list(comparison.value)]
    if criteria == "between":
        bounds = [_to_number(item, kind, probe) for item in _split_list(comparison.value)]
        if len(bounds) != 2:
            raise ProbeError(
                f"'between' criteria needs exactly two bounds, got '{comparison.value}'",
                target=probe,
            )
        return bounds[0] <= lhs <= bounds[1]
    raise ProbeError(f"criteria '{criteria}' not supported for {kind.value}", target=probe)


def _compare_string(actual: object, comparison: Comparison, probe: str | None) -> bool:
    lhs = str(actual).strip()
    expected = comparison.value
    criteria = comparison.criteria

    if criteria in ("equal", "=="):
        return lhs == expected
    if criteria in ("notEqual", "!="):
        return lhs != expected
    if criteria == "contains":
        return expected in lhs
    if criteria == "notContains":
        return expected not in lhs
    if criteria == "matches":
        return re.search(expected, lhs) is not None
    if criteria == "notMatches":
        return re.search(expected, lhs) is None
    if criteria == "oneOf":
        return lhs in _split_list(expected)
    raise ProbeError(f"criteria '{criteria}' not supported for string", target=probe)


def compare(actual: object, comparison: Comparison, probe: str | None = None) -> None:
    """Check *actual* against *comparison*.

    Raises:
        ProbeError: if the criteria is not met, unknown, or a value cannot be parsed.
    """
    if comparison.type == ComparatorType.string:
        matched = _compare_string(actual, comparison, probe)
    else:
        matched = _compare_numeric(actual, comparison, probe)
    if not matched:
        raise ProbeError(
            f"actual value '{actual}' does not satisfy criteria "
            f"'{comparison.criteria}' against expected '{comparison.value}'",
            target=probe,
        )


__all__ = ["compare"]
