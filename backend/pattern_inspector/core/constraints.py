"""
Pattern constraints: numeric ranges and categorical membership, row evaluation and merging.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Union

from ..utils.logger import get_logger
from .stats import Row, as_text, is_missing, to_number

logger = get_logger("core.constraints")

UNBOUNDED_BELOW = "-inf"
UNBOUNDED_ABOVE = "inf"

# Used by the numeric merge when neither side specifies a bound
UNSPECIFIED_BOUND_DEFAULT = 0.0

Bound = Union[float, str, None]


@dataclass(frozen=True)
class NumericConstraint:
    lb: Bound = None
    ub: Bound = None

    kind = "numeric"

    @property
    def lower(self) -> float:
        if self.lb is None or self.lb == UNBOUNDED_BELOW:
            return -math.inf
        return float(self.lb)

    @property
    def upper(self) -> float:
        if self.ub is None or self.ub == UNBOUNDED_ABOVE:
            return math.inf
        return float(self.ub)

    def is_satisfied_by(self, value: Any) -> bool:
        number = to_number(value)
        if number is None:
            return False
        return self.lower <= number <= self.upper

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {}
        if self.lb is not None:
            out["lb"] = self.lb
        if self.ub is not None:
            out["ub"] = self.ub
        return out


@dataclass(frozen=True)
class CategoricalConstraint:
    allowed: FrozenSet[str]

    kind = "categorical"

    def is_satisfied_by(self, value: Any) -> bool:
        if is_missing(value):
            return False
        return as_text(value) in self.allowed

    def to_dict(self) -> Dict[str, Any]:
        return {"in": sorted(self.allowed)}


Constraint = Union[NumericConstraint, CategoricalConstraint]
ConstraintSet = Dict[str, Constraint]


class ConstraintError(ValueError):
    pass


def _parse_bound(value: Any, sentinel: str, attribute: str) -> Bound:
    if value is None:
        return None
    if isinstance(value, str) and value.strip() in (UNBOUNDED_BELOW, UNBOUNDED_ABOVE):
        return value.strip()
    number = to_number(value)
    if number is None:
        raise ConstraintError(f"Bound {value!r} on '{attribute}' is not a number or '{sentinel}'")
    return number


def constraint_from_dict(attribute: str, raw: Any) -> Optional[Constraint]:
    """Build a Constraint from its mined dict form.

    Returns None for empty entries (None, {}, {"in": []}), which are treated as unconstrained.
    """
    if not raw:
        return None
    if not isinstance(raw, Mapping):
        raise ConstraintError(f"Constraint on '{attribute}' must be an object, got {type(raw).__name__}")
    if "in" in raw:
        values = raw["in"]
        if values is None:
            return None
        if isinstance(values, (str, int, float)):
            values = [values]
        allowed = frozenset(as_text(v) for v in values if not is_missing(v))
        return CategoricalConstraint(allowed=allowed) if allowed else None
    if "lb" in raw or "ub" in raw:
        return NumericConstraint(
            lb=_parse_bound(raw.get("lb"), UNBOUNDED_BELOW, attribute),
            ub=_parse_bound(raw.get("ub"), UNBOUNDED_ABOVE, attribute),
        )
    raise ConstraintError(f"Unrecognized constraint on '{attribute}': expected 'lb'/'ub' or 'in', got {sorted(raw)}")


def constraints_to_dict(constraints: Mapping[str, Constraint]) -> Dict[str, Dict[str, Any]]:
    return {attr: c.to_dict() for attr, c in constraints.items()}


# --- Evaluation ---
def matches(row: Row, constraints: Mapping[str, Optional[Constraint]]) -> bool:
    for attribute, constraint in constraints.items():
        if not constraint:
            continue
        if not constraint.is_satisfied_by(row.get(attribute)):
            return False
    return True


def filter_rows(rows: Sequence[Row], constraints: Mapping[str, Optional[Constraint]]) -> List[Row]:
    return [row for row in rows if matches(row, constraints)]


# --- Merging ---
def _merge_unspecified(a: Bound, b: Bound) -> Bound:
    """One or both bounds absent: keep the specified one, else fall back to the default."""
    if a is not None:
        return a
    if b is not None:
        return b
    return UNSPECIFIED_BOUND_DEFAULT


def _merge_lower(a: Bound, b: Bound) -> Bound:
    if a == UNBOUNDED_BELOW or b == UNBOUNDED_BELOW:
        return UNBOUNDED_BELOW
    if a is None or b is None:
        return _merge_unspecified(a, b)
    return min(float(a), float(b))


def _merge_upper(a: Bound, b: Bound) -> Bound:
    if a == UNBOUNDED_ABOVE or b == UNBOUNDED_ABOVE:
        return UNBOUNDED_ABOVE
    if a is None or b is None:
        return _merge_unspecified(a, b)
    return max(float(a), float(b))


def merge_numeric(a: NumericConstraint, b: NumericConstraint) -> NumericConstraint:
    return NumericConstraint(lb=_merge_lower(a.lb, b.lb), ub=_merge_upper(a.ub, b.ub))


def merge_categorical(a: CategoricalConstraint, b: CategoricalConstraint) -> CategoricalConstraint:
    return CategoricalConstraint(allowed=a.allowed | b.allowed)


def merge(a: Constraint, b: Constraint) -> Constraint:
    """Union of two constraints on the same attribute; mismatched kinds keep ``a``."""
    if a == b:
        return a
    if isinstance(a, CategoricalConstraint) and isinstance(b, CategoricalConstraint):
        return merge_categorical(a, b)
    if isinstance(a, NumericConstraint) and isinstance(b, NumericConstraint):
        return merge_numeric(a, b)
    logger.debug("Cannot merge %s constraint with %s constraint, keeping the first", a.kind, b.kind)
    return a
