"""
Pattern parser: mined pattern records -> structured constraint sets.

A mined pattern file has one row per pattern. Its ``description`` column holds a
Python-repr style dict, e.g. ``{'ID': 3, 'constraints': {'income': {'lb': -inf, 'ub': 50000}}}``,
which is sanitized into JSON before decoding.
"""

from __future__ import annotations

import json
import math
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ..utils.logger import get_logger
from .constraints import ConstraintError, ConstraintSet, constraint_from_dict, constraints_to_dict
from .stats import DataSummary, is_missing, summary_to_dict, to_number

logger = get_logger("core.patterns")

# Mined columns carried through for display only
REPORTED_COLUMNS = ("keys", "count", "std", "min", "max")

_BARE_INF = re.compile(r"(:\s*)(-?inf)\b")
_BARE_NONE = re.compile(r"(:\s*)None\b")


class ParseError(ValueError):
    pass


@dataclass(frozen=True)
class Pattern:
    id: int
    constraints: ConstraintSet
    target: str
    target_mean: float
    reported: Dict[str, Any] = field(default_factory=dict)
    row_count: int = 0
    summary: DataSummary = field(default_factory=dict)
    locations: Tuple[int, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "constraints": constraints_to_dict(self.constraints),
            "target": self.target,
            "targetMean": None if math.isnan(self.target_mean) else self.target_mean,
            "reported": dict(self.reported),
            "rowCount": self.row_count,
            "summary": summary_to_dict(self.summary),
            "locations": list(self.locations),
        }


@dataclass(frozen=True)
class PatternParseResult:
    index: int
    pattern: Optional[Pattern] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.pattern is not None

    def to_dict(self) -> Dict[str, Any]:
        return {"index": self.index, "ok": self.ok, "error": self.error}


def sanitize_description(text: str) -> str:
    """Turn a Python-repr description into JSON text.

    Bare ``inf``, ``-inf`` and ``None`` after a colon are rewritten without regard to
    quoting, so a quoted value such as ``'a: inf'`` is rewritten too and no longer decodes.
    """
    text = _BARE_INF.sub(lambda m: f"{m.group(1)}'{m.group(2)}'", text)
    text = _BARE_NONE.sub(lambda m: f"{m.group(1)}null", text)
    return text.replace("'", '"')


def parse_description(text: Any) -> Dict[str, Any]:
    if is_missing(text):
        raise ParseError("Pattern description is empty")
    try:
        desc = json.loads(sanitize_description(str(text)))
    except json.JSONDecodeError as e:
        raise ParseError(f"Pattern description is not valid JSON: {e.msg} at position {e.pos}") from e
    if not isinstance(desc, dict):
        raise ParseError("Pattern description must be an object")
    for key in ("ID", "constraints"):
        if key not in desc:
            raise ParseError(f"Pattern description is missing '{key}'")
    return desc


def _parse_id(value: Any) -> int:
    number = to_number(value)
    if number is None or not number.is_integer():
        raise ParseError(f"Pattern ID {value!r} is not an integer")
    return int(number)


def parse_pattern(raw: Mapping[str, Any]) -> Pattern:
    desc = parse_description(raw.get("description"))
    pattern_id = _parse_id(desc["ID"])

    raw_constraints = desc["constraints"]
    if not isinstance(raw_constraints, dict):
        raise ParseError(f"Pattern {pattern_id}: 'constraints' must be an object")

    constraints: ConstraintSet = {}
    for attribute, rule in raw_constraints.items():
        try:
            constraint = constraint_from_dict(attribute, rule)
        except ConstraintError as e:
            raise ParseError(f"Pattern {pattern_id}: {e}") from e
        if constraint is None:
            logger.debug("Pattern %s: empty constraint on '%s' ignored", pattern_id, attribute)
            continue
        constraints[attribute] = constraint

    target = raw.get("target")
    mean = to_number(raw.get("mean"))
    return Pattern(
        id=pattern_id,
        constraints=constraints,
        target="" if is_missing(target) else str(target),
        target_mean=math.nan if mean is None else mean,
        reported={k: raw[k] for k in REPORTED_COLUMNS if k in raw and not is_missing(raw[k])},
    )


def parse_patterns(raws: Sequence[Mapping[str, Any]]) -> List[PatternParseResult]:
    """Parse every record, isolating failures to the record that caused them."""
    results: List[PatternParseResult] = []
    for index, raw in enumerate(raws):
        try:
            results.append(PatternParseResult(index=index, pattern=parse_pattern(raw)))
        except ParseError as e:
            logger.warning("Skipping pattern row %d: %s", index, e)
            results.append(PatternParseResult(index=index, error=str(e)))
    return results
