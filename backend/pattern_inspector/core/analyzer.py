"""
Pattern analyzer and location aggregator.

Every pattern is evaluated against the full dataset. Each matching row yields a
``LocationUpdate``; the per-location rollups are the fold of those updates over
the initial (empty) location map, applied in pattern order. Evaluation of
patterns is independent, so it can run on a thread pool without changing the
result.
"""

from __future__ import annotations

from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field, replace
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple, Union

from ..utils.logger import get_logger
from .constraints import Constraint, filter_rows, merge
from .patterns import Pattern
from .stats import Row, as_text, is_missing, summarize, to_number

logger = get_logger("core.analyzer")

LocationId = Union[int, float]


@dataclass(frozen=True)
class LocationConstraint:
    count: int
    constraint: Constraint

    def to_dict(self) -> Dict[str, Any]:
        return {"count": self.count, "constraint": self.constraint.to_dict()}


@dataclass(frozen=True)
class LocationSummary:
    name: str
    parent_name: str
    target_value: float = 0.0
    contributions: int = 0
    patterns: Tuple[int, ...] = ()
    constraints: Mapping[str, LocationConstraint] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "name": self.name,
            "parent": self.parent_name,
            "targetValue": self.target_value,
            "contributions": self.contributions,
            "patterns": list(self.patterns),
            "constraints": {attr: lc.to_dict() for attr, lc in self.constraints.items()},
        }


@dataclass(frozen=True)
class LocationUpdate:
    """Contribution of one matching row of one pattern to its location."""

    location: LocationId
    pattern_id: int
    target_value: Optional[float]
    constraints: Mapping[str, Constraint]


@dataclass(frozen=True)
class AnalysisResult:
    patterns: List[Pattern]
    locations: Dict[LocationId, LocationSummary]
    target: str

    def to_dict(self) -> Dict[str, Any]:
        return {
            "patterns": [p.to_dict() for p in self.patterns],
            "locations": {str(loc): s.to_dict() for loc, s in self.locations.items()},
            "target": self.target,
        }


def location_key(value: Any) -> Optional[LocationId]:
    number = to_number(value)
    if number is None:
        return None
    return int(number) if number.is_integer() else number


def init_locations(
    rows: Sequence[Row], location_attribute: str, name_attribute: str, parent_attribute: str
) -> Dict[LocationId, LocationSummary]:
    locations: Dict[LocationId, LocationSummary] = {}
    skipped = 0
    for row in rows:
        loc = location_key(row.get(location_attribute))
        if loc is None:
            skipped += 1
            continue
        if loc in locations:
            continue
        name, parent = row.get(name_attribute), row.get(parent_attribute)
        locations[loc] = LocationSummary(
            name="" if is_missing(name) else as_text(name),
            parent_name="" if is_missing(parent) else as_text(parent),
        )
    if skipped:
        logger.warning("%d rows have no numeric '%s' and are not tracked as locations", skipped, location_attribute)
    return locations


def apply_update(summary: LocationSummary, update: LocationUpdate) -> LocationSummary:
    """Combine one update into a location: add target, record pattern, merge constraints."""
    target_value, contributions = summary.target_value, summary.contributions
    if update.target_value is not None:
        target_value += update.target_value
        contributions += 1

    patterns = summary.patterns
    if update.pattern_id not in patterns:
        patterns = patterns + (update.pattern_id,)

    constraints = dict(summary.constraints)
    for attribute, constraint in update.constraints.items():
        existing = constraints.get(attribute)
        if existing is None:
            constraints[attribute] = LocationConstraint(count=1, constraint=constraint)
        else:
            constraints[attribute] = LocationConstraint(
                count=existing.count + 1, constraint=merge(existing.constraint, constraint)
            )

    return replace(
        summary,
        target_value=target_value,
        contributions=contributions,
        patterns=patterns,
        constraints=constraints,
    )


def evaluate_pattern(
    rows: Sequence[Row], pattern: Pattern, location_attribute: str
) -> Tuple[Pattern, List[LocationUpdate]]:
    """Enrich one pattern and collect the location updates of its matching rows."""
    subset = filter_rows(rows, pattern.constraints)
    if not subset:
        return replace(pattern, row_count=0, summary={}, locations=()), []

    updates: List[LocationUpdate] = []
    locations: List[LocationId] = []
    for row in subset:
        loc = location_key(row.get(location_attribute))
        if loc is None:
            continue
        locations.append(loc)
        updates.append(
            LocationUpdate(
                location=loc,
                pattern_id=pattern.id,
                target_value=to_number(row.get(pattern.target)),
                constraints=pattern.constraints,
            )
        )

    enriched = replace(
        pattern,
        row_count=len(subset),
        summary=summarize(subset),
        locations=tuple(locations),
    )
    return enriched, updates


def reduce_updates(
    locations: Dict[LocationId, LocationSummary], updates: Sequence[LocationUpdate]
) -> Dict[LocationId, LocationSummary]:
    result = dict(locations)
    for update in updates:
        summary = result.get(update.location)
        if summary is None:
            logger.debug("Update for unknown location %s ignored", update.location)
            continue
        result[update.location] = apply_update(summary, update)
    return result


def analyze(
    rows: Sequence[Row],
    patterns: Sequence[Pattern],
    location_attribute: str = "fips",
    name_attribute: str = "county",
    parent_attribute: str = "state",
    max_workers: Optional[int] = None,
) -> AnalysisResult:
    locations = init_locations(rows, location_attribute, name_attribute, parent_attribute)
    logger.info("Analyzing %d patterns over %d rows (%d locations)", len(patterns), len(rows), len(locations))

    if max_workers and max_workers > 1 and len(patterns) > 1:
        with ThreadPoolExecutor(max_workers=max_workers) as executor:
            evaluated = list(executor.map(lambda p: evaluate_pattern(rows, p, location_attribute), patterns))
    else:
        evaluated = [evaluate_pattern(rows, p, location_attribute) for p in patterns]

    enriched: List[Pattern] = []
    target = ""
    for pattern, updates in evaluated:
        enriched.append(pattern)
        if pattern.row_count == 0:
            continue
        locations = reduce_updates(locations, updates)
        target = pattern.target

    return AnalysisResult(patterns=enriched, locations=locations, target=target)
