# shiftintel_api/services/engine/fatigue.py
"""
Fatigue analysis over a trailing window (rolling, not calendar aligned).

Per employee:
  - shift_count        : worked shifts that started inside the window
  - min_rest_gap_hours : smallest gap between the end of one shift and the start of the next
                         (None with fewer than two shifts)
  - total_hours        : actual hours when recorded, scheduled duration otherwise

Rule evaluation is ordered; any high rule makes the risk high, else any medium rule
makes it medium, else low.
"""
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Iterable, List, Mapping, Optional, Sequence, Tuple

from shiftintel_api.services.engine.config import FatigueThresholds
from shiftintel_api.services.engine.types import (
    AnalysisWarning,
    AssignmentRecord,
    FatigueRisk,
    FatigueRule,
    RiskLevel,
)

log = logging.getLogger(__name__)

_RISK_ORDER = {RiskLevel.HIGH: 0, RiskLevel.MEDIUM: 1, RiskLevel.LOW: 2}


def window_shifts(
    assignments: Iterable[AssignmentRecord],
    as_of: datetime,
    window_days: int,
) -> List[AssignmentRecord]:
    """Worked shifts whose start falls in [as_of - window, as_of], ordered by start."""
    since = as_of - timedelta(days=window_days)
    picked = [
        a for a in assignments
        if a.worked and since <= a.bounds[0] <= as_of
    ]
    picked.sort(key=lambda a: (a.bounds[0], a.id))
    return picked


def min_rest_gap(shifts: Sequence[AssignmentRecord], next_start: Optional[datetime] = None) -> Optional[float]:
    """
    Smallest non-negative gap in hours between consecutive shifts.
    `next_start` adds the gap from the last shift to an upcoming one.
    """
    ends_and_starts: List[Tuple[datetime, datetime]] = [a.bounds for a in shifts]
    if next_start is not None:
        ends_and_starts.append((next_start, next_start))

    best = None
    for (_, prev_end), (cur_start, _) in zip(ends_and_starts, ends_and_starts[1:]):
        gap = (cur_start - prev_end).total_seconds() / 3600.0
        if gap < 0:
            continue
        if best is None or gap < best:
            best = gap
    return best


def classify(
    shift_count: int,
    rest_gap: Optional[float],
    total_hours: float,
    thresholds: FatigueThresholds,
) -> Tuple[RiskLevel, Tuple[FatigueRule, ...]]:
    """Pure function of the three measurements."""
    high: List[FatigueRule] = []
    medium: List[FatigueRule] = []

    if shift_count >= thresholds.high_shift_count:
        high.append(FatigueRule.SHIFT_COUNT_HIGH)
    elif shift_count >= thresholds.medium_shift_count:
        medium.append(FatigueRule.SHIFT_COUNT_MEDIUM)

    if rest_gap is not None:
        if rest_gap < thresholds.high_min_rest_hours:
            high.append(FatigueRule.REST_GAP_HIGH)
        elif rest_gap < thresholds.medium_min_rest_hours:
            medium.append(FatigueRule.REST_GAP_MEDIUM)

    if total_hours > thresholds.high_total_hours:
        high.append(FatigueRule.HOURS_HIGH)
    elif total_hours > thresholds.medium_total_hours:
        medium.append(FatigueRule.HOURS_MEDIUM)

    if high:
        return RiskLevel.HIGH, tuple(high + medium)
    if medium:
        return RiskLevel.MEDIUM, tuple(medium)
    return RiskLevel.LOW, ()


def analyze_employee(
    employee_id: int,
    employee_name: str,
    assignments: Iterable[AssignmentRecord],
    as_of: datetime,
    thresholds: FatigueThresholds,
    next_start: Optional[datetime] = None,
) -> FatigueRisk:
    shifts = window_shifts(assignments, as_of, thresholds.window_days)
    gap = min_rest_gap(shifts, next_start=next_start)
    hours = sum(a.hours for a in shifts)

    level, rules = classify(len(shifts), gap, hours, thresholds)
    return FatigueRisk(
        employee_id=employee_id,
        employee_name=employee_name,
        shift_count=len(shifts),
        min_rest_gap_hours=round(gap, 1) if gap is not None else None,
        total_hours=round(hours, 1),
        risk_level=level,
        triggered_rules=rules,
    )


def analyze_portfolio(
    histories: Mapping[int, Tuple[str, Sequence[AssignmentRecord]]],
    as_of: datetime,
    thresholds: FatigueThresholds,
    include_low: bool = False,
) -> Tuple[List[FatigueRisk], List[AnalysisWarning]]:
    """
    histories: {employee_id: (employee_name, assignments)}
    Returns (risks high-first, warnings). One employee failing never stops the others.
    """
    risks: List[FatigueRisk] = []
    warnings: List[AnalysisWarning] = []

    for employee_id in sorted(histories):
        name, assignments = histories[employee_id]
        try:
            risk = analyze_employee(employee_id, name, assignments, as_of, thresholds)
        except Exception as e:
            log.warning("fatigue analysis failed for employee=%s: %s", employee_id, e)
            warnings.append(AnalysisWarning("fatigue", f"employee:{employee_id}", str(e)))
            continue
        if include_low or risk.risk_level != RiskLevel.LOW:
            risks.append(risk)

    risks.sort(key=lambda r: (_RISK_ORDER[r.risk_level], r.employee_id))
    return risks, warnings
