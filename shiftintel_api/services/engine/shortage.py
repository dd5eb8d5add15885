# shiftintel_api/services/engine/shortage.py
"""
Understaffing rate per (site, weekday) over a lookback window.

An occurrence is understaffed when its non-cancelled assignment count is below
its required headcount. Groups without occurrences are omitted rather than
reported as 0 %. The rate is an exact integer percentage; bucketing it for a
heatmap is left to the caller.
"""
from __future__ import annotations

import logging
from collections import defaultdict
from datetime import date, timedelta
from typing import Dict, Iterable, List, Optional, Tuple

from shiftintel_api.services.engine.config import ShortagePolicy
from shiftintel_api.services.engine.types import (
    AnalysisWarning,
    Severity,
    ShiftOccurrence,
    ShortagePattern,
)

log = logging.getLogger(__name__)

GroupKey = Tuple[int, int]  # (site_id, weekday 0=Mon)


def percent(part: int, whole: int) -> int:
    """Integer percentage rounded half up."""
    if whole <= 0:
        return 0
    return (200 * part + whole) // (2 * whole)


def in_window(occurrences: Iterable[ShiftOccurrence], as_of: date, lookback_days: int) -> List[ShiftOccurrence]:
    since = as_of - timedelta(days=lookback_days)
    return [o for o in occurrences if since <= o.date <= as_of]


def group_by_site_day(occurrences: Iterable[ShiftOccurrence]) -> Dict[GroupKey, List[ShiftOccurrence]]:
    groups: Dict[GroupKey, List[ShiftOccurrence]] = defaultdict(list)
    for o in occurrences:
        groups[(o.site_id, o.weekday)].append(o)
    return groups


def severity_for(rate: int, policy: ShortagePolicy) -> Severity:
    if rate > policy.critical_rate:
        return Severity.CRITICAL
    if rate > policy.flag_rate:
        return Severity.WARNING
    return Severity.INFO


def pattern_for(occurrences: List[ShiftOccurrence], policy: ShortagePolicy) -> Optional[ShortagePattern]:
    total = len(occurrences)
    if total == 0 or total < policy.min_occurrences:
        return None
    first = occurrences[0]
    understaffed = sum(1 for o in occurrences if o.assigned_count < o.required)
    rate = percent(understaffed, total)
    return ShortagePattern(
        site_id=first.site_id,
        site_name=first.site_name,
        day_of_week=first.weekday,
        total_shifts=total,
        understaffed_count=understaffed,
        rate=rate,
        severity=severity_for(rate, policy),
    )


def detect_patterns(
    occurrences: Iterable[ShiftOccurrence],
    as_of: date,
    policy: ShortagePolicy,
    site_id: Optional[int] = None,
) -> Tuple[List[ShortagePattern], List[AnalysisWarning]]:
    picked = in_window(occurrences, as_of, policy.lookback_days)
    if site_id is not None:
        picked = [o for o in picked if o.site_id == site_id]

    patterns: List[ShortagePattern] = []
    warnings: List[AnalysisWarning] = []
    for key, group in group_by_site_day(picked).items():
        try:
            pattern = pattern_for(group, policy)
        except Exception as e:
            log.warning("shortage analysis failed for site=%s day=%s: %s", key[0], key[1], e)
            warnings.append(AnalysisWarning("shortage", f"site:{key[0]}:day:{key[1]}", str(e)))
            continue
        if pattern is not None:
            patterns.append(pattern)

    patterns.sort(key=lambda p: (p.site_name, p.site_id, p.day_of_week))
    return patterns, warnings


def flagged(patterns: Iterable[ShortagePattern], policy: ShortagePolicy) -> List[ShortagePattern]:
    return [p for p in patterns if p.rate > policy.flag_rate]
