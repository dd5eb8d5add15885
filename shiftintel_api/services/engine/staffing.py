# shiftintel_api/services/engine/staffing.py
"""
Advisory headcount per (site, weekday) from historical no-show behaviour.

  - no-show rate above `increase_above`  -> current + ceil(current * rate), at least +1
  - near-zero no-shows and the slot is consistently filled below the current requirement
                                         -> step down toward the average filled, never below 1
  - otherwise                            -> keep

The live shift is never touched; applying a suggestion is a human decision.
"""
from __future__ import annotations

import logging
from typing import Iterable, List, Optional, Tuple

from shiftintel_api.services.engine.config import StaffingPolicy
from shiftintel_api.services.engine.shortage import group_by_site_day, in_window
from shiftintel_api.services.engine.types import (
    AnalysisWarning,
    ShiftOccurrence,
    StaffingAction,
    StaffingSuggestion,
)

log = logging.getLogger(__name__)


def _ceil_div(a: int, b: int) -> int:
    return -(-a // b)


def suggest_for_slot(occurrences: List[ShiftOccurrence], policy: StaffingPolicy) -> Optional[StaffingSuggestion]:
    count = len(occurrences)
    if count == 0 or count < policy.min_occurrences:
        return None

    latest = max(occurrences, key=lambda o: (o.date, o.shift_id))
    current = max(1, int(latest.required or 1))

    assigned_total = sum(o.assigned_count for o in occurrences)
    no_shows = sum(o.no_show_count for o in occurrences)
    no_show_rate = (no_shows / assigned_total) if assigned_total else 0.0
    avg_assigned = assigned_total / count
    # against the current requirement, not each occurrence's own
    understaffed_share = sum(1 for o in occurrences if o.assigned_count < current) / count

    suggested = current
    action = StaffingAction.KEEP
    if no_show_rate > policy.increase_above:
        # exact integer ceil(current * no_shows / assigned_total)
        shortfall = _ceil_div(current * no_shows, assigned_total)
        suggested = current + max(1, shortfall)
        action = StaffingAction.INCREASE
    elif (
        no_show_rate <= policy.decrease_max_no_show
        and understaffed_share >= policy.decrease_understaffed_share
        and current > 1
    ):
        suggested = max(1, min(current - 1, _ceil_div(assigned_total, count)))
        action = StaffingAction.DECREASE

    return StaffingSuggestion(
        site_id=latest.site_id,
        site_name=latest.site_name,
        day_of_week=latest.weekday,
        shift_count=count,
        current_required=current,
        suggested_required=suggested,
        no_show_rate=round(no_show_rate, 3),
        avg_assigned=round(avg_assigned, 1),
        action=action,
    )


def suggest_staffing(
    occurrences: Iterable[ShiftOccurrence],
    as_of,
    policy: StaffingPolicy,
    site_id: Optional[int] = None,
) -> Tuple[List[StaffingSuggestion], List[AnalysisWarning]]:
    picked = in_window(occurrences, as_of, policy.lookback_days)
    if site_id is not None:
        picked = [o for o in picked if o.site_id == site_id]

    out: List[StaffingSuggestion] = []
    warnings: List[AnalysisWarning] = []
    for key, group in group_by_site_day(picked).items():
        try:
            suggestion = suggest_for_slot(group, policy)
        except Exception as e:
            log.warning("staffing analysis failed for site=%s day=%s: %s", key[0], key[1], e)
            warnings.append(AnalysisWarning("staffing", f"site:{key[0]}:day:{key[1]}", str(e)))
            continue
        if suggestion is not None:
            out.append(suggestion)

    out.sort(key=lambda s: (s.site_name, s.site_id, s.day_of_week))
    return out, warnings


def opportunities(suggestions: Iterable[StaffingSuggestion]) -> List[StaffingSuggestion]:
    return [s for s in suggestions if s.suggested_required != s.current_required]
