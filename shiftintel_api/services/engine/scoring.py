# shiftintel_api/services/engine/scoring.py
"""
Candidate ranking for one shift opening.

Each candidate's score is the sum of independent, integer terms kept in a
ScoreBreakdown. The raw sum is the ranking key; display clamping to [0, 100]
happens on the Suggestion and never feeds back into ordering. Ties are broken
by employee id so repeated calls return the same order.
"""
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional, Sequence, Tuple

from shiftintel_api.services.engine import fatigue as fatigue_analyzer
from shiftintel_api.services.engine.config import EngineConfig, ScoringWeights
from shiftintel_api.services.engine.types import (
    AnalysisWarning,
    CandidateSignals,
    ReasonCode,
    RiskLevel,
    ScoreBreakdown,
    ShiftSpec,
    Site,
    Suggestion,
    SuggestionResult,
    WEAPON_CERT_TYPES,
)
from shiftintel_api.services.geofence import GeofenceService

log = logging.getLogger(__name__)

# (component, sign) -> reason; base never produces a reason
_REASONS = {
    ("preferred", 1): ReasonCode.PREFERRED_GUARD,
    ("geographic", 1): ReasonCode.CLOSE_TO_SITE,
    ("geographic", -1): ReasonCode.FAR_FROM_SITE,
    ("performance", 1): ReasonCode.HIGH_RATING,
    ("performance", -1): ReasonCode.LOW_RATING,
    ("workload", 1): ReasonCode.LIGHT_WORKLOAD,
    ("workload", -1): ReasonCode.HEAVY_WORKLOAD,
    ("fatigue", -1): ReasonCode.FATIGUE_RISK,
    ("specialization", 1): ReasonCode.SPECIALIZED,
    ("team_cohesion", 1): ReasonCode.KNOWS_SITE,
    ("reliability", -1): ReasonCode.LOW_RELIABILITY,
    ("weapon_bonus", 1): ReasonCode.ARMED,
}


def is_eligible(shift: ShiftSpec, candidate: CandidateSignals) -> bool:
    """Hard filters applied before any scoring."""
    emp = candidate.employee
    if not emp.active:
        return False
    if shift.requires_weapon and not emp.has_valid_weapon_license(shift.date):
        return False
    return True


def reasons_for(breakdown: ScoreBreakdown, threshold: int) -> Tuple[ReasonCode, ...]:
    out = []
    for name, value in breakdown.as_dict().items():
        if name == "base" or abs(value) < threshold or value == 0:
            continue
        code = _REASONS.get((name, 1 if value > 0 else -1))
        if code is not None:
            out.append(code)
    return tuple(out)


def _performance_points(ratings: Sequence[int], w: ScoringWeights) -> int:
    recent = list(ratings)[: w.rating_window]
    if len(recent) < w.min_ratings:
        return 0
    avg = sum(recent) / len(recent)
    pts = int(round((avg - w.neutral_rating) * w.points_per_star))
    return max(-w.performance_cap, min(w.performance_cap, pts))


def _workload_points(week_count: int, w: ScoringWeights) -> int:
    if week_count <= 0:
        return w.idle_bonus
    return max(w.workload_floor, -w.per_shift_penalty * week_count)


def _reliability_points(total: int, no_shows: int, w: ScoringWeights) -> int:
    if total < w.reliability_min_assignments or total <= 0 or no_shows <= 0:
        return 0
    penalty = int(round(no_shows / total * w.reliability_scale))
    return -min(w.reliability_cap, penalty)


def _cohesion_points(visits: int, w: ScoringWeights) -> int:
    if visits <= 0:
        return 0
    return min(w.cohesion_cap, visits * w.cohesion_per_visit)


def score_candidate(
    shift: ShiftSpec,
    site: Optional[Site],
    candidate: CandidateSignals,
    config: EngineConfig,
) -> Tuple[Suggestion, List[AnalysisWarning]]:
    w = config.scoring
    emp = candidate.employee
    warnings: List[AnalysisWarning] = []

    # geographic
    distance_km = None
    if site is not None:
        distance_km = GeofenceService.calculate_distance_km(emp.home_lat, emp.home_lon, site.lat, site.lon)
    geographic = GeofenceService.band_points(distance_km, w.geo_bands, w.far_penalty)

    # fatigue, judged as of the opening's start so the rest before it counts
    fatigue_points = 0
    fatigue_warning = False
    shift_start = shift.bounds[0]
    try:
        risk = fatigue_analyzer.analyze_employee(
            emp.id, emp.name, candidate.recent_assignments, shift_start, config.fatigue, next_start=shift_start,
        )
        if risk.risk_level == RiskLevel.HIGH:
            fatigue_points = w.fatigue_high
            fatigue_warning = True
        elif risk.risk_level == RiskLevel.MEDIUM:
            fatigue_points = w.fatigue_medium
    except Exception as e:
        log.warning("fatigue term skipped for employee=%s: %s", emp.id, e)
        warnings.append(AnalysisWarning("fatigue", f"employee:{emp.id}", str(e)))

    # specialization: capabilities beyond the weapon minimum
    required = set(shift.required_capabilities)
    if site is not None:
        required |= set(site.required_certifications)
    required -= WEAPON_CERT_TYPES
    specialization = w.specialization if required and required <= emp.certifications else 0

    weapon_bonus = w.weapon_bonus if shift.requires_weapon and emp.has_valid_weapon_license(shift.date) else 0

    breakdown = ScoreBreakdown(
        base=w.base,
        preferred=w.preferred if candidate.is_preferred else 0,
        geographic=geographic,
        performance=_performance_points(candidate.ratings, w),
        workload=_workload_points(candidate.week_shift_count, w),
        fatigue=fatigue_points,
        specialization=specialization,
        team_cohesion=_cohesion_points(candidate.site_visits, w),
        reliability=_reliability_points(candidate.total_assignments, candidate.no_shows, w),
        weapon_bonus=weapon_bonus,
    )

    recent_ratings = list(candidate.ratings)[: w.rating_window]
    avg_rating = round(sum(recent_ratings) / len(recent_ratings), 1) if recent_ratings else None

    suggestion = Suggestion(
        employee_id=emp.id,
        employee_name=emp.name,
        phone=emp.phone,
        score=breakdown.total,
        breakdown=breakdown,
        reasons=reasons_for(breakdown, w.reason_threshold),
        distance_km=round(distance_km, 1) if distance_km is not None else None,
        avg_rating=avg_rating,
        fatigue_warning=fatigue_warning,
        is_preferred=candidate.is_preferred,
        week_shift_count=candidate.week_shift_count,
    )
    return suggestion, warnings


def rank_candidates(
    shift: ShiftSpec,
    site: Optional[Site],
    candidates: Sequence[CandidateSignals],
    config: EngineConfig,
    limit: Optional[int] = None,
) -> SuggestionResult:
    """
    Score every eligible candidate and return them best first.

    limit=None uses the configured default, limit=0 returns the full list.
    """
    pool = [c for c in candidates if is_eligible(shift, c)]
    if not pool:
        return SuggestionResult()

    def _one(candidate: CandidateSignals):
        try:
            return score_candidate(shift, site, candidate, config)
        except Exception as e:
            log.warning("scoring failed for employee=%s: %s", candidate.employee.id, e)
            return None, [AnalysisWarning("scoring", f"employee:{candidate.employee.id}", str(e))]

    workers = max(1, config.scoring.max_workers)
    if workers > 1 and len(pool) > 1:
        with ThreadPoolExecutor(max_workers=min(workers, len(pool))) as executor:
            outcomes = list(executor.map(_one, pool))
    else:
        outcomes = [_one(c) for c in pool]

    suggestions: List[Suggestion] = []
    warnings: List[AnalysisWarning] = []
    for suggestion, unit_warnings in outcomes:
        if suggestion is not None:
            suggestions.append(suggestion)
        warnings.extend(unit_warnings)

    suggestions.sort(key=lambda s: (-s.score, s.employee_id))

    if limit is None:
        limit = config.scoring.default_limit
    if limit and limit > 0:
        suggestions = suggestions[:limit]

    warnings.sort(key=lambda w: (w.scope, w.unit))
    return SuggestionResult(suggestions=tuple(suggestions), warnings=tuple(warnings))
