import json
from datetime import date, time, timedelta

from shiftintel_api.services.engine.config import EngineConfig
from shiftintel_api.services.engine.scoring import is_eligible, rank_candidates, score_candidate
from shiftintel_api.services.engine.types import (
    AssignmentRecord,
    AssignmentStatus,
    CandidateSignals,
    Employee,
    ReasonCode,
    ShiftSpec,
    Site,
)

CFG = EngineConfig()
MONDAY = date(2025, 6, 2)
SITE_X = Site(id=1, name="Site X", lat=18.5204, lon=73.8567)


def _emp(i, licensed=True, expiry=None, certs=(), lat=18.5204, lon=73.8567, active=True):
    return Employee(id=i, name=f"Guard {i}", phone=f"98{i:08d}", certifications=frozenset(certs),
                    has_weapon_license=licensed, weapon_license_expiry=expiry,
                    home_lat=lat, home_lon=lon, active=active)


def _armed_shift(**kw):
    return ShiftSpec(date=MONDAY, start_time=time(8, 0), end_time=time(16, 0), requires_weapon=True,
                     site_id=1, required_capabilities=frozenset({"weapon"}), **kw)


def _plain_shift():
    return ShiftSpec(date=MONDAY, start_time=time(8, 0), end_time=time(16, 0), site_id=1)


def test_end_to_end_armed_shift_drops_unlicensed():
    pool = [
        CandidateSignals(employee=_emp(1), ratings=(5, 5, 4), week_shift_count=1),
        CandidateSignals(employee=_emp(2, lat=18.60, lon=73.76), week_shift_count=0),
        CandidateSignals(employee=_emp(3, licensed=False), is_preferred=True),
    ]
    result = rank_candidates(_armed_shift(), SITE_X, pool, CFG)

    assert len(result.suggestions) == 2
    assert 3 not in [s.employee_id for s in result.suggestions]
    scores = [s.score for s in result.suggestions]
    assert scores == sorted(scores, reverse=True)
    for s in result.suggestions:
        assert s.breakdown.weapon_bonus > 0
        assert ReasonCode.ARMED in s.reasons


def test_score_is_exact_sum_of_breakdown():
    pool = [
        CandidateSignals(employee=_emp(1, certs={"first_aid"}), ratings=(1, 2, 1), week_shift_count=3,
                         site_visits=2, total_assignments=10, no_shows=3, is_preferred=True),
        CandidateSignals(employee=_emp(2, lat=19.5, lon=73.0), ratings=(5, 5, 5, 5)),
        CandidateSignals(employee=_emp(3, lat=None, lon=None), week_shift_count=6),
    ]
    site = Site(id=1, name="Site X", lat=18.5204, lon=73.8567, required_certifications=frozenset({"first_aid"}))
    result = rank_candidates(_armed_shift(), site, pool, CFG, limit=0)
    assert len(result.suggestions) == 3
    for s in result.suggestions:
        assert sum(s.breakdown.as_dict().values()) == s.score
        assert s.to_dict()["score"] == sum(s.to_dict()["score_breakdown"].values())


def test_weapon_hard_filter_covers_expired_and_missing_license():
    expired = CandidateSignals(employee=_emp(1, expiry=MONDAY - timedelta(days=1)), is_preferred=True)
    missing = CandidateSignals(employee=_emp(2, licensed=False), is_preferred=True)
    result = rank_candidates(_armed_shift(), SITE_X, [expired, missing], CFG)
    assert result.suggestions == ()
    assert not is_eligible(_armed_shift(), expired)


def test_weapon_certification_counts_as_license():
    cand = CandidateSignals(employee=_emp(1, licensed=False, certs={"firearm"}))
    assert is_eligible(_armed_shift(), cand)
    suggestion, _ = score_candidate(_armed_shift(), SITE_X, cand, CFG)
    assert suggestion.breakdown.weapon_bonus == 3


def test_inactive_employee_is_never_scored():
    cand = CandidateSignals(employee=_emp(1, active=False))
    assert rank_candidates(_plain_shift(), SITE_X, [cand], CFG).suggestions == ()


def test_no_weapon_bonus_when_not_required():
    suggestion, _ = score_candidate(_plain_shift(), SITE_X, CandidateSignals(employee=_emp(1)), CFG)
    assert suggestion.breakdown.weapon_bonus == 0


def test_suggest_is_idempotent():
    pool = [CandidateSignals(employee=_emp(i, lat=18.5 + i / 50), ratings=(3, 4, 5)[: i % 4]) for i in range(1, 9)]
    first = rank_candidates(_armed_shift(), SITE_X, pool, CFG, limit=0)
    second = rank_candidates(_armed_shift(), SITE_X, list(pool), CFG, limit=0)
    a = json.dumps([s.to_dict() for s in first.suggestions])
    b = json.dumps([s.to_dict() for s in second.suggestions])
    assert a == b


def test_ties_break_by_employee_id():
    pool = [CandidateSignals(employee=_emp(7)), CandidateSignals(employee=_emp(3)), CandidateSignals(employee=_emp(5))]
    result = rank_candidates(_plain_shift(), SITE_X, pool, CFG)
    assert [s.employee_id for s in result.suggestions] == [3, 5, 7]


def test_limit_semantics():
    pool = [CandidateSignals(employee=_emp(i)) for i in range(1, 9)]
    assert len(rank_candidates(_plain_shift(), SITE_X, pool, CFG).suggestions) == 5
    assert len(rank_candidates(_plain_shift(), SITE_X, pool, CFG, limit=2).suggestions) == 2
    assert len(rank_candidates(_plain_shift(), SITE_X, pool, CFG, limit=0).suggestions) == 8


def test_geographic_bands():
    near, _ = score_candidate(_plain_shift(), SITE_X, CandidateSignals(employee=_emp(1)), CFG)
    far, _ = score_candidate(_plain_shift(), SITE_X, CandidateSignals(employee=_emp(2, lat=19.5)), CFG)
    unknown, _ = score_candidate(_plain_shift(), SITE_X, CandidateSignals(employee=_emp(3, lat=None)), CFG)
    assert near.breakdown.geographic == 15
    assert near.distance_km == 0.0
    assert far.breakdown.geographic == -5
    assert ReasonCode.FAR_FROM_SITE in far.reasons
    assert unknown.breakdown.geographic == 0
    assert unknown.distance_km is None


def test_performance_needs_enough_ratings():
    few, _ = score_candidate(_plain_shift(), SITE_X, CandidateSignals(employee=_emp(1), ratings=(5, 5)), CFG)
    good, _ = score_candidate(_plain_shift(), SITE_X, CandidateSignals(employee=_emp(1), ratings=(5, 5, 5)), CFG)
    poor, _ = score_candidate(_plain_shift(), SITE_X, CandidateSignals(employee=_emp(1), ratings=(1, 1, 1)), CFG)
    assert few.breakdown.performance == 0
    assert good.breakdown.performance == 8
    assert poor.breakdown.performance == -8
    assert ReasonCode.LOW_RATING in poor.reasons


def test_workload_reliability_and_cohesion_terms():
    idle, _ = score_candidate(_plain_shift(), SITE_X, CandidateSignals(employee=_emp(1)), CFG)
    busy, _ = score_candidate(_plain_shift(), SITE_X, CandidateSignals(employee=_emp(1), week_shift_count=5), CFG)
    flaky, _ = score_candidate(
        _plain_shift(), SITE_X,
        CandidateSignals(employee=_emp(1), total_assignments=10, no_shows=2, site_visits=5), CFG,
    )
    assert idle.breakdown.workload == 5
    assert busy.breakdown.workload == -30
    assert flaky.breakdown.reliability == -10
    assert flaky.breakdown.team_cohesion == 6
    assert ReasonCode.KNOWS_SITE in flaky.reasons


def test_specialization_requires_every_site_certification():
    site = Site(id=1, name="Hospital", lat=18.5204, lon=73.8567,
                required_certifications=frozenset({"first_aid", "hospital"}))
    full, _ = score_candidate(_plain_shift(), site,
                              CandidateSignals(employee=_emp(1, certs={"first_aid", "hospital"})), CFG)
    partial, _ = score_candidate(_plain_shift(), site, CandidateSignals(employee=_emp(2, certs={"first_aid"})), CFG)
    assert full.breakdown.specialization == 10
    assert partial.breakdown.specialization == 0


def test_recent_load_before_the_opening_triggers_fatigue_penalty():
    history = tuple(
        AssignmentRecord(id=i, employee_id=1, shift_id=i, site_id=1, shift_date=MONDAY - timedelta(days=7 - i),
                         start_time=time(8, 0), end_time=time(16, 0), status=AssignmentStatus.CHECKED_OUT)
        for i in range(7)
    )
    s, warnings = score_candidate(_plain_shift(), SITE_X,
                                  CandidateSignals(employee=_emp(1), recent_assignments=history), CFG)
    assert warnings == []
    assert s.breakdown.fatigue == -20
    assert s.fatigue_warning is True
    assert ReasonCode.FATIGUE_RISK in s.reasons


def test_display_score_is_clamped_but_ranking_score_is_not():
    cfg = EngineConfig.from_mapping({"scoring": {"base": 95}})
    s, _ = score_candidate(_plain_shift(), SITE_X, CandidateSignals(employee=_emp(1), is_preferred=True), cfg)
    assert s.score == 95 + 15 + 15 + 5
    assert s.display_score == 100
    assert ReasonCode.PREFERRED_GUARD in s.reasons


def test_broken_fatigue_history_only_zeroes_that_candidates_fatigue_term():
    garbled = AssignmentRecord(id=99, employee_id=2, shift_id=99, site_id=1, shift_date=MONDAY - timedelta(days=1),
                               start_time=None, end_time=time(16, 0), status=AssignmentStatus.CHECKED_OUT)
    pool = [
        CandidateSignals(employee=_emp(1)),
        CandidateSignals(employee=_emp(2), recent_assignments=(garbled,)),
        CandidateSignals(employee=_emp(3)),
    ]
    result = rank_candidates(_plain_shift(), SITE_X, pool, CFG, limit=0)

    assert sorted(s.employee_id for s in result.suggestions) == [1, 2, 3]
    broken = next(s for s in result.suggestions if s.employee_id == 2)
    assert broken.breakdown.fatigue == 0
    assert broken.fatigue_warning is False
    assert [(w.scope, w.unit) for w in result.warnings] == [("fatigue", "employee:2")]


def test_candidate_that_cannot_be_scored_is_dropped_with_a_warning():
    pool = [
        CandidateSignals(employee=_emp(1)),
        CandidateSignals(employee=_emp(2, lat="north", lon="east")),
    ]
    result = rank_candidates(_plain_shift(), SITE_X, pool, CFG, limit=0)

    assert [s.employee_id for s in result.suggestions] == [1]
    assert [(w.scope, w.unit) for w in result.warnings] == [("scoring", "employee:2")]
