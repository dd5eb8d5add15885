from datetime import date, time, timedelta

from shiftintel_api.services.engine.config import ShortagePolicy
from shiftintel_api.services.engine.shortage import detect_patterns, flagged, percent
from shiftintel_api.services.engine.types import AssignmentRecord, AssignmentStatus, Severity, ShiftOccurrence

POLICY = ShortagePolicy()
AS_OF = date(2025, 6, 9)  # a Monday


def _occ(shift_id, d, required, statuses, site_id=1, site_name="Mall"):
    assignments = tuple(
        AssignmentRecord(id=shift_id * 10 + n, employee_id=n + 1, shift_id=shift_id, site_id=site_id,
                         shift_date=d, start_time=time(8, 0), end_time=time(16, 0), status=st)
        for n, st in enumerate(statuses)
    )
    return ShiftOccurrence(shift_id=shift_id, site_id=site_id, site_name=site_name, date=d,
                           start_time=time(8, 0), end_time=time(16, 0), required=required,
                           assignments=assignments)


def _mondays(n, short, required=2):
    full = [AssignmentStatus.CHECKED_OUT] * required
    out = []
    for k in range(n):
        statuses = full[:-1] if k < short else full
        out.append(_occ(k + 1, AS_OF - timedelta(days=7 * k), required, statuses))
    return out


def test_three_of_ten_mondays_short_is_thirty_percent():
    patterns, warnings = detect_patterns(_mondays(10, 3), AS_OF, POLICY)
    assert warnings == []
    assert len(patterns) == 1
    p = patterns[0]
    assert (p.site_id, p.day_of_week) == (1, 0)
    assert p.total_shifts == 10
    assert p.understaffed_count == 3
    assert p.rate == 30
    assert p.severity == Severity.INFO
    assert flagged(patterns, POLICY) == []


def test_severity_above_thresholds():
    warn, _ = detect_patterns(_mondays(10, 4), AS_OF, POLICY)
    crit, _ = detect_patterns(_mondays(10, 6), AS_OF, POLICY)
    assert warn[0].severity == Severity.WARNING
    assert crit[0].severity == Severity.CRITICAL
    assert flagged(warn + crit, POLICY) == warn + crit


def test_cancelled_assignments_leave_a_gap():
    occ = _occ(1, AS_OF, 2, [AssignmentStatus.CHECKED_OUT, AssignmentStatus.CANCELLED])
    patterns, _ = detect_patterns([occ], AS_OF, POLICY)
    assert patterns[0].understaffed_count == 1
    assert patterns[0].rate == 100


def test_no_show_still_counts_as_assigned():
    occ = _occ(1, AS_OF, 2, [AssignmentStatus.CHECKED_OUT, AssignmentStatus.NO_SHOW])
    patterns, _ = detect_patterns([occ], AS_OF, POLICY)
    assert patterns[0].understaffed_count == 0


def test_window_excludes_old_and_future_shifts():
    occs = [
        _occ(1, AS_OF - timedelta(days=91), 2, []),
        _occ(2, AS_OF + timedelta(days=7), 2, []),
        _occ(3, AS_OF - timedelta(days=1), 1, [AssignmentStatus.ASSIGNED]),
    ]
    patterns, _ = detect_patterns(occs, AS_OF, POLICY)
    assert [(p.day_of_week, p.total_shifts) for p in patterns] == [(6, 1)]


def test_patterns_grouped_per_site_and_day_and_sorted():
    occs = [
        _occ(1, AS_OF, 1, [], site_id=2, site_name="Bank"),
        _occ(2, AS_OF - timedelta(days=2), 1, [AssignmentStatus.ASSIGNED], site_id=1, site_name="Mall"),
        _occ(3, AS_OF, 1, [AssignmentStatus.ASSIGNED], site_id=1, site_name="Mall"),
    ]
    patterns, _ = detect_patterns(occs, AS_OF, POLICY)
    assert [(p.site_name, p.day_of_week, p.rate) for p in patterns] == [
        ("Bank", 0, 100), ("Mall", 0, 0), ("Mall", 5, 0),
    ]
    only_mall, _ = detect_patterns(occs, AS_OF, POLICY, site_id=1)
    assert {p.site_id for p in only_mall} == {1}


def test_percent_rounds_half_up():
    assert percent(3, 10) == 30
    assert percent(1, 3) == 33
    assert percent(2, 3) == 67
    assert percent(1, 8) == 13
    assert percent(0, 0) == 0
