import os
from datetime import date, time, timedelta

import pytest

from shiftintel_api import create_app
from shiftintel_api.common.errors import DataUnavailable
from shiftintel_api.extensions import db
from shiftintel_api.models.employee import Employee, EmployeeAvailability, EmployeeCertification, EmployeeLeave
from shiftintel_api.models.shift import Shift, ShiftAssignment
from shiftintel_api.models.site import ShiftTemplate, Site
from shiftintel_api.services.engine.config import EngineConfig
from shiftintel_api.services.engine.types import ShiftSpec
from shiftintel_api.services.intelligence_service import IntelligenceService
from shiftintel_api.services.signal_readers import SignalReader

MONDAY = date(2025, 6, 2)


@pytest.fixture()
def app():
    os.environ["DATABASE_URL"] = "sqlite:///:memory:"
    app = create_app()
    with app.app_context():
        db.create_all()
        yield app
        db.session.remove()
        db.drop_all()


def _employee(first, licensed=True, status="active", lat=18.5204, lon=73.8567):
    e = Employee(first_name=first, last_name="Test", has_weapon_license=licensed,
                 weapon_license_expiry=MONDAY + timedelta(days=30) if licensed else None,
                 home_lat=lat, home_lon=lon, status=status, hourly_rate=200)
    db.session.add(e)
    db.session.flush()
    return e


def _shift(site, d, start=time(8, 0), end=time(16, 0), required=1, status="completed"):
    s = Shift(site_id=site.id, date=d, start_time=start, end_time=end, required_employees=required, status=status)
    db.session.add(s)
    db.session.flush()
    return s


def _assign(shift, emp, status="checked_out", rating=None):
    a = ShiftAssignment(shift_id=shift.id, employee_id=emp.id, status=status, rating=rating)
    db.session.add(a)
    db.session.flush()
    return a


def _portfolio():
    site = Site(name="Site X", geo_lat=18.5204, geo_lon=73.8567)
    other = Site(name="Depot")
    db.session.add_all([site, other])
    db.session.flush()

    staff = {
        "licensed": _employee("Licensed"),
        "certified": _employee("Certified", licensed=False),
        "unlicensed": _employee("Unlicensed", licensed=False),
        "inactive": _employee("Inactive", status="inactive"),
        "on_leave": _employee("OnLeave"),
        "unavailable": _employee("Unavailable"),
        "busy": _employee("Busy"),
    }
    db.session.add(EmployeeCertification(employee_id=staff["certified"].id, cert_type="weapon"))
    db.session.add(EmployeeLeave(employee_id=staff["on_leave"].id, start_date=MONDAY - timedelta(days=1),
                                 end_date=MONDAY + timedelta(days=1)))
    db.session.add(EmployeeAvailability(employee_id=staff["unavailable"].id, weekday=0, is_available=False))

    # overnight shift from Sunday evening into the Monday opening
    night = _shift(other, MONDAY - timedelta(days=1), start=time(22, 0), end=time(9, 0))
    _assign(night, staff["busy"], status="assigned")

    db.session.add(ShiftTemplate(site_id=site.id, name="Day", start_time=time(8, 0), end_time=time(16, 0),
                                 preferred_employees=[staff["certified"].id]))
    db.session.commit()
    return site, other, staff


def test_eligible_pool_applies_every_exclusion(app):
    site, _, staff = _portfolio()
    reader = SignalReader()

    armed = reader.get_eligible_employees(MONDAY, time(8, 0), time(16, 0), {"weapon"}, site.id)
    assert [e.id for e in armed] == [staff["licensed"].id, staff["certified"].id]

    unarmed = reader.get_eligible_employees(MONDAY, time(8, 0), time(16, 0))
    assert [e.id for e in unarmed] == [staff["licensed"].id, staff["certified"].id, staff["unlicensed"].id]


def test_cancelled_assignment_does_not_block(app):
    site, other, staff = _portfolio()
    s = _shift(other, MONDAY, start=time(7, 0), end=time(12, 0))
    _assign(s, staff["unlicensed"], status="cancelled")
    db.session.commit()

    pool = SignalReader().get_eligible_employees(MONDAY, time(8, 0), time(16, 0))
    assert staff["unlicensed"].id in [e.id for e in pool]


def test_expired_certificates_are_ignored(app):
    _, _, staff = _portfolio()
    cert = EmployeeCertification.query.filter_by(employee_id=staff["certified"].id).one()
    cert.expiry_date = MONDAY - timedelta(days=1)
    db.session.commit()

    armed = SignalReader().get_eligible_employees(MONDAY, time(8, 0), time(16, 0), {"weapon"})
    assert staff["certified"].id not in [e.id for e in armed]


def test_occupancy_skips_cancelled_and_future_shifts(app):
    site, _, staff = _portfolio()
    kept = _shift(site, MONDAY - timedelta(days=7), required=2)
    _assign(kept, staff["licensed"])
    _assign(kept, staff["certified"], status="no_show")
    _shift(site, MONDAY - timedelta(days=14), status="cancelled")
    _shift(site, MONDAY + timedelta(days=7))
    db.session.commit()

    occ = SignalReader().get_historical_occupancy(site.id, 90, as_of=MONDAY)
    assert [o.shift_id for o in occ] == [kept.id]
    assert occ[0].assigned_count == 2
    assert occ[0].no_show_count == 1
    assert occ[0].site_name == "Site X"


def test_candidate_signals(app):
    site, _, staff = _portfolio()
    lic = staff["licensed"]
    for k, rating in ((21, 2), (14, 4), (7, 5)):
        _assign(_shift(site, MONDAY - timedelta(days=k)), lic, rating=rating)
    _assign(_shift(site, MONDAY - timedelta(days=3)), lic, status="no_show")
    # same week (weeks start on Sunday)
    _assign(_shift(site, MONDAY - timedelta(days=1), start=time(6, 0), end=time(7, 0)), lic)
    db.session.commit()

    reader = SignalReader()
    cfg = EngineConfig()
    pool = reader.get_eligible_employees(MONDAY, time(8, 0), time(16, 0), site_id=site.id)
    spec = ShiftSpec(date=MONDAY, start_time=time(8, 0), end_time=time(16, 0), site_id=site.id)
    warnings = []
    signals = {c.employee.id: c for c in reader.get_candidate_signals(spec, pool, cfg, warnings)}

    assert warnings == []
    s = signals[lic.id]
    assert s.ratings == (5, 4, 2)
    assert s.week_shift_count == 1
    assert s.site_visits == 4
    assert (s.total_assignments, s.no_shows) == (5, 1)
    assert s.is_preferred is False
    assert signals[staff["certified"].id].is_preferred is True


def test_database_failure_raises_data_unavailable(app):
    db.drop_all()
    with pytest.raises(DataUnavailable):
        SignalReader().get_historical_occupancy(None, 90, as_of=MONDAY)
    db.create_all()


def test_suggest_end_to_end_against_the_database(app):
    site, _, staff = _portfolio()
    svc = IntelligenceService(EngineConfig())

    result = svc.suggest("2025-06-02", "08:00", "16:00", requires_weapon=True, site_id=site.id)

    ids = [s.employee_id for s in result.suggestions]
    assert ids and set(ids) == {staff["licensed"].id, staff["certified"].id}
    assert staff["unlicensed"].id not in ids
    assert [s.score for s in result.suggestions] == sorted((s.score for s in result.suggestions), reverse=True)
    assert all(s.breakdown.weapon_bonus > 0 for s in result.suggestions)
    assert result.suggestions[0].employee_id == staff["certified"].id  # preferred by the site template

    again = svc.suggest("2025-06-02", "08:00", "16:00", requires_weapon=True, site_id=site.id)
    assert [s.to_dict() for s in again.suggestions] == [s.to_dict() for s in result.suggestions]


def test_armed_site_forces_weapon_filter(app):
    site, _, staff = _portfolio()
    site.requires_weapon = True
    db.session.commit()

    result = IntelligenceService(EngineConfig()).suggest("2025-06-02", "08:00", "16:00", site_id=site.id, limit=0)
    assert staff["unlicensed"].id not in [s.employee_id for s in result.suggestions]


def test_recent_assignments_and_active_employees(app):
    site, _, staff = _portfolio()
    lic = staff["licensed"]
    _assign(_shift(site, MONDAY - timedelta(days=2)), lic)
    _assign(_shift(site, MONDAY - timedelta(days=20)), lic)
    db.session.commit()

    reader = SignalReader()
    recent = reader.get_recent_assignments(lic.id, 7, as_of=MONDAY)
    assert [a.shift_date for a in recent] == [MONDAY - timedelta(days=2)]
    assert recent[0].worked

    active = reader.get_active_employees(MONDAY)
    assert staff["inactive"].id not in [e.id for e in active]
    certified = next(e for e in active if e.id == staff["certified"].id)
    assert certified.certifications == frozenset({"weapon"})
    assert certified.has_valid_weapon_license(MONDAY)


def test_failing_signal_query_degrades_to_a_warning(app, monkeypatch):
    site, _, staff = _portfolio()

    def _ratings_down(self, employee_ids, window):
        raise DataUnavailable("_ratings failed", payload={"reader": "_ratings"})

    monkeypatch.setattr(SignalReader, "_ratings", _ratings_down)
    result = IntelligenceService(EngineConfig()).suggest("2025-06-02", "08:00", "16:00", site_id=site.id, limit=0)

    ids = {s.employee_id for s in result.suggestions}
    assert staff["licensed"].id in ids
    assert all(s.avg_rating is None for s in result.suggestions)
    assert ("signals", "ratings") in [(w.scope, w.unit) for w in result.warnings]
