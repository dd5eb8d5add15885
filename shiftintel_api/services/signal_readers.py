# shiftintel_api/services/signal_readers.py
from __future__ import annotations

from collections import defaultdict
from datetime import date, time as _time, timedelta
from functools import wraps
from typing import Dict, Iterable, List, Optional, Set
import logging

from sqlalchemy import case, func
from sqlalchemy.exc import SQLAlchemyError

from shiftintel_api.common.errors import DataUnavailable
from shiftintel_api.extensions import db
from shiftintel_api.models.employee import Employee, EmployeeAvailability, EmployeeLeave
from shiftintel_api.models.shift import Shift, ShiftAssignment
from shiftintel_api.models.site import Site, ShiftTemplate
from shiftintel_api.services.engine import types as T
from shiftintel_api.services.engine.config import EngineConfig
from shiftintel_api.services.engine.insight import week_bounds

log = logging.getLogger(__name__)

ACTIVE = "active"
CANCELLED = T.AssignmentStatus.CANCELLED.value
NO_SHOW = T.AssignmentStatus.NO_SHOW.value


def _guarded(fn):
    """Turn database failures into DataUnavailable so callers can degrade."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except SQLAlchemyError as e:
            db.session.rollback()
            log.warning("signal reader %s failed: %s", fn.__name__, e)
            raise DataUnavailable(f"{fn.__name__} failed", payload={"reader": fn.__name__})
    return wrapper


def _float(v):
    return float(v) if v is not None else None


def _status(raw: str) -> T.AssignmentStatus:
    try:
        return T.AssignmentStatus(raw)
    except ValueError:
        # legacy 'confirmed' and similar values count as a live assignment
        return T.AssignmentStatus.ASSIGNED


def to_employee(e: Employee, on_date: date) -> T.Employee:
    certs = frozenset(c.cert_type for c in (e.certifications or []) if c.is_valid_on(on_date))
    return T.Employee(
        id=e.id,
        name=e.full_name,
        phone=e.phone,
        certifications=certs,
        has_weapon_license=bool(e.has_weapon_license),
        weapon_license_expiry=e.weapon_license_expiry,
        home_lat=_float(e.home_lat),
        home_lon=_float(e.home_lon),
        active=e.status == ACTIVE,
        hourly_rate=_float(e.hourly_rate),
    )


def to_assignment(a: ShiftAssignment, s: Shift) -> T.AssignmentRecord:
    return T.AssignmentRecord(
        id=a.id,
        employee_id=a.employee_id,
        shift_id=s.id,
        site_id=s.site_id,
        shift_date=s.date,
        start_time=s.start_time,
        end_time=s.end_time,
        status=_status(a.status),
        actual_hours=_float(a.actual_hours),
        rating=a.rating,
    )


class SignalReader:
    """
    Read-only queries that turn stored records into engine value types.

    Nothing here mutates the database; every method may run concurrently.
    """

    # ---------- sites / templates ----------

    @_guarded
    def get_site(self, site_id: Optional[int]) -> Optional[T.Site]:
        if not site_id:
            return None
        s = db.session.get(Site, site_id)
        if not s:
            return None
        lat, lon = s.geo_center()
        return T.Site(
            id=s.id,
            name=s.name,
            lat=lat,
            lon=lon,
            required_certifications=frozenset(s.required_certifications or []),
            requires_weapon=bool(s.requires_weapon),
        )

    @_guarded
    def get_preferred_ids(self, template_id: Optional[int], site_id: Optional[int]) -> Set[int]:
        """Template's preferred guards; without a template, the site's first active template."""
        tmpl = None
        if template_id:
            tmpl = db.session.get(ShiftTemplate, template_id)
        elif site_id:
            tmpl = (
                ShiftTemplate.query
                .filter(ShiftTemplate.site_id == site_id, ShiftTemplate.is_active.is_(True))
                .order_by(ShiftTemplate.id.asc())
                .first()
            )
        return tmpl.preferred_ids() if tmpl else set()

    # ---------- employees ----------

    @_guarded
    def get_active_employees(self, on_date: Optional[date] = None) -> List[T.Employee]:
        on_date = on_date or date.today()
        rows = Employee.query.filter(Employee.status == ACTIVE).order_by(Employee.id.asc()).all()
        return [to_employee(e, on_date) for e in rows]

    @_guarded
    def get_eligible_employees(
        self,
        on_date: date,
        start_time: _time,
        end_time: _time,
        required_capabilities: Iterable[str] = (),
        site_id: Optional[int] = None,
    ) -> List[T.Employee]:
        """
        Active employees who could take the opening:
          - no overlapping non-cancelled assignment
          - not marked unavailable on that weekday
          - not on approved leave covering the date
          - holding a valid weapon license when 'weapon' is required

        Every active employee may work any site, so site_id does not narrow the pool.
        """
        start_dt, end_dt = T.shift_bounds(on_date, start_time, end_time)

        busy: Set[int] = set()
        nearby = (
            db.session.query(ShiftAssignment.employee_id, Shift.date, Shift.start_time, Shift.end_time)
            .join(Shift, Shift.id == ShiftAssignment.shift_id)
            .filter(
                Shift.date.between(on_date - timedelta(days=1), on_date + timedelta(days=1)),
                ShiftAssignment.status != CANCELLED,
                Shift.status != "cancelled",
            )
            .all()
        )
        for emp_id, d, st, et in nearby:
            s2, e2 = T.shift_bounds(d, st, et)
            if s2 < end_dt and e2 > start_dt:
                busy.add(emp_id)

        unavailable = {
            row.employee_id
            for row in EmployeeAvailability.query.filter(
                EmployeeAvailability.weekday == on_date.weekday(),
                EmployeeAvailability.is_available.is_(False),
            ).all()
        }

        on_leave = {
            row.employee_id
            for row in EmployeeLeave.query.filter(
                EmployeeLeave.status == "approved",
                EmployeeLeave.start_date <= on_date,
                EmployeeLeave.end_date >= on_date,
            ).all()
        }

        needs_weapon = "weapon" in set(required_capabilities or ())
        out = []
        for e in Employee.query.filter(Employee.status == ACTIVE).order_by(Employee.id.asc()).all():
            if e.id in busy or e.id in unavailable or e.id in on_leave:
                continue
            emp = to_employee(e, on_date)
            if needs_weapon and not emp.has_valid_weapon_license(on_date):
                continue
            out.append(emp)
        return out

    # ---------- assignments ----------

    @_guarded
    def get_assignments_between(
        self,
        since: date,
        until: date,
        employee_ids: Optional[Iterable[int]] = None,
    ) -> Dict[int, List[T.AssignmentRecord]]:
        q = (
            db.session.query(ShiftAssignment, Shift)
            .join(Shift, Shift.id == ShiftAssignment.shift_id)
            .filter(Shift.date >= since, Shift.date <= until, Shift.status != "cancelled")
        )
        if employee_ids is not None:
            ids = list(employee_ids)
            if not ids:
                return {}
            q = q.filter(ShiftAssignment.employee_id.in_(ids))

        out: Dict[int, List[T.AssignmentRecord]] = defaultdict(list)
        for a, s in q.order_by(Shift.date.asc(), Shift.start_time.asc(), ShiftAssignment.id.asc()).all():
            out[a.employee_id].append(to_assignment(a, s))
        return dict(out)

    def get_recent_assignments(self, employee_id: int, window_days: int,
                               as_of: Optional[date] = None) -> List[T.AssignmentRecord]:
        as_of = as_of or date.today()
        rows = self.get_assignments_between(as_of - timedelta(days=window_days), as_of, [employee_id])
        return rows.get(employee_id, [])

    @_guarded
    def get_historical_occupancy(
        self,
        site_id: Optional[int],
        lookback_days: int,
        as_of: Optional[date] = None,
    ) -> List[T.ShiftOccurrence]:
        as_of = as_of or date.today()
        q = (
            Shift.query
            .join(Site, Site.id == Shift.site_id)
            .filter(
                Shift.site_id.isnot(None),
                Shift.status != "cancelled",
                Shift.date >= as_of - timedelta(days=lookback_days),
                Shift.date <= as_of,
            )
        )
        if site_id:
            q = q.filter(Shift.site_id == site_id)

        out = []
        for s in q.order_by(Shift.date.asc(), Shift.id.asc()).all():
            out.append(T.ShiftOccurrence(
                shift_id=s.id,
                site_id=s.site_id,
                site_name=s.site.name if s.site else "",
                date=s.date,
                start_time=s.start_time,
                end_time=s.end_time,
                required=s.required_employees or 1,
                assignments=tuple(to_assignment(a, s) for a in sorted(s.assignments, key=lambda x: x.id)),
            ))
        return out

    # ---------- per-candidate history ----------

    @_guarded
    def _ratings(self, employee_ids: List[int], limit: int) -> Dict[int, tuple]:
        rows = (
            db.session.query(ShiftAssignment.employee_id, ShiftAssignment.rating)
            .join(Shift, Shift.id == ShiftAssignment.shift_id)
            .filter(ShiftAssignment.employee_id.in_(employee_ids), ShiftAssignment.rating.isnot(None))
            .order_by(Shift.date.desc(), ShiftAssignment.id.desc())
            .all()
        )
        out: Dict[int, list] = defaultdict(list)
        for emp_id, rating in rows:
            if len(out[emp_id]) < limit:
                out[emp_id].append(int(rating))
        return {k: tuple(v) for k, v in out.items()}

    @_guarded
    def _site_visits(self, employee_ids: List[int], site_id: int, since: date, until: date) -> Dict[int, int]:
        rows = (
            db.session.query(ShiftAssignment.employee_id, func.count(ShiftAssignment.id))
            .join(Shift, Shift.id == ShiftAssignment.shift_id)
            .filter(
                ShiftAssignment.employee_id.in_(employee_ids),
                Shift.site_id == site_id,
                Shift.date >= since,
                Shift.date < until,
                ShiftAssignment.status.notin_([CANCELLED, NO_SHOW]),
            )
            .group_by(ShiftAssignment.employee_id)
            .all()
        )
        return {emp_id: int(n) for emp_id, n in rows}

    @_guarded
    def _reliability(self, employee_ids: List[int]) -> Dict[int, tuple]:
        rows = (
            db.session.query(
                ShiftAssignment.employee_id,
                func.count(ShiftAssignment.id),
                func.sum(case((ShiftAssignment.status == NO_SHOW, 1), else_=0)),
            )
            .filter(ShiftAssignment.employee_id.in_(employee_ids), ShiftAssignment.status != CANCELLED)
            .group_by(ShiftAssignment.employee_id)
            .all()
        )
        return {emp_id: (int(total or 0), int(no_shows or 0)) for emp_id, total, no_shows in rows}

    def get_candidate_signals(
        self,
        shift: T.ShiftSpec,
        employees: List[T.Employee],
        config: EngineConfig,
        warnings: List[T.AnalysisWarning],
    ) -> List[T.CandidateSignals]:
        """
        Collect the optional signals for a pool in bulk.
        A failing signal degrades to empty for everyone and is reported in `warnings`.
        """
        if not employees:
            return []
        ids = [e.id for e in employees]
        w = config.scoring

        def _optional(name, fn, default):
            try:
                return fn()
            except DataUnavailable as e:
                warnings.append(T.AnalysisWarning("signals", name, e.message))
                return default

        preferred = _optional("preferred", lambda: self.get_preferred_ids(shift.template_id, shift.site_id), set())

        week_start, week_end = week_bounds(shift.date, w.week_starts_on)
        history_since = min(week_start, shift.date - timedelta(days=config.fatigue.window_days + 1))
        history = _optional(
            "assignments",
            lambda: self.get_assignments_between(history_since, max(week_end, shift.date), ids),
            {},
        )
        ratings = _optional("ratings", lambda: self._ratings(ids, w.rating_window), {})
        visits = {}
        if shift.site_id:
            visits = _optional(
                "site_visits",
                lambda: self._site_visits(ids, shift.site_id,
                                          shift.date - timedelta(days=w.cohesion_lookback_days), shift.date),
                {},
            )
        reliability = _optional("reliability", lambda: self._reliability(ids), {})

        out = []
        for emp in employees:
            rows = history.get(emp.id, [])
            week_count = len({
                a.shift_id for a in rows
                if a.status != T.AssignmentStatus.CANCELLED and week_start <= a.shift_date <= week_end
            })
            total, no_shows = reliability.get(emp.id, (0, 0))
            out.append(T.CandidateSignals(
                employee=emp,
                recent_assignments=tuple(rows),
                week_shift_count=week_count,
                ratings=ratings.get(emp.id, ()),
                site_visits=visits.get(emp.id, 0),
                total_assignments=total,
                no_shows=no_shows,
                is_preferred=emp.id in preferred,
            ))
        return out
