# shiftintel_api/services/engine/insight.py
"""
Weekly insight aggregation.

Runs the fatigue, shortage and staffing analyzers over the whole portfolio,
adds the no-show / rating / overtime digests and hands one InsightSnapshot to
the store. Only one generation may be in flight at a time. The run guard
(database-backed in the service) rejects a second trigger with
ConcurrentRunConflict instead of queueing it.
"""
from __future__ import annotations

import logging
import threading
from datetime import date, datetime, timedelta
from typing import Dict, List, Optional, Protocol, Sequence, Tuple

from shiftintel_api.common.errors import ConcurrentRunConflict, DataUnavailable
from shiftintel_api.services.engine import fatigue as fatigue_analyzer
from shiftintel_api.services.engine import shortage as shortage_analyzer
from shiftintel_api.services.engine import staffing as staffing_optimizer
from shiftintel_api.services.engine.config import EngineConfig, InsightPolicy
from shiftintel_api.services.engine.types import (
    AnalysisWarning,
    AssignmentRecord,
    Employee,
    InsightSnapshot,
    RiskLevel,
    Severity,
    ShiftOccurrence,
)

log = logging.getLogger(__name__)


class PortfolioReader(Protocol):
    def get_active_employees(self) -> List[Employee]: ...

    def get_assignments_between(self, since: date, until: date) -> Dict[int, List[AssignmentRecord]]: ...

    def get_historical_occupancy(self, site_id: Optional[int], lookback_days: int,
                                 as_of: Optional[date] = None) -> List[ShiftOccurrence]: ...


class InsightSink(Protocol):
    def append(self, snapshot: InsightSnapshot): ...


def week_bounds(on: date, week_starts_on: int) -> Tuple[date, date]:
    start = on - timedelta(days=(on.weekday() - week_starts_on) % 7)
    return start, start + timedelta(days=6)


def high_no_show_sites(
    occurrences: Sequence[ShiftOccurrence], as_of: date, policy: InsightPolicy,
) -> List[dict]:
    totals: Dict[int, List] = {}
    for o in shortage_analyzer.in_window(occurrences, as_of, policy.no_show_lookback_days):
        entry = totals.setdefault(o.site_id, [o.site_name, 0, 0])
        entry[1] += o.assigned_count
        entry[2] += o.no_show_count

    out = []
    for site_id in sorted(totals):
        name, total, no_shows = totals[site_id]
        if total <= 0:
            continue
        rate = no_shows / total
        if rate > policy.high_no_show_rate:
            out.append({
                "site_id": site_id,
                "site_name": name,
                "no_show_rate": round(rate, 3),
                "total_assignments": total,
                "no_shows": no_shows,
            })
    return out


def declining_ratings(
    employees: Dict[int, Employee],
    assignments: Dict[int, List[AssignmentRecord]],
    as_of: date,
    policy: InsightPolicy,
) -> List[dict]:
    """Employees whose average over the last window fell more than rating_drop below the one before."""
    recent_since = as_of - timedelta(days=policy.rating_window_days)
    previous_since = recent_since - timedelta(days=policy.rating_window_days)

    out = []
    for employee_id in sorted(assignments):
        emp = employees.get(employee_id)
        if emp is None:
            continue
        recent, previous = [], []
        for a in assignments[employee_id]:
            if a.rating is None:
                continue
            if recent_since <= a.shift_date <= as_of:
                recent.append(a.rating)
            elif previous_since <= a.shift_date < recent_since:
                previous.append(a.rating)
        if not recent or not previous:
            continue
        recent_avg = sum(recent) / len(recent)
        previous_avg = sum(previous) / len(previous)
        if recent_avg < previous_avg - policy.rating_drop:
            out.append({
                "employee_id": employee_id,
                "employee_name": emp.name,
                "recent_avg": round(recent_avg, 1),
                "previous_avg": round(previous_avg, 1),
                "change": round(recent_avg - previous_avg, 1),
            })
    return out


def overtime_employees(
    employees: Dict[int, Employee],
    assignments: Dict[int, List[AssignmentRecord]],
    week: Tuple[date, date],
    policy: InsightPolicy,
) -> List[dict]:
    out = []
    for employee_id in sorted(assignments):
        emp = employees.get(employee_id)
        if emp is None:
            continue
        worked = [a for a in assignments[employee_id] if a.worked and week[0] <= a.shift_date <= week[1]]
        shift_count = len({a.shift_id for a in worked})
        if shift_count <= policy.overtime_shift_count:
            continue
        hours = sum(a.hours for a in worked)
        cost = None
        if emp.hourly_rate:
            extra = max(0.0, hours - policy.overtime_hours_baseline)
            cost = round(extra * float(emp.hourly_rate) * policy.overtime_multiplier)
        out.append({
            "employee_id": employee_id,
            "employee_name": emp.name,
            "shift_count": shift_count,
            "total_hours": round(hours, 1),
            "estimated_overtime_cost": cost,
        })
    out.sort(key=lambda r: (-r["total_hours"], r["employee_id"]))
    return out


def derive_severity(
    high_fatigue: int,
    shortage_rates: Sequence[int],
    issue_counts: Sequence[int],
    config: EngineConfig,
) -> Severity:
    if high_fatigue > config.insight.critical_fatigue_count:
        return Severity.CRITICAL
    if any(rate > config.shortage.critical_rate for rate in shortage_rates):
        return Severity.CRITICAL
    if any(c > 0 for c in issue_counts):
        return Severity.WARNING
    return Severity.INFO


class RunGuard(Protocol):
    def acquire(self, trigger: str): ...

    def release(self, run, succeeded: bool, insight_id: Optional[int] = None,
                error: Optional[str] = None) -> None: ...

    def is_running(self) -> bool: ...


class LocalRunGuard:
    """Single-flight guard for one process; callers without a shared database use it."""

    def __init__(self):
        self._lock = threading.Lock()

    def acquire(self, trigger: str):
        if not self._lock.acquire(blocking=False):
            raise ConcurrentRunConflict()
        return trigger

    def release(self, run, succeeded: bool, insight_id: Optional[int] = None,
                error: Optional[str] = None) -> None:
        self._lock.release()

    def is_running(self) -> bool:
        return self._lock.locked()


_local_runs = LocalRunGuard()


class InsightAggregator:
    def __init__(self, reader: PortfolioReader, sink: InsightSink, config: EngineConfig,
                 runs: Optional[RunGuard] = None):
        self.reader = reader
        self.sink = sink
        self.config = config
        self.runs = runs if runs is not None else _local_runs

    def is_running(self) -> bool:
        return self.runs.is_running()

    def claim(self, trigger: str):
        """Take the run slot or raise ConcurrentRunConflict. The caller owns the returned run."""
        try:
            return self.runs.acquire(trigger)
        except ConcurrentRunConflict:
            log.warning("insight generation rejected (trigger=%s): run already in progress", trigger)
            raise

    def generate(self, trigger: str = "manual", as_of: Optional[datetime] = None):
        """Build and append one snapshot. Returns whatever the sink returns for the new row."""
        return self.generate_claimed(self.claim(trigger), trigger=trigger, as_of=as_of)

    def generate_claimed(self, run, trigger: str = "manual", as_of: Optional[datetime] = None):
        """Same as generate() for a run already taken with claim(); the run is released either way."""
        try:
            snapshot = self.build(trigger=trigger, as_of=as_of or datetime.now())
            row = self.sink.append(snapshot)
        except Exception as e:
            self.runs.release(run, succeeded=False, error=str(e))
            raise
        self.runs.release(run, succeeded=True, insight_id=getattr(row, "id", None))
        log.info(
            "insight stored trigger=%s severity=%s warnings=%d",
            trigger, snapshot.severity.value, len(snapshot.warnings),
        )
        return row

    def build(self, trigger: str, as_of: datetime) -> InsightSnapshot:
        cfg = self.config
        today = as_of.date()
        warnings: List[AnalysisWarning] = []
        log.info("insight generation started trigger=%s as_of=%s config=%s", trigger, as_of.isoformat(), cfg.version)

        # occupancy once, for the widest lookback any section needs
        lookback = max(cfg.shortage.lookback_days, cfg.staffing.lookback_days, cfg.insight.no_show_lookback_days)
        try:
            occupancy = self.reader.get_historical_occupancy(None, lookback, as_of=today)
        except DataUnavailable as e:
            warnings.append(AnalysisWarning("occupancy", "portfolio", e.message))
            occupancy = []

        try:
            employees = {e.id: e for e in self.reader.get_active_employees()}
        except DataUnavailable as e:
            warnings.append(AnalysisWarning("employees", "portfolio", e.message))
            employees = {}

        week = week_bounds(today, cfg.scoring.week_starts_on)
        since = min(
            today - timedelta(days=cfg.fatigue.window_days + 1),
            today - timedelta(days=2 * cfg.insight.rating_window_days),
            week[0],
        )
        try:
            assignments = self.reader.get_assignments_between(since, max(today, week[1]))
        except DataUnavailable as e:
            warnings.append(AnalysisWarning("assignments", "portfolio", e.message))
            assignments = {}
        assignments = {k: v for k, v in assignments.items() if k in employees}

        shortages, w = shortage_analyzer.detect_patterns(occupancy, today, cfg.shortage)
        warnings.extend(w)

        histories = {eid: (employees[eid].name, rows) for eid, rows in assignments.items()}
        fatigue, w = fatigue_analyzer.analyze_portfolio(histories, as_of, cfg.fatigue)
        warnings.extend(w)

        staffing, w = staffing_optimizer.suggest_staffing(occupancy, today, cfg.staffing)
        warnings.extend(w)

        no_show_sites = self._section("high_no_show_sites", warnings,
                                      lambda: high_no_show_sites(occupancy, today, cfg.insight))
        declining = self._section("declining_ratings", warnings,
                                  lambda: declining_ratings(employees, assignments, today, cfg.insight))
        overtime = self._section("overtime", warnings,
                                 lambda: overtime_employees(employees, assignments, week, cfg.insight))

        flagged = shortage_analyzer.flagged(shortages, cfg.shortage)
        shortage_sites = len({p.site_id for p in flagged})
        high_fatigue = sum(1 for f in fatigue if f.risk_level == RiskLevel.HIGH)
        optimization = len(staffing_optimizer.opportunities(staffing))

        severity = derive_severity(
            high_fatigue,
            [p.rate for p in shortages],
            [shortage_sites, high_fatigue, optimization, len(no_show_sites)],
            cfg,
        )

        log.info(
            "insight counts shortage_sites=%d fatigue_high=%d optimizations=%d high_no_show_sites=%d",
            shortage_sites, high_fatigue, optimization, len(no_show_sites),
        )

        return InsightSnapshot(
            analysis_date=today,
            trigger=trigger,
            shortage_sites=shortage_sites,
            fatigue_risk_employees=high_fatigue,
            optimization_opportunities=optimization,
            high_no_show_sites=len(no_show_sites),
            severity=severity,
            details={
                "shortages": [p.to_dict() for p in shortages],
                "fatigue": [f.to_dict() for f in fatigue],
                "staffing": [s.to_dict() for s in staffing],
                "high_no_show_sites": no_show_sites,
                "declining_ratings": declining,
                "overtime_employees": overtime,
            },
            config_version=cfg.version,
            config_fingerprint=cfg.fingerprint(),
            warnings=tuple(warnings),
        )

    @staticmethod
    def _section(name: str, warnings: List[AnalysisWarning], fn):
        try:
            return fn()
        except Exception as e:
            log.warning("insight section %s failed: %s", name, e)
            warnings.append(AnalysisWarning("insight", name, str(e)))
            return []
