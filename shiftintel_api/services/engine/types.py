# shiftintel_api/services/engine/types.py
"""
Value types shared by the analyzers.

Everything here is immutable: the engine reads a caller-supplied snapshot
and never mutates it, so the same snapshot can be scored from several
threads at once.
"""
from __future__ import annotations

from dataclasses import dataclass, field, fields, asdict
from datetime import date, datetime, time, timedelta
from enum import Enum
from typing import Optional, Tuple, FrozenSet


class AssignmentStatus(str, Enum):
    ASSIGNED = "assigned"
    CHECKED_IN = "checked_in"
    CHECKED_OUT = "checked_out"
    NO_SHOW = "no_show"
    CANCELLED = "cancelled"


class RiskLevel(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FatigueRule(str, Enum):
    SHIFT_COUNT_HIGH = "shift_count_high"
    REST_GAP_HIGH = "rest_gap_high"
    HOURS_HIGH = "hours_high"
    SHIFT_COUNT_MEDIUM = "shift_count_medium"
    REST_GAP_MEDIUM = "rest_gap_medium"
    HOURS_MEDIUM = "hours_medium"


class Severity(str, Enum):
    INFO = "info"
    WARNING = "warning"
    CRITICAL = "critical"


class StaffingAction(str, Enum):
    INCREASE = "increase"
    DECREASE = "decrease"
    KEEP = "keep"


class ReasonCode(str, Enum):
    """Closed vocabulary; display strings are produced by the UI from these codes."""
    PREFERRED_GUARD = "preferred_guard"
    CLOSE_TO_SITE = "close_to_site"
    FAR_FROM_SITE = "far_from_site"
    HIGH_RATING = "high_rating"
    LOW_RATING = "low_rating"
    LIGHT_WORKLOAD = "light_workload"
    HEAVY_WORKLOAD = "heavy_workload"
    FATIGUE_RISK = "fatigue_risk"
    SPECIALIZED = "specialized"
    KNOWS_SITE = "knows_site"
    LOW_RELIABILITY = "low_reliability"
    ARMED = "armed"


WEAPON_CERT_TYPES = frozenset({"weapon", "firearm", "armed_guard"})


def shift_bounds(on: date, start: time, end: time) -> Tuple[datetime, datetime]:
    """Start/end datetimes; a shift whose end is not after its start runs past midnight."""
    start_dt = datetime.combine(on, start)
    end_dt = datetime.combine(on, end)
    if end_dt <= start_dt:
        end_dt += timedelta(days=1)
    return start_dt, end_dt


@dataclass(frozen=True)
class Employee:
    id: int
    name: str
    phone: Optional[str] = None
    certifications: FrozenSet[str] = frozenset()
    has_weapon_license: bool = False
    weapon_license_expiry: Optional[date] = None
    home_lat: Optional[float] = None
    home_lon: Optional[float] = None
    active: bool = True
    hourly_rate: Optional[float] = None

    def has_valid_weapon_license(self, on: date) -> bool:
        if self.has_weapon_license and (self.weapon_license_expiry is None or self.weapon_license_expiry >= on):
            return True
        # certifications are pre-filtered to the ones valid on the shift date
        return bool(self.certifications & WEAPON_CERT_TYPES)


@dataclass(frozen=True)
class Site:
    id: int
    name: str
    lat: Optional[float] = None
    lon: Optional[float] = None
    required_certifications: FrozenSet[str] = frozenset()
    requires_weapon: bool = False


@dataclass(frozen=True)
class ShiftSpec:
    """The opening being filled."""
    date: date
    start_time: time
    end_time: time
    requires_weapon: bool = False
    site_id: Optional[int] = None
    template_id: Optional[int] = None
    required_capabilities: FrozenSet[str] = frozenset()

    @property
    def bounds(self) -> Tuple[datetime, datetime]:
        return shift_bounds(self.date, self.start_time, self.end_time)


@dataclass(frozen=True)
class AssignmentRecord:
    id: int
    employee_id: int
    shift_id: int
    site_id: Optional[int]
    shift_date: date
    start_time: time
    end_time: time
    status: AssignmentStatus
    actual_hours: Optional[float] = None
    rating: Optional[int] = None

    @property
    def bounds(self) -> Tuple[datetime, datetime]:
        return shift_bounds(self.shift_date, self.start_time, self.end_time)

    @property
    def hours(self) -> float:
        if self.actual_hours is not None:
            return float(self.actual_hours)
        start, end = self.bounds
        return (end - start).total_seconds() / 3600.0

    @property
    def worked(self) -> bool:
        """Counts toward load: anything not cancelled and not a no-show."""
        return self.status not in (AssignmentStatus.CANCELLED, AssignmentStatus.NO_SHOW)


@dataclass(frozen=True)
class ShiftOccurrence:
    """One historical shift with its assignments, as returned by GetHistoricalOccupancy."""
    shift_id: int
    site_id: int
    site_name: str
    date: date
    start_time: time
    end_time: time
    required: int
    assignments: Tuple[AssignmentRecord, ...] = ()

    @property
    def assigned_count(self) -> int:
        return sum(1 for a in self.assignments if a.status != AssignmentStatus.CANCELLED)

    @property
    def no_show_count(self) -> int:
        return sum(1 for a in self.assignments if a.status == AssignmentStatus.NO_SHOW)

    @property
    def weekday(self) -> int:
        return self.date.weekday()


@dataclass(frozen=True)
class CandidateSignals:
    """Everything the scoring engine knows about one candidate for one opening."""
    employee: Employee
    recent_assignments: Tuple[AssignmentRecord, ...] = ()
    week_shift_count: int = 0
    ratings: Tuple[int, ...] = ()
    site_visits: int = 0
    total_assignments: int = 0
    no_shows: int = 0
    is_preferred: bool = False


@dataclass(frozen=True)
class ScoreBreakdown:
    base: int = 0
    preferred: int = 0
    geographic: int = 0
    performance: int = 0
    workload: int = 0
    fatigue: int = 0
    specialization: int = 0
    team_cohesion: int = 0
    reliability: int = 0
    weapon_bonus: int = 0

    @property
    def total(self) -> int:
        return sum(getattr(self, f.name) for f in fields(self))

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Suggestion:
    employee_id: int
    employee_name: str
    phone: Optional[str]
    score: int
    breakdown: ScoreBreakdown
    reasons: Tuple[ReasonCode, ...] = ()
    distance_km: Optional[float] = None
    avg_rating: Optional[float] = None
    fatigue_warning: bool = False
    is_preferred: bool = False
    week_shift_count: int = 0

    @property
    def display_score(self) -> int:
        return max(0, min(100, self.score))

    def to_dict(self) -> dict:
        return {
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "phone": self.phone,
            "score": self.score,
            "display_score": self.display_score,
            "score_breakdown": self.breakdown.as_dict(),
            "reasons": [r.value for r in self.reasons],
            "distance_km": self.distance_km,
            "avg_rating": self.avg_rating,
            "fatigue_warning": self.fatigue_warning,
            "is_preferred": self.is_preferred,
            "weekly_shifts": self.week_shift_count,
        }


@dataclass(frozen=True)
class FatigueRisk:
    employee_id: int
    employee_name: str
    shift_count: int
    min_rest_gap_hours: Optional[float]
    total_hours: float
    risk_level: RiskLevel
    triggered_rules: Tuple[FatigueRule, ...] = ()

    def to_dict(self) -> dict:
        return {
            "employee_id": self.employee_id,
            "employee_name": self.employee_name,
            "shift_count": self.shift_count,
            "min_rest_gap_hours": self.min_rest_gap_hours,
            "total_hours": self.total_hours,
            "risk_level": self.risk_level.value,
            "risk_factors": [r.value for r in self.triggered_rules],
        }


@dataclass(frozen=True)
class ShortagePattern:
    site_id: int
    site_name: str
    day_of_week: int
    total_shifts: int
    understaffed_count: int
    rate: int
    severity: Severity = Severity.INFO

    def to_dict(self) -> dict:
        return {
            "site_id": self.site_id,
            "site_name": self.site_name,
            "day_of_week": self.day_of_week,
            "total_shifts": self.total_shifts,
            "understaffed_count": self.understaffed_count,
            "rate": self.rate,
            "severity": self.severity.value,
        }


@dataclass(frozen=True)
class StaffingSuggestion:
    site_id: int
    site_name: str
    day_of_week: int
    shift_count: int
    current_required: int
    suggested_required: int
    no_show_rate: float
    avg_assigned: float
    action: StaffingAction = StaffingAction.KEEP

    @property
    def delta(self) -> int:
        return self.suggested_required - self.current_required

    def to_dict(self) -> dict:
        return {
            "site_id": self.site_id,
            "site_name": self.site_name,
            "day_of_week": self.day_of_week,
            "shift_count": self.shift_count,
            "current_required": self.current_required,
            "suggested_required": self.suggested_required,
            "delta": self.delta,
            "action": self.action.value,
            "no_show_rate": self.no_show_rate,
            "avg_assigned": self.avg_assigned,
        }


@dataclass(frozen=True)
class AnalysisWarning:
    """A unit of work that failed inside a batch; the batch itself still completes."""
    scope: str
    unit: str
    message: str

    def to_dict(self) -> dict:
        return {"scope": self.scope, "unit": self.unit, "message": self.message}


@dataclass(frozen=True)
class SuggestionResult:
    suggestions: Tuple[Suggestion, ...] = ()
    warnings: Tuple[AnalysisWarning, ...] = ()


@dataclass(frozen=True)
class InsightSnapshot:
    """What the aggregator hands to the store; the persisted row is a copy of this."""
    analysis_date: date
    trigger: str
    shortage_sites: int
    fatigue_risk_employees: int
    optimization_opportunities: int
    high_no_show_sites: int
    severity: Severity
    details: dict
    config_version: str
    config_fingerprint: str
    warnings: Tuple[AnalysisWarning, ...] = field(default_factory=tuple)
