# shiftintel_api/services/engine/config.py
from __future__ import annotations

import hashlib
import json
from dataclasses import dataclass, field, fields, is_dataclass, asdict, replace
from typing import Any, Mapping, Optional, Tuple

from shiftintel_api.common.errors import ValidationError

DEFAULT_VERSION = "2025.1"


@dataclass(frozen=True)
class GeoBand:
    max_km: float
    points: int


@dataclass(frozen=True)
class ScoringWeights:
    base: int = 40
    preferred: int = 15

    # banded distance bonus; beyond the last band far_penalty applies
    geo_bands: Tuple[GeoBand, ...] = (GeoBand(5, 15), GeoBand(15, 10), GeoBand(30, 5))
    far_penalty: int = -5

    min_ratings: int = 3
    rating_window: int = 20
    neutral_rating: float = 3.0
    points_per_star: int = 4
    performance_cap: int = 10

    idle_bonus: int = 5
    per_shift_penalty: int = 8
    workload_floor: int = -30
    week_starts_on: int = 6  # 0=Mon .. 6=Sun

    fatigue_medium: int = -8
    fatigue_high: int = -20

    specialization: int = 10

    cohesion_per_visit: int = 2
    cohesion_cap: int = 6
    cohesion_lookback_days: int = 90

    reliability_min_assignments: int = 3
    reliability_scale: int = 50
    reliability_cap: int = 15

    weapon_bonus: int = 3

    reason_threshold: int = 1
    default_limit: int = 5
    max_workers: int = 4


@dataclass(frozen=True)
class FatigueThresholds:
    window_days: int = 7
    high_shift_count: int = 7
    high_min_rest_hours: float = 8.0
    high_total_hours: float = 50.0
    medium_shift_count: int = 6
    medium_min_rest_hours: float = 10.0
    medium_total_hours: float = 40.0


@dataclass(frozen=True)
class ShortagePolicy:
    lookback_days: int = 90
    min_occurrences: int = 1
    flag_rate: int = 30
    critical_rate: int = 50


@dataclass(frozen=True)
class StaffingPolicy:
    lookback_days: int = 56
    min_occurrences: int = 2
    increase_above: float = 0.10
    decrease_max_no_show: float = 0.02
    decrease_understaffed_share: float = 0.8


@dataclass(frozen=True)
class InsightPolicy:
    no_show_lookback_days: int = 30
    high_no_show_rate: float = 0.20
    rating_window_days: int = 30
    rating_drop: float = 0.5
    overtime_shift_count: int = 5
    overtime_hours_baseline: float = 42.0
    overtime_multiplier: float = 1.25
    critical_fatigue_count: int = 3
    run_stale_minutes: int = 60


@dataclass(frozen=True)
class EngineConfig:
    """
    Thresholds and weights for one analysis run.

    Passed explicitly into every analyzer so a result can be reproduced from
    (inputs, config). Deployments override values through a plain mapping:

        {"version": "site-north-2", "scoring": {"base": 50}, "fatigue": {"high_shift_count": 6}}
    """
    version: str = DEFAULT_VERSION
    scoring: ScoringWeights = field(default_factory=ScoringWeights)
    fatigue: FatigueThresholds = field(default_factory=FatigueThresholds)
    shortage: ShortagePolicy = field(default_factory=ShortagePolicy)
    staffing: StaffingPolicy = field(default_factory=StaffingPolicy)
    insight: InsightPolicy = field(default_factory=InsightPolicy)

    @classmethod
    def from_mapping(cls, overrides: Optional[Mapping[str, Any]] = None) -> "EngineConfig":
        if not overrides:
            return cls()
        if not isinstance(overrides, Mapping):
            raise ValidationError("Engine config overrides must be a mapping")
        return _merge(cls(), overrides, path="")

    def to_dict(self) -> dict:
        return asdict(self)

    def fingerprint(self) -> str:
        raw = json.dumps(self.to_dict(), sort_keys=True, default=str)
        return hashlib.sha256(raw.encode("utf-8")).hexdigest()


def _merge(current, overrides: Mapping[str, Any], path: str):
    known = {f.name: f for f in fields(current)}
    changes = {}
    for key, value in overrides.items():
        where = f"{path}{key}"
        if key not in known:
            raise ValidationError(f"Unknown engine config key: {where}")
        existing = getattr(current, key)
        if is_dataclass(existing):
            if not isinstance(value, Mapping):
                raise ValidationError(f"Engine config section {where} must be a mapping")
            changes[key] = _merge(existing, value, path=f"{where}.")
        elif key == "geo_bands":
            changes[key] = _geo_bands(value, where)
        else:
            changes[key] = _coerce(existing, value, where)
    return replace(current, **changes)


def _geo_bands(value, where) -> Tuple[GeoBand, ...]:
    try:
        bands = tuple(
            GeoBand(float(b["max_km"]), int(b["points"])) if isinstance(b, Mapping) else GeoBand(float(b[0]), int(b[1]))
            for b in value
        )
    except (TypeError, KeyError, IndexError, ValueError):
        raise ValidationError(f"{where} must be a list of {{max_km, points}} entries")
    return tuple(sorted(bands, key=lambda b: b.max_km))


def _coerce(existing, value, where):
    try:
        if isinstance(existing, bool):
            return bool(value)
        if isinstance(existing, int):
            return int(value)
        if isinstance(existing, float):
            return float(value)
        if isinstance(existing, str):
            return str(value)
    except (TypeError, ValueError):
        raise ValidationError(f"Invalid value for engine config key {where}: {value!r}")
    return value
