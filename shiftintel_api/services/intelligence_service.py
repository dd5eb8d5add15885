# shiftintel_api/services/intelligence_service.py
from __future__ import annotations

import json
import logging
from datetime import date, datetime, time as _time, timedelta
from typing import List, Optional, Tuple

from shiftintel_api.common.errors import APIError, DataUnavailable, ValidationError
from shiftintel_api.services.engine import fatigue as fatigue_analyzer
from shiftintel_api.services.engine import scoring
from shiftintel_api.services.engine import shortage as shortage_analyzer
from shiftintel_api.services.engine import staffing as staffing_optimizer
from shiftintel_api.services.engine.config import EngineConfig
from shiftintel_api.services.engine.insight import InsightAggregator
from shiftintel_api.services.engine.types import (
    AnalysisWarning,
    FatigueRisk,
    ShiftSpec,
    ShortagePattern,
    StaffingSuggestion,
    SuggestionResult,
)
from shiftintel_api.services.insight_runs import InsightRunLedger
from shiftintel_api.services.insight_store import InsightStore
from shiftintel_api.services.signal_readers import SignalReader

log = logging.getLogger(__name__)


def load_engine_config(app) -> EngineConfig:
    """
    Effective engine config for an app: defaults, then ENGINE_CONFIG_FILE (JSON),
    then the ENGINE_CONFIG mapping. Cached on app.extensions.
    """
    cached = app.extensions.get("engine_config")
    if cached is not None:
        return cached

    overrides: dict = {}
    path = app.config.get("ENGINE_CONFIG_FILE")
    if path:
        try:
            with open(path, "r", encoding="utf-8") as f:
                overrides.update(json.load(f) or {})
        except (OSError, ValueError) as e:
            # server-side misconfiguration, not a bad request
            raise APIError("ENGINE_CONFIG_UNREADABLE", f"Could not read engine config file {path!r}: {e}", 500)
    overrides.update(app.config.get("ENGINE_CONFIG") or {})

    try:
        cfg = EngineConfig.from_mapping(overrides)
    except ValidationError as e:
        raise APIError("ENGINE_CONFIG_INVALID", e.message, 500)
    app.extensions["engine_config"] = cfg
    app.logger.info("engine config version=%s fingerprint=%s", cfg.version, cfg.fingerprint()[:12])
    return cfg


def _parse_date(s) -> date:
    if isinstance(s, date):
        return s
    for f in ("%Y-%m-%d", "%d-%m-%Y"):
        try:
            return datetime.strptime(str(s).strip(), f).date()
        except ValueError:
            pass
    raise ValidationError("date must be YYYY-MM-DD", payload={"field": "date"})


def _parse_time(s, field: str) -> _time:
    if isinstance(s, _time):
        return s
    for f in ("%H:%M", "%H:%M:%S"):
        try:
            return datetime.strptime(str(s).strip(), f).time()
        except ValueError:
            pass
    raise ValidationError(f"{field} must be HH:MM", payload={"field": field})


def _blank(v) -> bool:
    return v is None or (isinstance(v, str) and not v.strip())


class IntelligenceService:
    """The six caller-facing operations, over the database-backed signal readers."""

    def __init__(self, config: EngineConfig, reader: Optional[SignalReader] = None,
                 store: Optional[InsightStore] = None, runs: Optional[InsightRunLedger] = None):
        self.config = config
        self.reader = reader or SignalReader()
        self.store = store or InsightStore()
        self.runs = runs or InsightRunLedger(config.insight.run_stale_minutes)

    # ---------- Suggest ----------

    def suggest(
        self,
        on_date,
        start_time,
        end_time,
        requires_weapon: bool = False,
        site_id: Optional[int] = None,
        template_id: Optional[int] = None,
        limit: Optional[int] = None,
    ) -> SuggestionResult:
        if _blank(on_date) or _blank(start_time) or _blank(end_time):
            log.debug("suggest called with incomplete shift parameters")
            return SuggestionResult()

        d = _parse_date(on_date)
        st = _parse_time(start_time, "start_time")
        et = _parse_time(end_time, "end_time")
        if st == et:
            raise ValidationError("start_time and end_time must differ")
        if limit is not None and limit < 0:
            raise ValidationError("limit must be >= 0", payload={"field": "limit"})

        warnings: List[AnalysisWarning] = []
        try:
            site = self.reader.get_site(site_id)
        except DataUnavailable as e:
            warnings.append(AnalysisWarning("signals", "site", e.message))
            site = None

        capabilities = set(site.required_certifications) if site else set()
        # an armed site makes every opening there armed
        requires_weapon = bool(requires_weapon) or bool(site and site.requires_weapon)
        if requires_weapon:
            capabilities.add("weapon")

        spec = ShiftSpec(
            date=d,
            start_time=st,
            end_time=et,
            requires_weapon=requires_weapon,
            site_id=site_id,
            template_id=template_id,
            required_capabilities=frozenset(capabilities),
        )

        try:
            pool = self.reader.get_eligible_employees(d, st, et, spec.required_capabilities, site_id)
        except DataUnavailable as e:
            warnings.append(AnalysisWarning("signals", "eligible_employees", e.message))
            return SuggestionResult(warnings=tuple(warnings))

        candidates = self.reader.get_candidate_signals(spec, pool, self.config, warnings)
        result = scoring.rank_candidates(spec, site, candidates, self.config, limit=limit)
        return SuggestionResult(
            suggestions=result.suggestions,
            warnings=tuple(warnings) + result.warnings,
        )

    # ---------- analyzers ----------

    def _occupancy(self, site_id, lookback_days, as_of: date, warnings: List[AnalysisWarning]):
        try:
            return self.reader.get_historical_occupancy(site_id, lookback_days, as_of=as_of)
        except DataUnavailable as e:
            warnings.append(AnalysisWarning("occupancy", "portfolio", e.message))
            return []

    def heatmap(self, site_id: Optional[int] = None,
                as_of: Optional[date] = None) -> Tuple[List[ShortagePattern], List[AnalysisWarning]]:
        as_of = as_of or date.today()
        warnings: List[AnalysisWarning] = []
        policy = self.config.shortage
        occupancy = self._occupancy(site_id, policy.lookback_days, as_of, warnings)
        patterns, w = shortage_analyzer.detect_patterns(occupancy, as_of, policy, site_id=site_id)
        return patterns, warnings + w

    def shortages(self, as_of: Optional[date] = None) -> Tuple[List[ShortagePattern], List[AnalysisWarning]]:
        patterns, warnings = self.heatmap(as_of=as_of)
        return shortage_analyzer.flagged(patterns, self.config.shortage), warnings

    def fatigue_risks(self, as_of: Optional[datetime] = None) -> Tuple[List[FatigueRisk], List[AnalysisWarning]]:
        as_of = as_of or datetime.now()
        window = self.config.fatigue.window_days
        warnings: List[AnalysisWarning] = []
        try:
            employees = {e.id: e for e in self.reader.get_active_employees(as_of.date())}
            rows = self.reader.get_assignments_between(
                as_of.date() - timedelta(days=window + 1), as_of.date(), list(employees),
            )
        except DataUnavailable as e:
            warnings.append(AnalysisWarning("fatigue", "portfolio", e.message))
            return [], warnings

        histories = {eid: (employees[eid].name, items) for eid, items in rows.items() if eid in employees}
        risks, w = fatigue_analyzer.analyze_portfolio(histories, as_of, self.config.fatigue)
        return risks, warnings + w

    def staffing(self, site_id: Optional[int] = None,
                 as_of: Optional[date] = None) -> Tuple[List[StaffingSuggestion], List[AnalysisWarning]]:
        as_of = as_of or date.today()
        warnings: List[AnalysisWarning] = []
        policy = self.config.staffing
        occupancy = self._occupancy(site_id, policy.lookback_days, as_of, warnings)
        out, w = staffing_optimizer.suggest_staffing(occupancy, as_of, policy, site_id=site_id)
        return out, warnings + w

    # ---------- insights ----------

    def latest_insight(self):
        return self.store.latest()

    def insight_history(self, page: int, size: int):
        return self.store.history(page, size)

    def insight_run(self, run_id: int):
        run = self.runs.get(run_id)
        if run is None:
            raise APIError("INSIGHT_RUN_NOT_FOUND", "Insight run not found", 404)
        return run

    def _aggregator(self) -> InsightAggregator:
        return InsightAggregator(self.reader, self.store, self.config, runs=self.runs)

    def claim_insight_run(self, trigger: str = "manual") -> int:
        """Take the generation slot now; hand the id to generate_insight(run_id=...) later."""
        return self._aggregator().claim(trigger)

    def release_insight_run(self, run_id: int, error: str) -> None:
        self.runs.release(run_id, succeeded=False, error=error)

    def generate_insight(self, trigger: str = "manual", as_of: Optional[datetime] = None,
                         run_id: Optional[int] = None):
        aggregator = self._aggregator()
        if run_id is None:
            return aggregator.generate(trigger=trigger, as_of=as_of)
        return aggregator.generate_claimed(run_id, trigger=trigger, as_of=as_of)
