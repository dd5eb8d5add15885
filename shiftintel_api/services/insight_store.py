# shiftintel_api/services/insight_store.py
from __future__ import annotations

import logging
from typing import Optional, Tuple, List

from shiftintel_api.extensions import db
from shiftintel_api.models.insight import WeeklyInsight
from shiftintel_api.services.engine.types import InsightSnapshot

log = logging.getLogger(__name__)


class InsightStore:
    """Append-only persistence for weekly insight snapshots."""

    def append(self, snapshot: InsightSnapshot) -> WeeklyInsight:
        row = WeeklyInsight(
            analysis_date=snapshot.analysis_date,
            trigger=snapshot.trigger,
            shortage_sites=snapshot.shortage_sites,
            fatigue_risk_employees=snapshot.fatigue_risk_employees,
            optimization_opportunities=snapshot.optimization_opportunities,
            high_no_show_sites=snapshot.high_no_show_sites,
            severity=snapshot.severity.value,
            details=snapshot.details,
            warnings=[w.to_dict() for w in snapshot.warnings],
            config_version=snapshot.config_version,
            config_fingerprint=snapshot.config_fingerprint,
        )
        # one row, one commit: readers see the whole snapshot or nothing
        db.session.add(row)
        try:
            db.session.commit()
        except Exception:
            db.session.rollback()
            raise
        log.info("weekly insight %s appended (date=%s)", row.id, row.analysis_date)
        return row

    def latest(self) -> Optional[WeeklyInsight]:
        return (
            WeeklyInsight.query
            .order_by(WeeklyInsight.created_at.desc(), WeeklyInsight.id.desc())
            .first()
        )

    def history(self, page: int, size: int) -> Tuple[List[WeeklyInsight], int]:
        q = WeeklyInsight.query.order_by(WeeklyInsight.created_at.desc(), WeeklyInsight.id.desc())
        total = q.count()
        items = q.offset((page - 1) * size).limit(size).all()
        return items, total
