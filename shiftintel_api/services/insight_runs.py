# shiftintel_api/services/insight_runs.py
from __future__ import annotations

import logging
from datetime import datetime, timedelta
from typing import Optional

from sqlalchemy.exc import IntegrityError

from shiftintel_api.common.errors import ConcurrentRunConflict
from shiftintel_api.extensions import db
from shiftintel_api.models.insight import (
    InsightRun,
    RUN_ABANDONED,
    RUN_FAILED,
    RUN_RUNNING,
    RUN_SUCCEEDED,
)

log = logging.getLogger(__name__)


class InsightRunLedger:
    """
    Run guard for insight generation, kept in the insight_runs table.

    acquire() inserts a 'running' row and commits it; the partial unique index
    rejects a second one, so the web workers and the scheduled CLI process all
    see the same slot. release() closes the row with its outcome. A run left
    'running' longer than `stale_after_minutes` (a crashed process) is marked
    abandoned on the next acquire.
    """

    def __init__(self, stale_after_minutes: int = 60):
        self.stale_after = timedelta(minutes=stale_after_minutes)

    def acquire(self, trigger: str) -> int:
        self._expire_stale()
        run = InsightRun(trigger=trigger, status=RUN_RUNNING, started_at=datetime.utcnow())
        db.session.add(run)
        try:
            db.session.commit()
        except IntegrityError:
            db.session.rollback()
            raise ConcurrentRunConflict()
        log.info("insight run %s started (trigger=%s)", run.id, trigger)
        return run.id

    def release(self, run_id: int, succeeded: bool, insight_id: Optional[int] = None,
                error: Optional[str] = None) -> None:
        if not succeeded:
            # the failed build may have left the session mid-transaction
            db.session.rollback()
        run = db.session.get(InsightRun, run_id)
        if run is None or run.status != RUN_RUNNING:
            log.warning("insight run %s was no longer running at release", run_id)
            return
        run.status = RUN_SUCCEEDED if succeeded else RUN_FAILED
        run.finished_at = datetime.utcnow()
        run.insight_id = insight_id
        run.error_message = error[:2000] if error else None
        db.session.commit()
        log.info("insight run %s finished status=%s", run_id, run.status)

    def get(self, run_id: int) -> Optional[InsightRun]:
        return db.session.get(InsightRun, run_id)

    def is_running(self) -> bool:
        return db.session.query(InsightRun.id).filter(InsightRun.status == RUN_RUNNING).first() is not None

    def _expire_stale(self) -> None:
        cutoff = datetime.utcnow() - self.stale_after
        stale = (
            InsightRun.query
            .filter(InsightRun.status == RUN_RUNNING, InsightRun.started_at < cutoff)
            .all()
        )
        if not stale:
            return
        now = datetime.utcnow()
        for run in stale:
            log.warning("insight run %s started %s never finished; marking abandoned", run.id, run.started_at)
            run.status = RUN_ABANDONED
            run.finished_at = now
            run.error_message = "no release before the stale cutoff"
        db.session.commit()
