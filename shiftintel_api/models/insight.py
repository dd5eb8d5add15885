from datetime import datetime

from sqlalchemy import event, text

from shiftintel_api.extensions import db


class WeeklyInsight(db.Model):
    """
    Append-only snapshot written by the insight aggregator.
    Rows are superseded by newer rows, never updated or deleted.
    """

    __tablename__ = "weekly_insights"

    id = db.Column(db.Integer, primary_key=True)
    analysis_date = db.Column(db.Date, nullable=False, index=True)
    trigger = db.Column(db.String(16), nullable=False, default="manual")  # manual/schedule

    shortage_sites = db.Column(db.Integer, nullable=False, default=0)
    fatigue_risk_employees = db.Column(db.Integer, nullable=False, default=0)
    optimization_opportunities = db.Column(db.Integer, nullable=False, default=0)
    high_no_show_sites = db.Column(db.Integer, nullable=False, default=0)
    severity = db.Column(db.String(16), nullable=False, default="info")  # info/warning/critical

    details = db.Column(db.JSON, nullable=False)
    warnings = db.Column(db.JSON, nullable=True)

    config_version = db.Column(db.String(40), nullable=False)
    config_fingerprint = db.Column(db.String(64), nullable=False)

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow, index=True)

    def to_dict(self):
        return {
            "id": self.id,
            "analysis_date": self.analysis_date.isoformat() if self.analysis_date else None,
            "trigger": self.trigger,
            "shortage_sites": self.shortage_sites,
            "fatigue_risk_employees": self.fatigue_risk_employees,
            "optimization_opportunities": self.optimization_opportunities,
            "high_no_show_sites": self.high_no_show_sites,
            "severity": self.severity,
            "details": self.details,
            "warnings": self.warnings or [],
            "config_version": self.config_version,
            "config_fingerprint": self.config_fingerprint,
            "created_at": self.created_at.isoformat() if self.created_at else None,
        }


@event.listens_for(WeeklyInsight, "before_update")
def _reject_update(mapper, connection, target):
    raise RuntimeError("weekly_insights rows are immutable")


@event.listens_for(WeeklyInsight, "before_delete")
def _reject_delete(mapper, connection, target):
    raise RuntimeError("weekly_insights rows are append-only")


RUN_RUNNING = "running"
RUN_SUCCEEDED = "succeeded"
RUN_FAILED = "failed"
RUN_ABANDONED = "abandoned"


class InsightRun(db.Model):
    """
    One insight generation attempt.
    The partial unique index admits a single 'running' row for every process
    sharing the database; finished rows keep the outcome.
    """

    __tablename__ = "insight_runs"

    id = db.Column(db.Integer, primary_key=True)
    trigger = db.Column(db.String(16), nullable=False)  # manual/schedule
    status = db.Column(db.String(16), nullable=False, default=RUN_RUNNING)  # running/succeeded/failed/abandoned

    started_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)
    finished_at = db.Column(db.DateTime, nullable=True)

    insight_id = db.Column(db.Integer, db.ForeignKey("weekly_insights.id"), nullable=True)
    error_message = db.Column(db.Text, nullable=True)

    __table_args__ = (
        db.Index(
            "uq_insight_runs_one_running", "status", unique=True,
            postgresql_where=text("status = 'running'"),
            sqlite_where=text("status = 'running'"),
        ),
    )

    def to_dict(self):
        return {
            "id": self.id,
            "trigger": self.trigger,
            "status": self.status,
            "started_at": self.started_at.isoformat() if self.started_at else None,
            "finished_at": self.finished_at.isoformat() if self.finished_at else None,
            "insight_id": self.insight_id,
            "error_message": self.error_message,
        }
