from datetime import datetime

from shiftintel_api.extensions import db


class Shift(db.Model):
    __tablename__ = "shifts"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(db.Integer, db.ForeignKey("sites.id", ondelete="RESTRICT"), nullable=True, index=True)
    template_id = db.Column(db.Integer, db.ForeignKey("shift_templates.id", ondelete="SET NULL"), nullable=True)

    date = db.Column(db.Date, nullable=False, index=True)
    start_time = db.Column(db.Time, nullable=False)
    end_time = db.Column(db.Time, nullable=False)

    required_employees = db.Column(db.Integer, nullable=False, default=1)
    requires_weapon = db.Column(db.Boolean, nullable=False, default=False)
    status = db.Column(db.String(20), nullable=False, default="scheduled")  # scheduled/in_progress/completed/cancelled

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    site = db.relationship("Site", lazy="joined")
    assignments = db.relationship("ShiftAssignment", backref="shift", lazy="selectin",
                                  cascade="all, delete-orphan")

    __table_args__ = (
        db.Index("ix_shift_site_date", "site_id", "date"),
    )


class ShiftAssignment(db.Model):
    __tablename__ = "shift_assignments"

    id = db.Column(db.Integer, primary_key=True)
    shift_id = db.Column(db.Integer, db.ForeignKey("shifts.id", ondelete="CASCADE"), nullable=False, index=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)

    # assigned / checked_in / checked_out / no_show / cancelled
    status = db.Column(db.String(20), nullable=False, default="assigned")
    actual_hours = db.Column(db.Numeric(5, 2), nullable=True)
    rating = db.Column(db.SmallInteger, nullable=True)  # 0..5, post-hoc

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    employee = db.relationship("Employee", lazy="joined")

    __table_args__ = (
        db.CheckConstraint("rating IS NULL OR (rating >= 0 AND rating <= 5)", name="ck_assignment_rating_range"),
        db.Index("ix_assignment_employee_status", "employee_id", "status"),
    )
