from datetime import datetime

from shiftintel_api.extensions import db


class Employee(db.Model):
    __tablename__ = "employees"

    id = db.Column(db.Integer, primary_key=True)
    first_name = db.Column(db.String(100), nullable=False)
    last_name = db.Column(db.String(100), nullable=True)
    phone = db.Column(db.String(20), nullable=True)

    has_weapon_license = db.Column(db.Boolean, nullable=False, default=False)
    weapon_license_expiry = db.Column(db.Date, nullable=True)

    home_lat = db.Column(db.Numeric(9, 6), nullable=True)
    home_lon = db.Column(db.Numeric(9, 6), nullable=True)

    hourly_rate = db.Column(db.Numeric(8, 2), nullable=True)
    status = db.Column(db.String(16), default="active", nullable=False)  # active/inactive/terminated

    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    certifications = db.relationship("EmployeeCertification", backref="employee", lazy="selectin",
                                     cascade="all, delete-orphan")

    @property
    def full_name(self) -> str:
        return " ".join(p for p in (self.first_name, self.last_name) if p)


class EmployeeCertification(db.Model):
    __tablename__ = "employee_certifications"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    cert_type = db.Column(db.String(50), nullable=False)   # e.g. weapon, first_aid, hospital, vip
    status = db.Column(db.String(16), nullable=False, default="active")
    expiry_date = db.Column(db.Date, nullable=True)
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    def is_valid_on(self, on_date) -> bool:
        if self.status != "active":
            return False
        return self.expiry_date is None or self.expiry_date >= on_date


class EmployeeAvailability(db.Model):
    __tablename__ = "employee_availability"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    weekday = db.Column(db.SmallInteger, nullable=False)  # 0=Mon .. 6=Sun
    is_available = db.Column(db.Boolean, nullable=False, default=True)

    __table_args__ = (
        db.UniqueConstraint("employee_id", "weekday", name="uq_availability_employee_weekday"),
    )


class EmployeeLeave(db.Model):
    __tablename__ = "employee_leaves"

    id = db.Column(db.Integer, primary_key=True)
    employee_id = db.Column(db.Integer, db.ForeignKey("employees.id", ondelete="CASCADE"), nullable=False, index=True)
    start_date = db.Column(db.Date, nullable=False)
    end_date = db.Column(db.Date, nullable=False)
    status = db.Column(db.String(16), nullable=False, default="approved")  # pending/approved/rejected
    created_at = db.Column(db.DateTime, nullable=False, default=datetime.utcnow)

    __table_args__ = (
        db.Index("ix_leave_employee_range", "employee_id", "start_date", "end_date"),
    )
