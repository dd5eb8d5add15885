from datetime import datetime

from shiftintel_api.extensions import db


class Site(db.Model):
    """
    A guarded site.

      geo_lat, geo_lon        -> site coordinates (optional; distance scoring is skipped without them)
      required_certifications -> JSON list of cert_type codes the site asks for beyond the basics
    """

    __tablename__ = "sites"

    id = db.Column(db.Integer, primary_key=True)
    name = db.Column(db.String(255), nullable=False)
    address = db.Column(db.Text, nullable=True)
    city = db.Column(db.String(100), nullable=True)

    geo_lat = db.Column(db.Numeric(9, 6), nullable=True)
    geo_lon = db.Column(db.Numeric(9, 6), nullable=True)

    requires_weapon = db.Column(db.Boolean, nullable=False, default=False)
    required_certifications = db.Column(db.JSON, nullable=True)

    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    def geo_center(self):
        """Return (lat, lon) or (None, None) if not configured."""
        if self.geo_lat is None or self.geo_lon is None:
            return None, None
        return float(self.geo_lat), float(self.geo_lon)


class ShiftTemplate(db.Model):
    __tablename__ = "shift_templates"

    id = db.Column(db.Integer, primary_key=True)
    site_id = db.Column(db.Integer, db.ForeignKey("sites.id", ondelete="CASCADE"), nullable=False, index=True)
    name = db.Column(db.String(120), nullable=False)
    start_time = db.Column(db.Time, nullable=True)
    end_time = db.Column(db.Time, nullable=True)
    required_employees = db.Column(db.Integer, nullable=False, default=1)
    preferred_employees = db.Column(db.JSON, nullable=True)  # list of employee ids
    is_active = db.Column(db.Boolean, default=True, nullable=False)
    created_at = db.Column(db.DateTime, default=datetime.utcnow, nullable=False)

    site = db.relationship("Site", backref=db.backref("templates", lazy="dynamic"))

    def preferred_ids(self) -> set:
        out = set()
        for raw in self.preferred_employees or []:
            try:
                out.add(int(raw))
            except (TypeError, ValueError):
                continue
        return out
