from flask import Blueprint, current_app
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError

from shiftintel_api.common.http import ok
from shiftintel_api.extensions import db

bp = Blueprint("health", __name__, url_prefix="/api/v1")


@bp.get("/health")
def health():
    database = "ok"
    try:
        db.session.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        db.session.rollback()
        current_app.logger.warning("health check: database unreachable: %s", e)
        database = "unavailable"
    return ok({"status": "ok", "database": database})
