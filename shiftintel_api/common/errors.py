# shiftintel_api/common/errors.py
from flask import Blueprint, current_app
from werkzeug.exceptions import HTTPException
from sqlalchemy.exc import IntegrityError
from shiftintel_api.common.http import fail

bp_errors = Blueprint("errors", __name__)


class APIError(Exception):
    """Custom API Error class."""
    def __init__(self, code, message, status_code=400, payload=None):
        super().__init__(message)
        self.code = code
        self.message = message
        self.status_code = status_code
        self.payload = payload


class ValidationError(APIError):
    """Missing or malformed shift parameters; nothing was computed."""
    def __init__(self, message, payload=None):
        super().__init__("VALIDATION_ERROR", message, 400, payload=payload)


class DataUnavailable(APIError):
    """A signal reader failed or returned nothing usable."""
    def __init__(self, message, payload=None):
        super().__init__("DATA_UNAVAILABLE", message, 503, payload=payload)


class ConcurrentRunConflict(APIError):
    """Another insight generation is already running."""
    def __init__(self, message="Insight generation already in progress", payload=None):
        super().__init__("INSIGHT_RUN_IN_PROGRESS", message, 409, payload=payload)


@bp_errors.app_errorhandler(APIError)
def _api_error(e: APIError):
    return fail(message=e.message, status=e.status_code, code=e.code, detail=e.payload)


@bp_errors.app_errorhandler(HTTPException)
def _http(e: HTTPException):
    return fail(message=e.description or "HTTP error", status=e.code or 400)


@bp_errors.app_errorhandler(IntegrityError)
def _integrity(e: IntegrityError):
    # 409 for unique/FK violations
    return fail(message="Conflict / integrity error", status=409, detail=str(e.orig) if getattr(e, "orig", None) else str(e))


@bp_errors.app_errorhandler(Exception)
def _unhandled(e: Exception):
    current_app.logger.exception(e)
    return fail(message="Internal Server Error", status=500)
