# shiftintel_api/common/http.py
from flask import jsonify


def ok(data=None, status=200, warnings=None, **meta):
    """
    Success envelope: {"success": true, "data": ..., "meta": {...}}.
    `warnings` (AnalysisWarning values or plain dicts) is always listed under meta when passed.
    """
    payload = {"success": True, "data": data}
    if warnings is not None:
        meta["warnings"] = [w.to_dict() if hasattr(w, "to_dict") else w for w in warnings]
    if meta:
        payload["meta"] = meta
    return jsonify(payload), status


def listed(items, warnings=(), **meta):
    rows = [item.to_dict() for item in items]
    return ok(rows, warnings=warnings, count=len(rows), **meta)


def fail(message="Bad Request", status=400, code=None, detail=None):
    err = {"message": message}
    if code:
        err["code"] = code
    if detail:
        err["detail"] = detail
    return jsonify({"success": False, "error": err}), status
