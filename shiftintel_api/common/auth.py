# shiftintel_api/common/auth.py
from __future__ import annotations

from functools import wraps

from flask_jwt_extended import jwt_required, get_jwt, get_jwt_identity

from shiftintel_api.common.http import fail


def requires_roles(*codes: str):
    """
    Require that the current token carries AT LEAST ONE of the given role codes.
    - Roles are read from the 'roles' claim; user/session storage lives outside this service.
    - 'admin' role always passes.
    """
    def outer(fn):
        @wraps(fn)
        @jwt_required()
        def inner(*args, **kwargs):
            if get_jwt_identity() is None:
                return fail("Unauthorized", status=401)

            claims = get_jwt() or {}
            roles = set(claims.get("roles") or [])
            if "admin" in roles:
                return fn(*args, **kwargs)

            if not any(r in roles for r in codes):
                return fail("Forbidden", status=403)

            return fn(*args, **kwargs)
        return inner
    return outer
