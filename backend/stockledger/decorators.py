# Overview: Identity, role and location-scope decorators for API routes.

"""
Authentication happens upstream. The gateway forwards an already-verified
identity in three headers:

    X-User-Id:       integer user id
    X-User-Role:     OPERATOR | SUPERVISOR | ADMIN
    X-Location-Ids:  comma-separated location ids, or "*" for all

require_identity parses them into g.identity. The other decorators assume
it ran first.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from functools import wraps

from flask import g, jsonify, request


ROLES = ("OPERATOR", "SUPERVISOR", "ADMIN")
ELEVATED_ROLES = ("SUPERVISOR", "ADMIN")


@dataclass(frozen=True)
class Identity:
    user_id: int
    role: str
    location_ids: frozenset = field(default_factory=frozenset)
    all_locations: bool = False

    def can_access(self, location_id: int) -> bool:
        return self.all_locations or location_id in self.location_ids


def _error(code: str, message: str, status: int):
    return jsonify({"error": {"code": code, "message": message, "details": {}}}), status


def _parse_identity() -> Identity | None:
    raw_user = (request.headers.get("X-User-Id") or "").strip()
    raw_role = (request.headers.get("X-User-Role") or "").strip().upper()
    raw_locations = (request.headers.get("X-Location-Ids") or "").strip()

    if not raw_user.isdigit() or raw_role not in ROLES:
        return None

    if raw_locations == "*":
        return Identity(user_id=int(raw_user), role=raw_role, all_locations=True)

    location_ids = set()
    for part in raw_locations.split(","):
        part = part.strip()
        if not part:
            continue
        if not part.isdigit():
            return None
        location_ids.add(int(part))
    return Identity(user_id=int(raw_user), role=raw_role, location_ids=frozenset(location_ids))


def require_identity(f):
    """Require gateway identity headers; sets g.identity."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        identity = _parse_identity()
        if identity is None:
            return _error("UNAUTHORIZED", "Authentication required", 401)
        g.identity = identity
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """Require one of the given roles."""
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            identity = getattr(g, "identity", None)
            if identity is None:
                return _error("UNAUTHORIZED", "Authentication required", 401)
            if identity.role not in roles:
                return _error(
                    "FORBIDDEN",
                    f"Requires role: {', '.join(roles)}",
                    403,
                )
            return f(*args, **kwargs)

        return decorated_function
    return decorator


def require_location_access(arg: str = "location_id"):
    """
    Require access to the location named by a URL argument.

    Falls back to the JSON body when the route has no such URL argument.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            identity = getattr(g, "identity", None)
            if identity is None:
                return _error("UNAUTHORIZED", "Authentication required", 401)

            location_id = kwargs.get(arg)
            if location_id is None:
                body = request.get_json(silent=True) or {}
                location_id = body.get(arg)
            try:
                location_id = int(location_id)
            except (TypeError, ValueError):
                return _error("VALIDATION_ERROR", f"{arg} is required", 400)

            if not identity.can_access(location_id):
                return _error("FORBIDDEN", "No access to this location", 403)
            return f(*args, **kwargs)

        return decorated_function
    return decorator
