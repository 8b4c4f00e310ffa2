# Overview: Request decorators for API routes; actor and role context from the upstream auth layer.

from functools import wraps
from flask import current_app, request, jsonify, g


def _is_authenticated() -> bool:
    return getattr(g, "actor_id", None) is not None


def require_auth(f):
    """
    Require an authenticated actor.

    Authentication itself happens upstream; it forwards the user id in the
    ACTOR_HEADER header (default X-User-Id) and the role in ROLE_HEADER.
    Sets:
    - g.actor_id: int, recorded as created_by on everything this request writes
    - g.actor_role: str | None

    Returns 401 if the header is missing or not an integer.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        raw = request.headers.get(current_app.config["ACTOR_HEADER"], "").strip()
        if not raw:
            return jsonify({"message": "Authentication required"}), 401
        try:
            actor_id = int(raw)
        except ValueError:
            return jsonify({"message": "Invalid actor id"}), 401

        g.actor_id = actor_id
        g.actor_role = request.headers.get(current_app.config["ROLE_HEADER"]) or None

        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Require one of the given roles.

    Must be applied after @require_auth.
    """
    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            if not _is_authenticated():
                return jsonify({"message": "Authentication required"}), 401

            if g.actor_role not in roles:
                current_app.logger.warning(
                    "Role %r denied for %s %s (requires %s)",
                    g.actor_role,
                    request.method,
                    request.path,
                    ", ".join(roles),
                )
                return jsonify({
                    "message": "Permission denied",
                    "required_roles": list(roles),
                }), 403

            return f(*args, **kwargs)

        return decorated_function

    return decorator
