# Overview: Request decorators for API routes.

from functools import wraps
from flask import request, jsonify, g

ACTOR_ID_HEADER = "X-Actor-Id"
ACTOR_NAME_HEADER = "X-Actor-Name"


def require_actor(f):
    """
    Require the caller's identity on a mutating request.

    Identity is established upstream (the auth collaborator); this engine only
    records it. Sets the following Flask g attributes:
    - g.actor_id: opaque, non-empty user id - REQUIRED
    - g.actor_name: display name written into ledger entries (may be None)

    Returns 401 when X-Actor-Id is missing or blank.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor_id = (request.headers.get(ACTOR_ID_HEADER) or "").strip()
        if not actor_id:
            return jsonify({"error": "Actor identity required", "header": ACTOR_ID_HEADER}), 401

        g.actor_id = actor_id
        g.actor_name = (request.headers.get(ACTOR_NAME_HEADER) or "").strip() or None

        return f(*args, **kwargs)

    return decorated_function
