# Overview: Request decorators for API routes; actor identity and role gating.

from __future__ import annotations

from dataclasses import dataclass, field
from functools import wraps

from flask import current_app, g, jsonify, request


ROLE_ADMIN = "admin"


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as asserted by the upstream auth layer."""
    user_id: str
    role: str
    permissions: frozenset[str] = field(default_factory=frozenset)

    def has_permission(self, code: str) -> bool:
        return self.role == ROLE_ADMIN or code in self.permissions


def _actor_from_headers() -> Actor | None:
    user_id = (request.headers.get("X-User-Id") or "").strip()
    role = (request.headers.get("X-User-Role") or "").strip().lower()
    if not user_id or not role:
        return None
    raw = request.headers.get("X-User-Permissions") or ""
    permissions = frozenset(p.strip() for p in raw.split(",") if p.strip())
    return Actor(user_id=user_id, role=role, permissions=permissions)


def require_actor(f):
    """
    Require an authenticated actor.

    Authentication happens upstream; the gateway forwards the identity in
    X-User-Id / X-User-Role / X-User-Permissions. Sets g.actor.
    Returns 401 when the identity is missing.
    """
    @wraps(f)
    def decorated_function(*args, **kwargs):
        actor = _actor_from_headers()
        if actor is None:
            return jsonify({"error": "Authentication required"}), 401
        g.actor = actor
        return f(*args, **kwargs)

    return decorated_function


def require_role(*roles: str):
    """
    Allow only the listed roles (admin always passes).

    Must be applied after @require_actor. Returns 403 otherwise.
    """
    allowed = {r.lower() for r in roles}

    def decorator(f):
        @wraps(f)
        def decorated_function(*args, **kwargs):
            actor = getattr(g, "actor", None)
            if actor is None:
                return jsonify({"error": "Authentication required"}), 401
            if actor.role != ROLE_ADMIN and actor.role not in allowed:
                current_app.logger.warning(
                    "Role %s denied for %s %s (user %s)", actor.role, request.method, request.path, actor.user_id
                )
                return jsonify({
                    "error": "Permission denied",
                    "code": "forbidden",
                    "details": {"role": actor.role, "allowed_roles": sorted(allowed | {ROLE_ADMIN})},
                }), 403
            return f(*args, **kwargs)

        return decorated_function

    return decorator
