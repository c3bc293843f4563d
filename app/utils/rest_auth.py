# app/utils/rest_auth.py
from functools import wraps

from flask import current_app
from flask_login import current_user

from app.errors import JudgingError
from app.services.queue import JudgeIdentity


def json_login_required(fn):
    """Like @login_required but returns JSON 401 instead of redirect."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        if not current_user.is_authenticated:
            return {"error": "unauthorized"}, 401
        return fn(*args, **kwargs)
    return wrapper


def json_roles_required(*roles):
    """Role gate for REST: JSON 403 on failure."""
    def deco(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                return {"error": "unauthorized"}, 401
            if getattr(current_user, "role", None) not in roles:
                current_app.logger.warning(
                    "403 role=%s required=%s", getattr(current_user, "role", None), roles
                )
                return {"error": "forbidden", "required": list(roles)}, 403
            return fn(*args, **kwargs)
        return wrapper
    return deco


def judging_errors(fn):
    """Turn service errors into ``{"error", "detail"}`` bodies with their status."""
    @wraps(fn)
    def wrapper(*args, **kwargs):
        try:
            return fn(*args, **kwargs)
        except JudgingError as exc:
            current_app.logger.info("%s: %s", exc.code, exc.message)
            return exc.to_payload(), exc.status
    return wrapper


def current_identity() -> JudgeIdentity:
    return JudgeIdentity(
        person_id=current_user.id,
        role=getattr(current_user, "role", "judge"),
        email=getattr(current_user, "email", None),
    )
