# ------- storefront/utils/decorators.py -------
from functools import wraps
from flask import g
from flask_jwt_extended import get_jwt_identity, verify_jwt_in_request

from ..extensions import db
from ..utils.api import err
from ..model.user import User


def _user_from_identity():
    uid = get_jwt_identity()
    try:
        uid = int(uid)
    except (TypeError, ValueError):
        uid = None
    return db.session.get(User, uid) if uid else None


def _current_user():
    verify_jwt_in_request()
    return _user_from_identity()


def optional_user():
    """The signed-in user, or None for guests. A malformed token still fails."""
    verify_jwt_in_request(optional=True)
    return _user_from_identity()


def login_required(fn):
    @wraps(fn)
    def wrapper(*args, **kwargs):
        u = _current_user()
        if not u:
            return err("Unauthorized", 401)
        g.current_user = u
        return fn(*args, **kwargs)
    return wrapper


# support a custom error message
def role_required(*roles, message: str | None = None):
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            u = _current_user()
            if not u:
                return err("Unauthorized", 401)
            if u.role not in roles:
                return err(message or "Forbidden", 403)
            g.current_user = u
            return fn(*args, **kwargs)
        return wrapper
    return decorator
