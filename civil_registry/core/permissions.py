from __future__ import annotations

from dataclasses import dataclass
from functools import wraps

from flask import abort
from flask_login import current_user

from civil_registry.core.models import STAFF_ROLES, Role


@dataclass(frozen=True)
class Actor:
    user_id: int
    role: Role

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def current_actor() -> Actor:
    if not current_user.is_authenticated:
        abort(401)
    return Actor(user_id=current_user.id, role=Role(current_user.role))


def require_role(*roles: Role):
    allowed = {Role(role) for role in roles}

    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            if not current_user.is_authenticated:
                abort(401)
            if Role(current_user.role) not in allowed:
                abort(403)
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def require_staff(fn):
    return require_role(*STAFF_ROLES)(fn)
