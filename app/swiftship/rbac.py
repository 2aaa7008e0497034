from collections.abc import Callable
from functools import wraps
from typing import Any

from flask import g

from app.swiftship.errors import Forbidden, Unauthorized
from app.swiftship.models import User


def user_has_permission(user: User | None, permission_key: str) -> bool:
    if not user or not user.is_active:
        return False
    for role in user.roles:
        for perm in role.permissions:
            if perm.key == permission_key:
                return True
    return False


def require_principal(principal: User | None) -> User:
    """Gate for admin services: the caller must pass an authenticated, active user."""
    if principal is None or not principal.is_active:
        raise Unauthorized()
    return principal


def require_login(fn: Callable[..., Any]) -> Callable[..., Any]:
    """Authentication only; the handler checks permissions per action."""

    @wraps(fn)
    def wrapped(*args: Any, **kwargs: Any):
        require_principal(getattr(g, "current_user", None))
        return fn(*args, **kwargs)

    return wrapped


def require_permission(permission_key: str) -> Callable[[Callable[..., Any]], Callable[..., Any]]:
    def decorator(fn: Callable[..., Any]) -> Callable[..., Any]:
        @wraps(fn)
        def wrapped(*args: Any, **kwargs: Any):
            user: User | None = getattr(g, "current_user", None)
            # Unauthenticated -> 401 (JSON API, no login redirect)
            if not user or not user.is_active:
                raise Unauthorized()
            # Authenticated but unauthorized -> 403
            if not user_has_permission(user, permission_key):
                g.missing_permission = permission_key
                raise Forbidden()
            return fn(*args, **kwargs)

        return wrapped

    return decorator


def check_permission(user: User | None, permission_key: str) -> None:
    """In-handler variant of require_permission for action-dependent permissions."""
    if not user_has_permission(user, permission_key):
        g.missing_permission = permission_key
        raise Forbidden()
