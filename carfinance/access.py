# -*- coding: utf-8 -*-
"""Role-based access decisions.

A ``user`` principal may only touch resources it owns; a ``sales``
principal may read any customer's data. Routes resolve the resource owner
first and only hit storage once :func:`ensure_can_access` has passed.
"""

from __future__ import annotations

from dataclasses import dataclass
from functools import wraps
from typing import Any, Optional

from flask_login import current_user

from carfinance.exceptions import Forbidden, Unauthenticated
from carfinance.quota import log_access_decision

ROLE_USER = "user"
ROLE_SALES = "sales"
ROLES = (ROLE_USER, ROLE_SALES)


@dataclass(frozen=True)
class Principal:
    id: int
    role: str
    email: str = ""
    display_name: str = ""

    @property
    def is_sales(self) -> bool:
        return self.role == ROLE_SALES


def principal_from_user(user: Any) -> Optional[Principal]:
    if user is None or not getattr(user, "is_authenticated", False):
        return None
    return Principal(
        id=user.id,
        role=user.role if user.role in ROLES else ROLE_USER,
        email=user.email or "",
        display_name=user.display_name,
    )


def current_principal() -> Optional[Principal]:
    """Principal for the current request, however it was authenticated."""
    return principal_from_user(current_user)


def can_access(principal: Optional[Principal], resource_owner_id: Any) -> bool:
    if principal is None:
        return False
    if principal.is_sales:
        return True
    return principal.role == ROLE_USER and resource_owner_id is not None and principal.id == resource_owner_id


def require_authenticated(principal: Optional[Principal]) -> Principal:
    if principal is None:
        raise Unauthenticated()
    return principal


def require_role(principal: Optional[Principal], role: str) -> Principal:
    principal = require_authenticated(principal)
    if principal.role != role:
        raise Forbidden(f"Access denied. {role} role required.")
    return principal


def ensure_can_access(principal: Optional[Principal], resource_owner_id: Any, route_name: str = "") -> Principal:
    principal = require_authenticated(principal)
    if not can_access(principal, resource_owner_id):
        log_access_decision(route_name or "resource", principal.id, "rejected", f"owner={resource_owner_id}")
        raise Forbidden("You do not have access to this resource.")
    return principal


# ── Flask decorators ──────────────────────────────────────────────────

def principal_required(view):
    @wraps(view)
    def wrapper(*args, **kwargs):
        require_authenticated(current_principal())
        return view(*args, **kwargs)
    return wrapper


def role_required(role: str):
    def decorator(view):
        @wraps(view)
        def wrapper(*args, **kwargs):
            principal = current_principal()
            try:
                require_role(principal, role)
            except Forbidden:
                log_access_decision(view.__name__, principal.id if principal else None, "rejected", f"{role} role required")
                raise
            return view(*args, **kwargs)
        return wrapper
    return decorator
