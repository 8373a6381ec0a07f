"""
Access policy: who may act on whose resources.

A principal may act on resources scoped to its own id. Acting on anyone
else's needs the admin role. Administrative actions need the admin role
whatever the target.
"""

from enum import Enum
from typing import Optional

from errors import Forbidden
from schemas import Principal, Role


class Action(str, Enum):
    READ_CART = "cart:read"
    WRITE_CART = "cart:write"
    CLEAR_CART = "cart:clear"
    READ_HISTORY = "history:read"
    MANAGE_USERS = "users:manage"
    MANAGE_PRODUCTS = "products:manage"
    VIEW_INACTIVE_PRODUCTS = "products:view-inactive"


ADMIN_ACTIONS = frozenset({
    Action.MANAGE_USERS,
    Action.MANAGE_PRODUCTS,
    Action.VIEW_INACTIVE_PRODUCTS,
})


def can_access(principal: Principal, target_user_id: Optional[str], action: Action) -> bool:
    if principal.role == Role.ADMIN:
        return True
    if action in ADMIN_ACTIONS:
        return False
    return target_user_id is not None and target_user_id == principal.id


def require_access(principal: Principal, target_user_id: Optional[str], action: Action) -> None:
    if not can_access(principal, target_user_id, action):
        raise Forbidden("Forbidden - Admin access required")
