"""
Roles and capability table.

Roles form a closed set. Each role maps to the set of action codes it may
perform; route decorators and the order service both consult
``ROLE_CAPABILITIES`` through ``authorize`` instead of comparing role strings.

Assignee checks (delivery person == order.delivery_person_id) and shop scoping
are data-dependent and live in the services; this table only answers
"may this role attempt the action at all".
"""

from __future__ import annotations

import enum
from dataclasses import dataclass

from .errors import Forbidden


class Role(str, enum.Enum):
    USER = "user"
    DELIVERY_PERSON = "delivery_person"
    SHOP_ADMIN = "shop_admin"
    ADMIN = "admin"
    SUPER_ADMIN = "super_admin"

    @classmethod
    def parse(cls, value: str | None) -> "Role":
        try:
            return cls(value)
        except ValueError:
            raise ValueError(f"Unknown role: {value}")


ADMIN_ROLES = frozenset({Role.SHOP_ADMIN, Role.ADMIN, Role.SUPER_ADMIN})


# =============================================================================
# ACTION CODES
# =============================================================================

# Each action is defined as: (code, description)
ACTION_DEFINITIONS = [
    ("MANAGE_CART", "Add, remove and clear items in one's own cart"),
    ("PLACE_ORDER", "Create an order from the cart or an item list"),
    ("VIEW_OWN_ORDERS", "List and view one's own orders"),
    ("VIEW_ALL_ORDERS", "List orders across customers (shop-scoped for shop admins)"),
    ("ASSIGN_DELIVERY", "Assign a delivery person to an order"),
    ("UPDATE_ORDER_STATUS", "Set an order status directly (escape hatch)"),
    ("CANCEL_ORDER", "Cancel an order before delivery"),
    ("VIEW_ASSIGNED_ORDERS", "List orders assigned to oneself"),
    ("ACCEPT_DELIVERY", "Accept an assigned order"),
    ("REJECT_DELIVERY", "Reject an assigned order"),
    ("START_DELIVERY", "Mark an accepted order out for delivery"),
    ("CONFIRM_REACHED", "Confirm arrival at the delivery address"),
    ("COLLECT_CASH", "Record cash collected on delivery"),
    ("COMPLETE_DELIVERY", "Mark an order delivered"),
    ("MANAGE_CATALOG", "Create and edit products and categories"),
    ("MANAGE_SHOP_INVENTORY", "Edit per-shop inventory overrides"),
    ("MANAGE_DELIVERY_ZONES", "Create, edit and delete delivery zones"),
    ("APPROVE_DELIVERY_ZONES", "Approve zones submitted by shop admins"),
    ("MANAGE_ADDRESSES", "Maintain one's own saved delivery addresses"),
    ("MANAGE_SETTINGS", "Edit storefront settings and the hero banner"),
]

ALL_ACTIONS = frozenset(code for code, _ in ACTION_DEFINITIONS)

DELIVERY_ACTIONS = frozenset({
    "VIEW_ASSIGNED_ORDERS",
    "ACCEPT_DELIVERY",
    "REJECT_DELIVERY",
    "START_DELIVERY",
    "CONFIRM_REACHED",
    "COLLECT_CASH",
    "COMPLETE_DELIVERY",
})

_CUSTOMER_ACTIONS = frozenset({"MANAGE_CART", "PLACE_ORDER", "VIEW_OWN_ORDERS", "MANAGE_ADDRESSES"})

_SHOP_ADMIN_ACTIONS = _CUSTOMER_ACTIONS | frozenset({
    "VIEW_ALL_ORDERS",
    "ASSIGN_DELIVERY",
    "UPDATE_ORDER_STATUS",
    "CANCEL_ORDER",
    "MANAGE_CATALOG",
    "MANAGE_SHOP_INVENTORY",
    "MANAGE_DELIVERY_ZONES",
})

ROLE_CAPABILITIES: dict[Role, frozenset[str]] = {
    Role.USER: _CUSTOMER_ACTIONS,
    Role.DELIVERY_PERSON: DELIVERY_ACTIONS,
    Role.SHOP_ADMIN: _SHOP_ADMIN_ACTIONS,
    Role.ADMIN: _SHOP_ADMIN_ACTIONS | {"MANAGE_SETTINGS"},
    Role.SUPER_ADMIN: _SHOP_ADMIN_ACTIONS | {"APPROVE_DELIVERY_ZONES", "MANAGE_SETTINGS"},
}


@dataclass(frozen=True)
class Actor:
    """The authenticated identity a command runs as."""
    user_id: int
    role: Role
    shop_id: int | None = None

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES

    @property
    def is_shop_scoped(self) -> bool:
        return self.role == Role.SHOP_ADMIN


def authorize(actor: Actor | None, action: str) -> bool:
    if action not in ALL_ACTIONS:
        raise ValueError(f"Unknown action: {action}")
    if actor is None:
        return False
    return action in ROLE_CAPABILITIES.get(actor.role, frozenset())


def require(actor: Actor | None, action: str) -> None:
    """Raise Forbidden unless the actor's role grants the action."""
    if not authorize(actor, action):
        raise Forbidden("Permission denied", details={"required_permission": action})
