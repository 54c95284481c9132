"""
Role based capability checks.

Roles are flat (no hierarchy); ADMIN holds every permission.
"""

from enum import Enum
from typing import Dict, FrozenSet, List


class Role(str, Enum):
    ADMIN = "ADMIN"
    EMPLOYEE = "EMPLOYEE"
    CUSTOMER = "CUSTOMER"


# Permission codes
ORDERS_CREATE = "orders:create"
ORDERS_VIEW_OWN = "orders:view_own"
ORDERS_VIEW_ALL = "orders:view_all"
ORDERS_UPDATE = "orders:update"
ORDERS_MANAGE = "orders:manage"
PRODUCTS_VIEW = "products:view"
PRODUCTS_MANAGE = "products:manage"

ALL_PERMISSIONS: FrozenSet[str] = frozenset({
    ORDERS_CREATE,
    ORDERS_VIEW_OWN,
    ORDERS_VIEW_ALL,
    ORDERS_UPDATE,
    ORDERS_MANAGE,
    PRODUCTS_VIEW,
    PRODUCTS_MANAGE,
})

ROLE_PERMISSIONS: Dict[Role, FrozenSet[str]] = {
    Role.CUSTOMER: frozenset({
        ORDERS_CREATE,
        ORDERS_VIEW_OWN,
        PRODUCTS_VIEW,
    }),
    Role.EMPLOYEE: frozenset({
        ORDERS_VIEW_ALL,
        ORDERS_UPDATE,
        ORDERS_MANAGE,
        PRODUCTS_VIEW,
        PRODUCTS_MANAGE,
    }),
    Role.ADMIN: ALL_PERMISSIONS,
}


class PermissionChecker:
    """
    Permission checker utility for RBAC.
    ADMIN automatically has all permissions.
    """

    def __init__(self, role: Role):
        self.role = role
        self.permissions = ROLE_PERMISSIONS.get(role, frozenset())

    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def has_permission(self, permission_code: str) -> bool:
        """
        Check if the role grants a specific permission.

        Args:
            permission_code: The permission code to check (e.g., 'orders:update')
        """
        if self.is_admin():
            return True
        return permission_code in self.permissions

    def has_any_permission(self, permission_codes: List[str]) -> bool:
        if self.is_admin():
            return True
        return any(code in self.permissions for code in permission_codes)

    def has_all_permissions(self, permission_codes: List[str]) -> bool:
        if self.is_admin():
            return True
        return all(code in self.permissions for code in permission_codes)
