# Overview: Permission system package.
# Re-exports all public APIs for convenient imports.

from .categories import PermissionCategory
from .definitions import (
    ADMIN,
    USER,
    ITEMCREATE,
    ITEMUPDATE,
    ITEMDELETE,
    PERMISSIONUPDATE,
    PERMISSION_DEFINITIONS,
    SYSTEM_PERMISSIONS,
    USER_PERMISSIONS,
    ITEM_PERMISSIONS,
    DEFAULT_USER_PERMISSIONS,
    MANAGE_USERS,
    MANAGE_ITEMS_UPDATE,
    MANAGE_ITEMS_DELETE,
    VIEW_ANY_ORDER,
)
from .helpers import (
    get_all_permission_codes,
    get_permissions_by_category,
    get_permission_definition,
    validate_permission_code,
)

__all__ = [
    "PermissionCategory",
    "ADMIN",
    "USER",
    "ITEMCREATE",
    "ITEMUPDATE",
    "ITEMDELETE",
    "PERMISSIONUPDATE",
    "PERMISSION_DEFINITIONS",
    "SYSTEM_PERMISSIONS",
    "USER_PERMISSIONS",
    "ITEM_PERMISSIONS",
    "DEFAULT_USER_PERMISSIONS",
    "MANAGE_USERS",
    "MANAGE_ITEMS_UPDATE",
    "MANAGE_ITEMS_DELETE",
    "VIEW_ANY_ORDER",
    "get_all_permission_codes",
    "get_permissions_by_category",
    "get_permission_definition",
    "validate_permission_code",
]
