# Overview: All permission definitions organized by category.
# Each permission is defined as: (code, name, description, category)

from .categories import PermissionCategory


ADMIN = "ADMIN"
USER = "USER"
ITEMCREATE = "ITEMCREATE"
ITEMUPDATE = "ITEMUPDATE"
ITEMDELETE = "ITEMDELETE"
PERMISSIONUPDATE = "PERMISSIONUPDATE"


# -- SYSTEM --

SYSTEM_PERMISSIONS = [
    (
        ADMIN,
        "Administrator",
        "Full access, including other users' orders and items",
        PermissionCategory.SYSTEM,
    ),
]


# -- USERS --

USER_PERMISSIONS = [
    (
        USER,
        "User",
        "Baseline permission granted to every account on signup",
        PermissionCategory.USERS,
    ),
    (
        PERMISSIONUPDATE,
        "Update Permissions",
        "List users and change their permission sets",
        PermissionCategory.USERS,
    ),
]


# -- ITEMS --

ITEM_PERMISSIONS = [
    (
        ITEMCREATE,
        "Create Items",
        "Add items to the catalogue",
        PermissionCategory.ITEMS,
    ),
    (
        ITEMUPDATE,
        "Update Items",
        "Edit items created by other users",
        PermissionCategory.ITEMS,
    ),
    (
        ITEMDELETE,
        "Delete Items",
        "Delete items created by other users",
        PermissionCategory.ITEMS,
    ),
]


PERMISSION_DEFINITIONS = SYSTEM_PERMISSIONS + USER_PERMISSIONS + ITEM_PERMISSIONS

DEFAULT_USER_PERMISSIONS = frozenset({USER})

# Permission sets required by guarded operations (any one of them suffices)
MANAGE_USERS = frozenset({ADMIN, PERMISSIONUPDATE})
MANAGE_ITEMS_UPDATE = frozenset({ADMIN, ITEMUPDATE})
MANAGE_ITEMS_DELETE = frozenset({ADMIN, ITEMDELETE})
VIEW_ANY_ORDER = frozenset({ADMIN})
