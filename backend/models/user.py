from enum import Enum


class Role(str, Enum):
    CUSTOMER = "customer"
    COMPANY = "company"
    ADMIN = "admin"


class VendorStatus(str, Enum):
    PENDING = "pending"
    APPROVED = "approved"
    REJECTED = "rejected"
    SUSPENDED = "suspended"


class Permission(str, Enum):
    VIEW_VENDOR_ORDERS = "VIEW_VENDOR_ORDERS"
    MANAGE_VENDOR_RETURNS = "MANAGE_VENDOR_RETURNS"
    MANAGE_VENDOR_RATES = "MANAGE_VENDOR_RATES"


class PermissionTier(str, Enum):
    # vendors onboarded before permissions existed: every vendor permission
    LEGACY_UNRESTRICTED = "legacy_unrestricted"
    # exactly the stored list; an empty list means revoked
    EXPLICIT = "explicit"


# history entries name the vendor role "vendor", not "company"
HISTORY_ROLES = {
    Role.CUSTOMER.value: "customer",
    Role.COMPANY.value: "vendor",
    Role.ADMIN.value: "admin",
}


def resolve_permission_tier(user: dict) -> PermissionTier:
    tier = user.get("permission_tier")
    if tier:
        try:
            return PermissionTier(tier)
        except ValueError:
            return PermissionTier.EXPLICIT

    if not user.get("permissions"):
        return PermissionTier.LEGACY_UNRESTRICTED
    return PermissionTier.EXPLICIT


def effective_permissions(user: dict) -> set[Permission]:
    if resolve_permission_tier(user) == PermissionTier.LEGACY_UNRESTRICTED:
        return set(Permission)

    granted = set()
    for value in user.get("permissions") or []:
        try:
            granted.add(Permission(value))
        except ValueError:
            continue
    return granted


def has_permission(user: dict, permission: Permission) -> bool:
    return permission in effective_permissions(user)
