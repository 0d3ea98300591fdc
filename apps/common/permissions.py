from rest_framework.permissions import BasePermission

from apps.accounts.models import UserRole


ROLE_CAPABILITIES = {
    UserRole.ADMIN: {
        "catalog.view",
        "catalog.manage",
        "suppliers.view",
        "suppliers.manage",
        "inventory.view",
        "ledger.view",
        "purchases.view",
        "purchases.manage",
        "purchases.approve",
        "purchases.receive",
        "returns.view",
        "returns.manage",
        "returns.approve",
        "returns.process",
        "returns.refund",
    },
    UserRole.PURCHASING: {
        "catalog.view",
        "suppliers.view",
        "suppliers.manage",
        "inventory.view",
        "purchases.view",
        "purchases.manage",
        "returns.view",
        "returns.manage",
    },
    UserRole.WAREHOUSE: {
        "catalog.view",
        "suppliers.view",
        "inventory.view",
        "purchases.view",
        "purchases.receive",
        "returns.view",
        "returns.process",
    },
    UserRole.ACCOUNTANT: {
        "catalog.view",
        "suppliers.view",
        "inventory.view",
        "ledger.view",
        "purchases.view",
        "purchases.approve",
        "returns.view",
        "returns.approve",
        "returns.refund",
    },
}


class RolePermission(BasePermission):
    @staticmethod
    def _resolve_role(user):
        group_names = set(user.groups.values_list("name", flat=True))
        for role in (UserRole.ADMIN, UserRole.ACCOUNTANT, UserRole.PURCHASING, UserRole.WAREHOUSE):
            if role in group_names:
                return role
        return getattr(user, "role", UserRole.PURCHASING)

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        capability_map = getattr(view, "capability_map", {})
        action = getattr(view, "action", request.method.lower())
        required = capability_map.get(action) or capability_map.get(request.method.lower()) or set()
        if not required:
            return True

        return has_capabilities(request.user, *required)


def user_capabilities(user):
    return ROLE_CAPABILITIES.get(RolePermission._resolve_role(user), set())


def has_capabilities(user, *capabilities):
    if not user or not user.is_authenticated:
        return False
    granted = user_capabilities(user)
    return all(cap in granted for cap in capabilities)
