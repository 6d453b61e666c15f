from rest_framework.permissions import BasePermission

from .models import UserRole
from .roles import has_role_at_least


class MinimumRolePermission(BasePermission):
    """Allow users whose role ranks at or above ``required_role``."""

    required_role = UserRole.CASHIER
    message = "Access denied. Insufficient permissions."

    def has_permission(self, request, view):
        return has_role_at_least(request.user, self.required_role)


class IsCashierRole(MinimumRolePermission):
    """Allow any staff role (cashier, manager, admin)."""

    required_role = UserRole.CASHIER


class IsManagerRole(MinimumRolePermission):
    """Allow manager or admin (including superuser)."""

    required_role = UserRole.MANAGER


class IsAdminRole(MinimumRolePermission):
    """Allow only admin role or superuser."""

    required_role = UserRole.ADMIN
