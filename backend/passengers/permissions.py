from rest_framework.permissions import BasePermission


class RolePermission(BasePermission):
    """Grants access to authenticated users whose ``role`` matches ``required_role``."""

    required_role = None
    message = "This action is not available for your account type"

    def has_permission(self, request, view):
        user = getattr(request, "user", None)
        if not user or not user.is_authenticated:
            return False
        return getattr(user, "role", None) == self.required_role


class IsRider(RolePermission):
    required_role = "rider"
    message = "Only riders can book or manage rides"
