"""Role-based permissions."""
from rest_framework.permissions import BasePermission


class IsAdminUser(BasePermission):
    """Allow access only to authenticated users with the admin role."""
    message = 'Admin access required.'

    def has_permission(self, request, view):
        user = request.user
        return bool(user and user.is_authenticated and user.is_admin)
