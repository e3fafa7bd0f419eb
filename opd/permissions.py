"""
Role based permission classes for the outpatient API.
"""
from rest_framework.permissions import BasePermission, SAFE_METHODS

from .models import User


class IsAdminRole(BasePermission):
    """Allow access only to administrators."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "role", None) == User.ROLE_ADMIN)


class IsDoctorRole(BasePermission):
    """Faculty and residents: the users who sit in rooms."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        return bool(user and user.is_authenticated and getattr(user, "role", None) in User.DOCTOR_ROLES)


class IsAdminOrReadOnly(BasePermission):
    """Any staff member may read; only administrators may write."""
    def has_permission(self, request, view) -> bool:  # type: ignore[override]
        user = getattr(request, "user", None)
        if not (user and user.is_authenticated):
            return False
        return request.method in SAFE_METHODS or getattr(user, "role", None) == User.ROLE_ADMIN
