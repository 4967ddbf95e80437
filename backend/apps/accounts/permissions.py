# apps/accounts/permissions.py
from rest_framework import permissions


class IsCustomer(permissions.BasePermission):
    def has_permission(self, request, view):
        return bool(
            request.user and
            request.user.is_authenticated and
            request.user.roles.filter(role='customer').exists()
        )


class IsSeller(permissions.BasePermission):
    def has_permission(self, request, view):
        return bool(
            request.user and
            request.user.is_authenticated and
            request.user.roles.filter(role='seller').exists()
        )


class IsSellerOrAdmin(permissions.BasePermission):
    """
    Shop owners and platform staff. Object ownership is checked in the service layer.
    """
    def has_permission(self, request, view):
        if not (request.user and request.user.is_authenticated):
            return False
        if request.user.is_staff:
            return True
        return request.user.roles.filter(role='seller').exists()
