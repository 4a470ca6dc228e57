"""
Role-based DRF permissions.
"""

from rest_framework import permissions


class IsAdmin(permissions.BasePermission):
    """Permission for admin users only."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.is_admin


class IsDriver(permissions.BasePermission):
    """Permission for driver users only."""

    def has_permission(self, request, view):
        return request.user.is_authenticated and request.user.is_driver
