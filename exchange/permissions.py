"""
Custom permission classes for the campus exchange API.
"""

from rest_framework import permissions


class IsAdminRole(permissions.BasePermission):
    """
    Allow only users whose role is 'admin'.

    Usage:
        class MyView(APIView):
            permission_classes = [IsAuthenticated, IsAdminRole]
    """

    message = 'You do not have permission to perform this action. Administrator role required.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        return request.user.is_admin()


class IsVerifiedMember(permissions.BasePermission):
    """
    Allow only users who passed identity verification.

    Services re-check this with ``require_verified``; the permission gives
    views an early, uniform 403.
    """

    message = 'Account verification required.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        return bool(getattr(request.user, 'is_verified', False))


class IsTransactionParticipant(permissions.BasePermission):
    """
    Object-level permission: the donor, the receiver or an admin may read a
    transaction.
    """

    message = 'Unauthorized'

    def has_object_permission(self, request, view, obj):
        user = request.user
        if not user or not user.is_authenticated:
            return False

        return user.pk in (obj.donor_id, obj.receiver_id) or user.is_admin()
