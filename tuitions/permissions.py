"""
Role-based permission classes for the eTuition API.
"""

from rest_framework import permissions


class IsStaffUser(permissions.BasePermission):
    """
    Allows only staff users, who moderate listings.

    Usage:
        class MyView(APIView):
            permission_classes = [IsAuthenticated, IsStaffUser]
    """

    message = 'You do not have permission to perform this action. Staff privileges required.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        return request.user.is_staff


class IsStudent(permissions.BasePermission):
    """
    Allows only users with user_type='student'.

    Returns 403 Forbidden for tutors.
    """

    message = 'Only students can perform this action.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        return getattr(request.user, 'user_type', None) == 'student'


class IsTutor(permissions.BasePermission):
    """
    Allows only users with user_type='tutor'.
    """

    message = 'Only tutors can perform this action.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        return getattr(request.user, 'user_type', None) == 'tutor'
