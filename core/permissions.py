"""
Custom permission classes for Rent On Map.
"""

from rest_framework import permissions


class IsStaffUser(permissions.BasePermission):
    """
    Permission class that allows only staff users to access the endpoint.

    Used for reviewing verification requests.

    Usage:
        class MyView(APIView):
            permission_classes = [IsAuthenticated, IsStaffUser]
    """

    message = 'You do not have permission to perform this action. Staff privileges required.'

    def has_permission(self, request, view):
        if not request.user or not request.user.is_authenticated:
            return False

        return request.user.is_staff


class IsListingOwner(permissions.BasePermission):
    """
    Object-level permission: only the listing's owner may modify it.

    Safe methods (GET, HEAD, OPTIONS) are open to everyone so listing
    detail stays public.

    Usage:
        class ListingDetailView(APIView):
            permission_classes = [IsAuthenticatedOrReadOnly, IsListingOwner]

            def get_object(self):
                listing = get_object_or_404(Listing, pk=...)
                self.check_object_permissions(self.request, listing)
                return listing
    """

    message = 'You do not own this listing.'

    def has_object_permission(self, request, view, obj):
        """
        Args:
            request: HTTP request object
            view: View being accessed
            obj: Listing instance

        Returns:
            bool: True for safe methods or when the user owns the listing
        """
        if request.method in permissions.SAFE_METHODS:
            return True

        if not request.user or not request.user.is_authenticated:
            return False

        return obj.owner_id == request.user.id


class IsConversationParticipant(permissions.BasePermission):
    """
    Object-level permission: only the two participants may read or write a conversation.
    """

    message = 'You are not a participant in this conversation.'

    def has_object_permission(self, request, view, obj):
        if not request.user or not request.user.is_authenticated:
            return False

        return obj.has_participant(request.user)
