"""
API views for Rent On Map.
"""

import logging

from django.contrib.auth import get_user_model
from django.shortcuts import get_object_or_404
from rest_framework import status
from rest_framework.permissions import AllowAny, IsAuthenticated, IsAuthenticatedOrReadOnly
from rest_framework.response import Response
from rest_framework.throttling import ScopedRateThrottle
from rest_framework.views import APIView
from rest_framework_simplejwt.tokens import RefreshToken

from .exceptions import GENERIC_ERROR_MESSAGE
from .identity import IdentityVerificationError, verify_identity_token
from .models import Conversation, Listing
from .permissions import IsConversationParticipant, IsListingOwner, IsStaffUser
from .query import ListingStoreError, build_listing_query, fetch_listings, parse_bounds, partition_featured
from .serializers import (
    ConversationSerializer,
    ConversationStartSerializer,
    ListingSearchSerializer,
    ListingSerializer,
    ListingWriteSerializer,
    MessageCreateSerializer,
    MessageSerializer,
    PromoteSerializer,
    SavedToggleSerializer,
    SignInSerializer,
    UserProfileSerializer,
    VerificationDecisionSerializer,
)

User = get_user_model()
logger = logging.getLogger(__name__)


def get_client_ip(request):
    """
    Get client IP address from request.
    Handles proxy headers for accurate IP detection.
    """
    x_forwarded_for = request.META.get('HTTP_X_FORWARDED_FOR')
    if x_forwarded_for:
        return x_forwarded_for.split(',')[0].strip()
    return request.META.get('REMOTE_ADDR')


def listing_detail_queryset():
    return Listing.objects.select_related('owner').prefetch_related('feature_tags')


# ============================================================================
# Authentication
# ============================================================================

class SignInView(APIView):
    """
    Exchange an identity provider ID token for an API token pair.

    POST /api/auth/signin/
    Request body: {"id_token": "<provider id token>"}

    The token is verified against the provider's published keys. On first
    sign-in the account is created from the token's email, name and
    picture; later sign-ins refresh name and avatar.

    Success response (200):
    {
        "access": "<jwt_access_token>",
        "refresh": "<jwt_refresh_token>",
        "created": false,
        "user": {... profile ...}
    }

    Error responses:
    - 400: id_token missing
    - 401: Token rejected or account disabled
    - 429: Too many sign-in attempts
    """
    permission_classes = [AllowAny]
    authentication_classes = []
    throttle_classes = [ScopedRateThrottle]
    throttle_scope = 'signin'

    def post(self, request, *args, **kwargs):
        serializer = SignInSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        client_ip = get_client_ip(request)

        try:
            claims = verify_identity_token(serializer.validated_data['id_token'])
        except IdentityVerificationError as e:
            logger.warning(f"Rejected identity token. Reason: {e}, IP: {client_ip}")
            return Response(
                {'detail': 'Invalid identity token.'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        user, created = User.objects.sync_from_identity(
            email=claims.email,
            name=claims.name,
            avatar_url=claims.picture,
        )

        if not user.is_active:
            logger.warning(f"Sign-in attempt for inactive account. Email: {user.email}, IP: {client_ip}")
            return Response(
                {'detail': 'Invalid identity token.'},
                status=status.HTTP_401_UNAUTHORIZED
            )

        refresh = RefreshToken.for_user(user)

        logger.info(
            f"Successful sign-in. User ID: {user.id}, Email: {user.email}, "
            f"New account: {created}, IP: {client_ip}"
        )

        return Response({
            'access': str(refresh.access_token),
            'refresh': str(refresh),
            'created': created,
            'user': UserProfileSerializer(user).data,
        }, status=status.HTTP_200_OK)


# ============================================================================
# Listings
# ============================================================================

class ListingListCreateView(APIView):
    """
    Map search and listing creation.

    GET /api/listings/ (public)

    Query Parameters:
    - min_lat, max_lat, min_lng, max_lng: Map viewport. If any is missing or
      not a number, the newest listings up to the fallback limit are
      returned and every other filter is ignored.
    - min_price, max_price: Price range (defaults 0 and 10,000,000)
    - category: Flat, House, PG, Shop or Land
    - furnishing: Full, Semi or None
    - tenant_preference: Family, Bachelors or Any

    Currently featured listings come first.

    POST /api/listings/ (authenticated)
    Creates a listing owned by the caller. Base64 data URI images are
    uploaded and replaced by their URLs.

    Returns:
    - 200 OK: {"listings": [...], "count": n}
    - 201 Created: {"listing": {...}}
    - 400 Bad Request: Invalid parameters or payload
    - 401 Unauthorized: POST without credentials
    """
    permission_classes = [IsAuthenticatedOrReadOnly]

    def get(self, request, *args, **kwargs):
        edges = {
            edge: request.query_params.get(edge)
            for edge in ('min_lat', 'max_lat', 'min_lng', 'max_lng')
        }

        # Without a complete viewport the other filters are not applied.
        if parse_bounds(**edges) is None:
            query = build_listing_query(**edges)
            return self.respond_with(request, query)

        params = ListingSearchSerializer(data=request.query_params)
        if not params.is_valid():
            return Response(params.errors, status=status.HTTP_400_BAD_REQUEST)

        filters = params.validated_data
        query = build_listing_query(
            **edges,
            min_price=filters.get('min_price'),
            max_price=filters.get('max_price'),
            category=filters.get('category'),
            furnishing=filters.get('furnishing'),
            tenant_preference=filters.get('tenant_preference'),
        )
        return self.respond_with(request, query)

    def respond_with(self, request, query):
        try:
            listings = fetch_listings(query)
        except ListingStoreError:
            return Response(
                {'detail': GENERIC_ERROR_MESSAGE},
                status=status.HTTP_500_INTERNAL_SERVER_ERROR
            )

        listings = partition_featured(listings)
        serializer = ListingSerializer(listings, many=True, context={'request': request})

        return Response({
            'listings': serializer.data,
            'count': len(listings),
        }, status=status.HTTP_200_OK)

    def post(self, request, *args, **kwargs):
        serializer = ListingWriteSerializer(data=request.data, context={'request': request})
        if not serializer.is_valid():
            logger.warning(
                f"Listing creation validation failed. "
                f"User ID: {request.user.id}, Errors: {serializer.errors}"
            )
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        listing = serializer.save()

        logger.info(
            f"Listing created. Listing ID: {listing.id}, Owner ID: {request.user.id}, "
            f"Location: ({listing.latitude}, {listing.longitude})"
        )

        return Response({'listing': serializer.data}, status=status.HTTP_201_CREATED)


class ListingDetailView(APIView):
    """
    Retrieve, update or delete a single listing.

    GET /api/listings/{id}/ (public; hidden listings only for their owner)
    PUT/PATCH /api/listings/{id}/ (owner only, patch semantics for both)
    DELETE /api/listings/{id}/ (owner only; stored images removed afterwards)

    Error responses:
    - 401: Write without credentials
    - 403: Caller does not own the listing
    - 404: Listing does not exist
    """
    permission_classes = [IsAuthenticatedOrReadOnly, IsListingOwner]

    def get_object(self, pk):
        listing = get_object_or_404(listing_detail_queryset(), pk=pk)
        self.check_object_permissions(self.request, listing)
        return listing

    def get(self, request, pk, *args, **kwargs):
        listing = self.get_object(pk)

        if not listing.is_visible and listing.owner_id != request.user.id:
            return Response({'detail': 'Not found.'}, status=status.HTTP_404_NOT_FOUND)

        serializer = ListingSerializer(listing, context={'request': request})
        return Response({'listing': serializer.data}, status=status.HTTP_200_OK)

    def put(self, request, pk, *args, **kwargs):
        return self._update(request, pk)

    def patch(self, request, pk, *args, **kwargs):
        return self._update(request, pk)

    def _update(self, request, pk):
        listing = self.get_object(pk)

        serializer = ListingWriteSerializer(
            listing,
            data=request.data,
            partial=True,
            context={'request': request}
        )
        if not serializer.is_valid():
            logger.warning(
                f"Listing update validation failed. "
                f"Listing ID: {listing.id}, User ID: {request.user.id}, Errors: {serializer.errors}"
            )
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        serializer.save()

        logger.info(
            f"Listing updated. Listing ID: {listing.id}, Owner ID: {request.user.id}, "
            f"Fields: {sorted(serializer.validated_data.keys())}"
        )

        return Response({'listing': serializer.data}, status=status.HTTP_200_OK)

    def delete(self, request, pk, *args, **kwargs):
        listing = self.get_object(pk)
        listing_id = listing.id

        listing.delete()

        logger.info(f"Listing deleted. Listing ID: {listing_id}, Owner ID: {request.user.id}")

        return Response(
            {'message': 'Listing deleted successfully.'},
            status=status.HTTP_200_OK
        )

    def permission_denied(self, request, message=None, code=None):
        if request.user and request.user.is_authenticated:
            logger.warning(
                f"Listing modification denied. Path: {request.path}, "
                f"User ID: {request.user.id}, IP: {get_client_ip(request)}"
            )
        super().permission_denied(request, message=message, code=code)


class ListingPromoteView(APIView):
    """
    Feature a listing for the length of a promotion plan.

    POST /api/listings/promote/
    Request body: {"listing_id": 1, "plan": "1_week" | "1_month"}

    Success response (200):
    {
        "message": "Listing promoted successfully.",
        "featured_expiry": "2025-01-08T10:00:00Z",
        "listing": {...}
    }

    Error responses:
    - 400: Missing listing_id or unknown plan
    - 403: Caller does not own the listing
    - 404: Listing does not exist
    """
    permission_classes = [IsAuthenticated]

    def post(self, request, *args, **kwargs):
        serializer = PromoteSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        listing = get_object_or_404(
            listing_detail_queryset(),
            pk=serializer.validated_data['listing_id']
        )

        if listing.owner_id != request.user.id:
            logger.warning(
                f"Promotion attempt on another user's listing. "
                f"Listing ID: {listing.id}, User ID: {request.user.id}, IP: {get_client_ip(request)}"
            )
            return Response(
                {'detail': 'You do not own this listing.'},
                status=status.HTTP_403_FORBIDDEN
            )

        plan = serializer.validated_data['plan']
        expiry = listing.promote(plan)

        logger.info(f"Listing promoted. Listing ID: {listing.id}, Plan: {plan}, Until: {expiry.isoformat()}")

        return Response({
            'message': 'Listing promoted successfully.',
            'featured_expiry': expiry,
            'listing': ListingSerializer(listing, context={'request': request}).data,
        }, status=status.HTTP_200_OK)


# ============================================================================
# User
# ============================================================================

class UserListingsView(APIView):
    """
    The caller's own listings, newest first, hidden ones included.

    GET /api/user/listings/
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        listings = listing_detail_queryset().filter(owner=request.user).order_by('-created_at', '-id')
        serializer = ListingSerializer(listings, many=True, context={'request': request})
        return Response({'listings': serializer.data}, status=status.HTTP_200_OK)


class SavedListingsView(APIView):
    """
    Saved (bookmarked) listings.

    GET /api/user/saved/
    Response: {"saved_listings": [... listings with owner ...]}

    POST /api/user/saved/
    Request body: {"listing_id": 1}
    Toggles membership. Response: {"is_saved": true, "saved_listings": [1, 4]}
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        listings = (
            request.user.saved_listings
            .select_related('owner')
            .prefetch_related('feature_tags')
            .order_by('-created_at')
        )
        serializer = ListingSerializer(listings, many=True, context={'request': request})
        return Response({'saved_listings': serializer.data}, status=status.HTTP_200_OK)

    def post(self, request, *args, **kwargs):
        serializer = SavedToggleSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        listing = get_object_or_404(Listing, pk=serializer.validated_data['listing_id'])

        is_saved = request.user.toggle_saved_listing(listing)

        logger.info(
            f"Saved listing toggled. User ID: {request.user.id}, "
            f"Listing ID: {listing.id}, Saved: {is_saved}"
        )

        saved_ids = list(
            request.user.saved_listings.order_by('pk').values_list('pk', flat=True)
        )
        return Response({
            'is_saved': is_saved,
            'saved_listings': saved_ids,
        }, status=status.HTTP_200_OK)


class UserProfileView(APIView):
    """
    The authenticated user's profile.

    GET /api/user/profile/
    PATCH /api/user/profile/  requests verification: unverified accounts
    move to pending; pending and verified accounts are left as they are.
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        serializer = UserProfileSerializer(request.user)
        return Response(serializer.data, status=status.HTTP_200_OK)

    def patch(self, request, *args, **kwargs):
        user = request.user
        changed = user.request_verification()

        if changed:
            logger.info(f"Verification requested. User ID: {user.id}, Email: {user.email}")
        else:
            logger.info(
                f"Verification request ignored. User ID: {user.id}, "
                f"Status: {user.verification_status}"
            )

        return Response(UserProfileSerializer(user).data, status=status.HTTP_200_OK)


class VerificationDecisionView(APIView):
    """
    Staff-only endpoint for approving or rejecting verification requests.

    POST /api/user/verification/
    Request body: {"user_id": 12, "decision": "approve" | "reject"}

    Error responses:
    - 401: Missing or invalid credentials
    - 403: Caller is not staff
    - 400: Unknown user, no pending request, or invalid decision
    """
    permission_classes = [IsAuthenticated, IsStaffUser]

    def post(self, request, *args, **kwargs):
        serializer = VerificationDecisionSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        user = serializer.save()

        logger.info(
            f"Verification decision: {serializer.validated_data['decision']}. "
            f"User: {user.email} (ID: {user.id}), "
            f"Staff: {request.user.email} (ID: {request.user.id}), "
            f"IP: {get_client_ip(request)}"
        )

        return Response(UserProfileSerializer(user).data, status=status.HTTP_200_OK)


# ============================================================================
# Chat
# ============================================================================

class ConversationListCreateView(APIView):
    """
    The caller's conversations.

    GET /api/chat/conversations/
    Conversations the caller takes part in, newest last message first,
    with both participants and a listing summary.

    POST /api/chat/conversations/
    Request body: {"listing_id": 1, "owner_id": 7}
    Returns the existing conversation for this pair and listing, or starts
    one. Response: {"conversation_id": 3, "created": true}
    (201 when created, 200 when it already existed).
    """
    permission_classes = [IsAuthenticated]

    def get(self, request, *args, **kwargs):
        conversations = (
            Conversation.objects.for_user(request.user)
            .select_related('participant_low', 'participant_high', 'listing')
            .order_by('-last_message_at', '-id')
        )
        serializer = ConversationSerializer(conversations, many=True, context={'request': request})
        return Response({'conversations': serializer.data}, status=status.HTTP_200_OK)

    def post(self, request, *args, **kwargs):
        serializer = ConversationStartSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        listing = get_object_or_404(Listing, pk=serializer.validated_data['listing_id'])
        owner = get_object_or_404(User, pk=serializer.validated_data['owner_id'])

        conversation, created = Conversation.objects.start_or_get(
            viewer=request.user,
            listing=listing,
            owner=owner,
        )

        if created:
            logger.info(
                f"Conversation started. Conversation ID: {conversation.id}, "
                f"Listing ID: {listing.id}, Viewer ID: {request.user.id}, Owner ID: {owner.id}"
            )

        return Response(
            {'conversation_id': conversation.id, 'created': created},
            status=status.HTTP_201_CREATED if created else status.HTTP_200_OK
        )


class ConversationReadView(APIView):
    """
    Mark every message in a conversation as read by the caller.

    POST /api/chat/conversations/{id}/read/
    Response: {"conversation_id": 3, "unread_count": 0, "marked_read": 2}
    """
    permission_classes = [IsAuthenticated, IsConversationParticipant]

    def post(self, request, pk, *args, **kwargs):
        conversation = get_object_or_404(Conversation, pk=pk)
        self.check_object_permissions(request, conversation)

        marked = conversation.mark_read(request.user)

        return Response({
            'conversation_id': conversation.id,
            'unread_count': conversation.unread_count_for(request.user),
            'marked_read': marked,
        }, status=status.HTTP_200_OK)


class MessageListCreateView(APIView):
    """
    Messages of one conversation.

    GET /api/chat/messages/?conversation_id=3
    All messages, oldest first, with sender name and avatar. Clients poll
    this endpoint; there is no pagination.

    POST /api/chat/messages/
    Request body: {"conversation_id": 3, "content": "Hello"}
    Response (201): {"message": {...}}

    Error responses:
    - 400: Missing conversation_id or empty content
    - 403: Caller is not a participant
    - 404: Conversation does not exist
    """
    permission_classes = [IsAuthenticated, IsConversationParticipant]

    def get(self, request, *args, **kwargs):
        conversation_id = request.query_params.get('conversation_id')
        if not conversation_id:
            return Response(
                {'error': 'conversation_id is required.'},
                status=status.HTTP_400_BAD_REQUEST
            )
        if not conversation_id.isdigit():
            return Response(
                {'error': 'Invalid value for "conversation_id". Must be an integer.'},
                status=status.HTTP_400_BAD_REQUEST
            )

        conversation = get_object_or_404(Conversation, pk=int(conversation_id))
        self.check_object_permissions(request, conversation)

        messages = (
            conversation.messages
            .select_related('sender')
            .prefetch_related('read_by')
            .order_by('created_at', 'id')
        )
        serializer = MessageSerializer(messages, many=True)
        return Response({'messages': serializer.data}, status=status.HTTP_200_OK)

    def post(self, request, *args, **kwargs):
        serializer = MessageCreateSerializer(data=request.data)
        if not serializer.is_valid():
            return Response(serializer.errors, status=status.HTTP_400_BAD_REQUEST)

        conversation = get_object_or_404(
            Conversation,
            pk=serializer.validated_data['conversation_id']
        )
        self.check_object_permissions(request, conversation)

        message = conversation.append_message(request.user, serializer.validated_data['content'])

        logger.info(
            f"Message sent. Message ID: {message.id}, "
            f"Conversation ID: {conversation.id}, Sender ID: {request.user.id}"
        )

        return Response({'message': MessageSerializer(message).data}, status=status.HTTP_201_CREATED)
