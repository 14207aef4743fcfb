"""
Serializers for the Rent On Map API.
"""

from django.contrib.auth import get_user_model
from django.db import transaction
from rest_framework import serializers

from .media import ImagePayloadError, delete_image, is_data_uri, resolve_images, storage_name_from_url
from .models import Conversation, Listing, Message
from .query import FURNISHING_TAGS, TENANT_PREFERENCES
from .validators import validate_feature_tags

User = get_user_model()


# ============================================================================
# User projections
# ============================================================================

class UserSummarySerializer(serializers.ModelSerializer):
    """
    Owner projection shown next to listings.

    Fields: id, name, email, is_verified, avatar_url
    """

    class Meta:
        model = User
        fields = ['id', 'name', 'email', 'is_verified', 'avatar_url']
        read_only_fields = fields


class SenderSerializer(serializers.ModelSerializer):
    """Sender projection shown on chat messages."""

    class Meta:
        model = User
        fields = ['id', 'name', 'avatar_url']
        read_only_fields = fields


class ParticipantSerializer(serializers.ModelSerializer):

    class Meta:
        model = User
        fields = ['id', 'name', 'email', 'avatar_url']
        read_only_fields = fields


class UserProfileSerializer(serializers.ModelSerializer):
    """
    Serializer for the authenticated user's own profile.

    Excludes sensitive fields (password, is_staff, is_superuser, permissions).
    ``saved_listing_ids`` lets clients render bookmark state without a
    second request.
    """

    saved_listing_ids = serializers.SerializerMethodField()

    class Meta:
        model = User
        fields = [
            'id',
            'email',
            'name',
            'avatar_url',
            'verification_status',
            'is_verified',
            'saved_listing_ids',
            'created_at',
        ]
        read_only_fields = fields

    def get_saved_listing_ids(self, obj):
        return list(obj.saved_listings.order_by('pk').values_list('pk', flat=True))


class SignInSerializer(serializers.Serializer):
    """
    Sign-in request carrying an ID token from the identity provider.
    """

    id_token = serializers.CharField(
        required=True,
        allow_blank=False,
        trim_whitespace=True,
        help_text='ID token issued by the identity provider'
    )


class VerificationDecisionSerializer(serializers.Serializer):
    """
    Staff decision on a pending verification request.

    Validates that:
    - user_id refers to an existing user
    - that user has a pending verification request
    - decision is approve or reject
    """

    DECISION_APPROVE = 'approve'
    DECISION_REJECT = 'reject'

    user_id = serializers.IntegerField(required=True)
    decision = serializers.ChoiceField(choices=[DECISION_APPROVE, DECISION_REJECT])

    def validate_user_id(self, value):
        try:
            user = User.objects.get(pk=value)
        except User.DoesNotExist:
            raise serializers.ValidationError('User not found.')

        if user.verification_status != User.VERIFICATION_PENDING:
            raise serializers.ValidationError('User has no pending verification request.')

        self.context['target_user'] = user
        return value

    def save(self, **kwargs):
        user = self.context['target_user']
        if self.validated_data['decision'] == self.DECISION_APPROVE:
            user.verification_status = User.VERIFICATION_VERIFIED
        else:
            user.verification_status = User.VERIFICATION_UNVERIFIED
        user.save(update_fields=['verification_status', 'updated_at'])
        return user


# ============================================================================
# Listings
# ============================================================================

class GeoPointField(serializers.Field):
    """
    Read-only GeoJSON point built from a listing's longitude/latitude.
    """

    def __init__(self, **kwargs):
        kwargs['source'] = '*'
        kwargs['read_only'] = True
        super().__init__(**kwargs)

    def to_representation(self, instance):
        return {
            'type': 'Point',
            'coordinates': [instance.longitude, instance.latitude],
        }


class ListingSerializer(serializers.ModelSerializer):
    """
    Read serializer for listings.

    Includes the owner projection, the ordered feature tags and a GeoJSON
    ``location`` alongside the raw coordinates.
    """

    owner = UserSummarySerializer(read_only=True)
    features = serializers.ListField(child=serializers.CharField(), read_only=True)
    location = GeoPointField()
    is_currently_featured = serializers.SerializerMethodField()

    class Meta:
        model = Listing
        fields = [
            'id',
            'owner',
            'title',
            'description',
            'price',
            'category',
            'features',
            'images',
            'bedrooms',
            'bathrooms',
            'area',
            'contact_number',
            'address',
            'city',
            'pincode',
            'latitude',
            'longitude',
            'location',
            'is_featured',
            'featured_expiry',
            'is_currently_featured',
            'is_visible',
            'created_at',
            'updated_at',
        ]
        read_only_fields = fields

    def get_is_currently_featured(self, obj):
        return obj.is_currently_featured()


class ListingWriteSerializer(serializers.ModelSerializer):
    """
    Serializer for creating and updating listings.

    Create requires title, description, price, category, latitude and
    longitude. Updates follow patch semantics: only given fields change.

    Images:
    - ``data:image/...;base64,`` entries are uploaded and replaced by URLs
    - Other entries are kept as URLs; URLs into the media store must
      already belong to this listing
    - On update, URLs dropped from the list are deleted from the media store

    Features:
    - Given as an ordered list of tags, replacing the previous list wholesale

    Location:
    - latitude and longitude must be given together
    """

    features = serializers.ListField(
        child=serializers.CharField(max_length=100, allow_blank=False),
        required=False,
        validators=[validate_feature_tags],
        help_text='Ordered feature tags, e.g. "Fully Furnished", "Family"'
    )

    images = serializers.ListField(
        child=serializers.CharField(allow_blank=False),
        required=False,
        help_text='Image URLs or base64 data URIs'
    )

    class Meta:
        model = Listing
        fields = [
            'title',
            'description',
            'price',
            'category',
            'features',
            'images',
            'bedrooms',
            'bathrooms',
            'area',
            'contact_number',
            'address',
            'city',
            'pincode',
            'latitude',
            'longitude',
            'is_visible',
        ]
        extra_kwargs = {
            'title': {'required': True},
            'description': {'required': True},
            'price': {'required': True},
            'category': {'required': True},
            'latitude': {'required': True},
            'longitude': {'required': True},
            'is_visible': {'required': False},
        }

    def validate_title(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError('Title cannot be empty.')
        return value.strip()

    def validate_description(self, value):
        if not value or not value.strip():
            raise serializers.ValidationError('Description cannot be empty.')
        return value.strip()

    def validate_price(self, value):
        if value is None or value <= 0:
            raise serializers.ValidationError('Price must be greater than 0.')
        return value

    def validate_features(self, value):
        return [tag.strip() for tag in value]

    def validate_images(self, value):
        """
        Stored images can only be referenced by the listing that uploaded them.

        A plain URL pointing into the media store is accepted only when this
        listing already holds it, so deleting or editing a listing never
        removes files that belong to another listing.
        """
        current = set(self.instance.images or []) if self.instance is not None else set()
        for reference in value:
            if is_data_uri(reference) or reference in current:
                continue
            if storage_name_from_url(reference) is not None:
                raise serializers.ValidationError(
                    'Stored images must be uploaded with this listing.'
                )
        return value

    def validate(self, attrs):
        """
        Require latitude and longitude together.

        On create both are already required. On a partial update a lone
        coordinate is rejected so the location is never half-moved.
        """
        has_lat = 'latitude' in attrs
        has_lng = 'longitude' in attrs
        if has_lat != has_lng:
            raise serializers.ValidationError(
                {'location': 'Latitude and longitude must be provided together.'}
            )
        return attrs

    def _resolve_images(self, images):
        """
        Upload embedded images.

        Returns:
            tuple: (resolved URL list, URLs newly uploaded by this call)
        """
        try:
            resolved = resolve_images(images)
        except ImagePayloadError as e:
            raise serializers.ValidationError({'images': [str(e)]})
        uploaded = [url for url, raw in zip(resolved, images) if url != raw]
        return resolved, uploaded

    def create(self, validated_data):
        """
        Create a listing owned by the requesting user.

        Images are uploaded before the row is written; if the write fails
        the uploads are removed again.
        """
        request = self.context.get('request')
        if not request or not request.user or not request.user.is_authenticated:
            raise serializers.ValidationError('Authentication required to create listing.')

        features = validated_data.pop('features', [])
        images, uploaded = self._resolve_images(validated_data.pop('images', []))

        try:
            with transaction.atomic():
                listing = Listing.objects.create(owner=request.user, images=images, **validated_data)
                listing.set_features(features)
        except Exception:
            for url in uploaded:
                delete_image(url)
            raise

        return listing

    def update(self, instance, validated_data):
        """
        Apply a field-level patch to a listing.

        Images removed from the list are deleted from the media store after
        the row is saved; failures there are logged and do not fail the
        request.
        """
        features = validated_data.pop('features', None)
        removed_images = []
        uploaded = []

        if 'images' in validated_data:
            new_images, uploaded = self._resolve_images(validated_data.pop('images'))
            removed_images = [url for url in instance.images if url not in new_images]
            instance.images = new_images

        for attr, value in validated_data.items():
            setattr(instance, attr, value)

        try:
            with transaction.atomic():
                instance.save()
                if features is not None:
                    instance.set_features(features)
        except Exception:
            for url in uploaded:
                delete_image(url)
            raise

        for url in removed_images:
            delete_image(url)

        return instance

    def to_representation(self, instance):
        return ListingSerializer(instance, context=self.context).data


class ListingSearchSerializer(serializers.Serializer):
    """
    Query parameters for the map search.

    Closed-set filters (category, furnishing, tenant preference) and prices
    are validated here. Only used once the viewport parses: an edge that is
    missing or not a number switches the search to fallback mode, where the
    remaining parameters are ignored rather than validated.
    """

    min_lat = serializers.CharField(required=False, allow_blank=True)
    max_lat = serializers.CharField(required=False, allow_blank=True)
    min_lng = serializers.CharField(required=False, allow_blank=True)
    max_lng = serializers.CharField(required=False, allow_blank=True)

    min_price = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, allow_null=True, min_value=0
    )
    max_price = serializers.DecimalField(
        max_digits=14, decimal_places=2, required=False, allow_null=True, min_value=0
    )

    category = serializers.ChoiceField(
        choices=[choice for choice, _label in Listing.CATEGORY_CHOICES],
        required=False,
        allow_blank=True,
    )
    furnishing = serializers.ChoiceField(
        choices=list(FURNISHING_TAGS.keys()),
        required=False,
        allow_blank=True,
    )
    tenant_preference = serializers.CharField(required=False, allow_blank=True)

    def to_internal_value(self, data):
        # Empty price strings mean "no bound"
        data = data.copy() if hasattr(data, 'copy') else dict(data)
        for key in ('min_price', 'max_price'):
            if key in data and data.get(key) == '':
                data.pop(key)
        return super().to_internal_value(data)

    def validate_tenant_preference(self, value):
        if not value:
            return value
        for choice in TENANT_PREFERENCES:
            if choice.lower() == value.strip().lower():
                return choice
        raise serializers.ValidationError(
            f'Invalid tenant preference. Choose from: {", ".join(TENANT_PREFERENCES)}'
        )


class PromoteSerializer(serializers.Serializer):

    listing_id = serializers.IntegerField(required=True)
    plan = serializers.ChoiceField(choices=list(Listing.PROMOTION_PLANS.keys()))


class SavedToggleSerializer(serializers.Serializer):

    listing_id = serializers.IntegerField(required=True)


# ============================================================================
# Chat
# ============================================================================

class ConversationStartSerializer(serializers.Serializer):
    """
    Start (or reopen) a conversation with a listing's owner.
    """

    listing_id = serializers.IntegerField(required=True)
    owner_id = serializers.IntegerField(required=True)


class ConversationListingSerializer(serializers.ModelSerializer):

    class Meta:
        model = Listing
        fields = ['id', 'title', 'latitude', 'longitude', 'images', 'price']
        read_only_fields = fields


class ConversationSerializer(serializers.ModelSerializer):
    """
    A conversation as seen by one of its participants.

    ``unread_count`` is the requesting user's own counter; the full
    ``unread_counts`` map is included for clients that show both sides.
    """

    participants = ParticipantSerializer(many=True, read_only=True)
    listing = ConversationListingSerializer(read_only=True)
    unread_count = serializers.SerializerMethodField()

    class Meta:
        model = Conversation
        fields = [
            'id',
            'participants',
            'listing',
            'last_message',
            'last_message_at',
            'unread_counts',
            'unread_count',
            'created_at',
        ]
        read_only_fields = fields

    def get_unread_count(self, obj):
        request = self.context.get('request')
        if request is None or not request.user.is_authenticated:
            return 0
        return obj.unread_count_for(request.user)


class MessageSerializer(serializers.ModelSerializer):

    sender = SenderSerializer(read_only=True)
    read_by = serializers.PrimaryKeyRelatedField(many=True, read_only=True)

    class Meta:
        model = Message
        fields = ['id', 'conversation', 'sender', 'content', 'read_by', 'created_at']
        read_only_fields = fields


class MessageCreateSerializer(serializers.Serializer):
    """
    Send a message.

    Fields:
    - conversation_id: Required, must exist
    - content: Required, not blank
    """

    conversation_id = serializers.IntegerField(required=True)
    content = serializers.CharField(required=True, allow_blank=False, trim_whitespace=False)

    def validate_content(self, value):
        if not value.strip():
            raise serializers.ValidationError('Message content cannot be empty.')
        return value
