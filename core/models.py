"""
Data model for the Rent On Map marketplace.

Listings carry a point geolocation and are searched by bounding box.
Conversations and messages form the chat ledger between a viewer and a
listing owner.
"""

from datetime import timedelta
from decimal import Decimal

from django.contrib.auth.models import AbstractUser, UserManager as DjangoUserManager
from django.core.exceptions import PermissionDenied, ValidationError
from django.db import models, transaction
from django.db.models import Q
from django.utils import timezone
from django.utils.translation import gettext_lazy as _

from .validators import (
    validate_contact_number,
    validate_feature_tags,
    validate_image_references,
    validate_latitude,
    validate_longitude,
)


class UserManager(DjangoUserManager):
    """
    Manager for users whose identity is owned by an external provider.
    """

    def sync_from_identity(self, email, name='', avatar_url=''):
        """
        Create or refresh the account linked to an external identity.

        The account is matched by email (case-insensitive). A new account
        gets an unusable password since sign-in always goes through the
        identity provider. An existing account picks up the name and avatar
        reported by the provider when they are non-empty and changed.

        Args:
            email: Verified email from the identity provider
            name: Display name reported by the provider
            avatar_url: Avatar URL reported by the provider

        Returns:
            tuple: (user, created)
        """
        email = self.normalize_email(email).lower()
        user, created = self.get_or_create(
            email=email,
            defaults={
                'username': email[:150],
                'name': name or email.split('@')[0] or 'User',
                'avatar_url': avatar_url or '',
            },
        )

        if created:
            user.set_unusable_password()
            user.save(update_fields=['password'])
            return user, True

        changed = []
        if name and name != user.name:
            user.name = name
            changed.append('name')
        if avatar_url and avatar_url != user.avatar_url:
            user.avatar_url = avatar_url
            changed.append('avatar_url')
        if changed:
            user.save(update_fields=changed + ['updated_at'])

        return user, False


class User(AbstractUser):
    """
    Account linked 1:1 to an external identity.

    Additional fields:
    - email: Required, unique, stored lowercase
    - name: Display name from the identity provider
    - avatar_url: Avatar image reference
    - verification_status: unverified, pending or verified
    - is_verified: Mirrors verification_status == 'verified'
    - saved_listings: Set of bookmarked listings
    """

    VERIFICATION_UNVERIFIED = 'unverified'
    VERIFICATION_PENDING = 'pending'
    VERIFICATION_VERIFIED = 'verified'

    VERIFICATION_STATUS_CHOICES = [
        (VERIFICATION_UNVERIFIED, 'Unverified'),
        (VERIFICATION_PENDING, 'Pending'),
        (VERIFICATION_VERIFIED, 'Verified'),
    ]

    email = models.EmailField(
        _('email address'),
        unique=True,
        blank=False,
        null=False,
        error_messages={
            'unique': _('A user with that email already exists.'),
        },
    )

    name = models.CharField(
        _('display name'),
        max_length=150,
        blank=True,
        default='',
    )

    avatar_url = models.URLField(
        _('avatar'),
        max_length=500,
        blank=True,
        default='',
    )

    verification_status = models.CharField(
        _('verification status'),
        max_length=10,
        choices=VERIFICATION_STATUS_CHOICES,
        default=VERIFICATION_UNVERIFIED,
    )

    is_verified = models.BooleanField(
        _('verified'),
        default=False,
        help_text=_('Set when verification_status is verified.')
    )

    saved_listings = models.ManyToManyField(
        'Listing',
        related_name='saved_by',
        blank=True,
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    objects = UserManager()

    class Meta:
        verbose_name = _('user')
        verbose_name_plural = _('users')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['email'], name='user_email_idx'),
            models.Index(fields=['verification_status'], name='user_verification_idx'),
        ]

    def __str__(self):
        return self.email or self.username

    def save(self, *args, **kwargs):
        if self.email:
            self.email = self.email.lower()
        self.is_verified = self.verification_status == self.VERIFICATION_VERIFIED
        update_fields = kwargs.get('update_fields')
        if update_fields is not None and 'verification_status' in update_fields:
            kwargs['update_fields'] = set(update_fields) | {'is_verified'}
        super().save(*args, **kwargs)

    def request_verification(self):
        """
        Move the account to pending review.

        Verified accounts are left untouched.

        Returns:
            bool: True if the status changed
        """
        if self.verification_status != self.VERIFICATION_UNVERIFIED:
            return False
        self.verification_status = self.VERIFICATION_PENDING
        self.save(update_fields=['verification_status', 'updated_at'])
        return True

    def toggle_saved_listing(self, listing):
        """
        Add the listing to the saved set, or remove it if already present.

        The user row is locked for the duration so concurrent toggles from
        several devices are applied one after the other.

        Returns:
            bool: True if the listing is saved after the call
        """
        with transaction.atomic():
            User.objects.select_for_update().filter(pk=self.pk).first()
            if self.saved_listings.filter(pk=listing.pk).exists():
                self.saved_listings.remove(listing)
                return False
            self.saved_listings.add(listing)
            return True


class ListingQuerySet(models.QuerySet):

    def visible(self):
        return self.filter(is_visible=True)

    def featured_lapsed(self, now=None):
        now = now or timezone.now()
        return self.filter(is_featured=True, featured_expiry__lte=now)


class Listing(models.Model):
    """
    A rentable unit placed on the map.

    Fields:
    - owner: User who posted the listing (immutable)
    - title, description: Free text
    - price: Monthly rent, currency-agnostic
    - category: Flat, House, PG, Shop or Land
    - images: Ordered list of image URLs
    - bedrooms, bathrooms, area: Optional counts
    - contact_number, address, city, pincode: Optional strings
    - latitude, longitude: The listing's point location
    - is_featured, featured_expiry: Promotion state
    - is_visible: Owner-controlled soft hide

    Feature tags live in ListingFeature rows, see ``features``.
    """

    CATEGORY_CHOICES = [
        ('Flat', 'Flat'),
        ('House', 'House'),
        ('PG', 'PG'),
        ('Shop', 'Shop'),
        ('Land', 'Land'),
    ]

    PROMOTION_PLANS = {
        '1_week': 7,
        '1_month': 30,
    }

    owner = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='listings',
        help_text=_('User who posted this listing')
    )

    title = models.CharField(_('title'), max_length=200)

    description = models.TextField(_('description'))

    price = models.DecimalField(
        _('price'),
        max_digits=12,
        decimal_places=2,
        help_text=_('Rent amount (must be greater than 0)')
    )

    category = models.CharField(
        _('category'),
        max_length=10,
        choices=CATEGORY_CHOICES,
    )

    images = models.JSONField(
        _('images'),
        default=list,
        blank=True,
        validators=[validate_image_references],
        help_text=_('Ordered list of image URLs')
    )

    bedrooms = models.PositiveIntegerField(_('bedrooms'), null=True, blank=True)
    bathrooms = models.PositiveIntegerField(_('bathrooms'), null=True, blank=True)
    area = models.PositiveIntegerField(_('area'), null=True, blank=True, help_text=_('Area in sq ft'))

    contact_number = models.CharField(
        _('contact number'),
        max_length=20,
        blank=True,
        default='',
        validators=[validate_contact_number],
    )

    address = models.CharField(_('address'), max_length=255, blank=True, default='')
    city = models.CharField(_('city'), max_length=100, blank=True, default='')
    pincode = models.CharField(_('postal code'), max_length=20, blank=True, default='')

    latitude = models.FloatField(_('latitude'), validators=[validate_latitude])
    longitude = models.FloatField(_('longitude'), validators=[validate_longitude])

    is_featured = models.BooleanField(_('featured'), default=False)
    featured_expiry = models.DateTimeField(_('featured until'), null=True, blank=True)
    is_visible = models.BooleanField(_('visible'), default=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    objects = ListingQuerySet.as_manager()

    class Meta:
        verbose_name = _('listing')
        verbose_name_plural = _('listings')
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['latitude', 'longitude'], name='listing_location_idx'),
            models.Index(fields=['owner'], name='listing_owner_idx'),
            models.Index(fields=['price'], name='listing_price_idx'),
            models.Index(fields=['category'], name='listing_category_idx'),
            models.Index(fields=['is_featured'], name='listing_featured_idx'),
        ]

    def __str__(self):
        return self.title

    def clean(self):
        """
        Validate model fields.

        Ensures:
        - Title and description are not blank
        - Price is greater than 0
        - Owner does not change after creation

        Raises:
            ValidationError: If validation fails
        """
        super().clean()

        if not self.title or not self.title.strip():
            raise ValidationError({'title': _('Title cannot be empty.')})

        if not self.description or not self.description.strip():
            raise ValidationError({'description': _('Description cannot be empty.')})

        if self.price is not None and self.price <= Decimal('0'):
            raise ValidationError({'price': _('Price must be greater than 0.')})

        if self.pk is not None:
            original_owner_id = (
                Listing.objects.filter(pk=self.pk).values_list('owner_id', flat=True).first()
            )
            if original_owner_id is not None and original_owner_id != self.owner_id:
                raise ValidationError({'owner': _('The owner of a listing cannot be changed.')})

    def save(self, *args, **kwargs):
        self.full_clean()
        super().save(*args, **kwargs)

    @property
    def features(self):
        """Feature tags in their stored order."""
        return [feature.tag for feature in self.feature_tags.all()]

    def set_features(self, tags):
        """Replace the feature tags, keeping the given order and duplicates."""
        validate_feature_tags(tags)
        with transaction.atomic():
            self.feature_tags.all().delete()
            ListingFeature.objects.bulk_create([
                ListingFeature(listing=self, tag=tag.strip(), position=position)
                for position, tag in enumerate(tags or [])
            ])
        # Drop any prefetched tags so ``features`` reflects the new rows
        prefetched = getattr(self, '_prefetched_objects_cache', None)
        if prefetched:
            prefetched.pop('feature_tags', None)

    def is_currently_featured(self, now=None):
        if not self.is_featured:
            return False
        if self.featured_expiry is None:
            return False
        return self.featured_expiry > (now or timezone.now())

    def promote(self, plan, now=None):
        """
        Feature the listing for the duration of a promotion plan.

        Args:
            plan: '1_week' or '1_month'
            now: Reference time, defaults to timezone.now()

        Returns:
            datetime: The new featured_expiry

        Raises:
            ValidationError: If the plan is unknown
        """
        if plan not in self.PROMOTION_PLANS:
            raise ValidationError({'plan': _('Unknown promotion plan.')})
        now = now or timezone.now()
        self.is_featured = True
        self.featured_expiry = now + timedelta(days=self.PROMOTION_PLANS[plan])
        self.save(update_fields=['is_featured', 'featured_expiry', 'updated_at'])
        return self.featured_expiry


class ListingFeature(models.Model):
    """
    A single feature tag of a listing (e.g. "Fully Furnished", "Family").

    One row per tag occurrence; ``position`` keeps the owner's order.
    """

    listing = models.ForeignKey(
        Listing,
        on_delete=models.CASCADE,
        related_name='feature_tags',
    )

    tag = models.CharField(_('tag'), max_length=100)

    position = models.PositiveIntegerField(_('position'), default=0)

    class Meta:
        verbose_name = _('listing feature')
        verbose_name_plural = _('listing features')
        ordering = ['position', 'id']
        indexes = [
            models.Index(fields=['tag', 'listing'], name='listing_feature_tag_idx'),
        ]

    def __str__(self):
        return self.tag


class ConversationManager(models.Manager):

    STARTED_CONVERSATION_TEXT = 'Started conversation'

    def for_user(self, user):
        return self.filter(Q(participant_low=user) | Q(participant_high=user))

    def start_or_get(self, viewer, listing, owner):
        """
        Return the conversation between viewer and owner about listing, creating it if needed.

        The participant pair is stored in ascending id order and is unique
        together with the listing, so the same pair always maps to one
        conversation whichever side starts it. A new conversation begins
        with one unread item for the owner.

        Args:
            viewer: User starting the conversation
            listing: Listing the conversation is about
            owner: The other participant, normally the listing owner

        Returns:
            tuple: (conversation, created)

        Raises:
            ValidationError: If viewer and owner are the same user or neither
                of them owns the listing
        """
        if viewer.pk == owner.pk:
            raise ValidationError({'owner_id': _('You cannot start a conversation with yourself.')})

        if listing.owner_id not in (viewer.pk, owner.pk):
            raise ValidationError({'owner_id': _('Neither participant owns this listing.')})

        low, high = sorted([viewer, owner], key=lambda user: user.pk)
        return self.get_or_create(
            participant_low=low,
            participant_high=high,
            listing=listing,
            defaults={
                'last_message': self.STARTED_CONVERSATION_TEXT,
                'unread_counts': {str(owner.pk): 1},
            },
        )


class Conversation(models.Model):
    """
    A 1:1 message thread between two users about one listing.

    Fields:
    - participant_low, participant_high: The two participants, lower id first
    - listing: Listing the thread is about
    - last_message, last_message_at: Summary of the newest message
    - unread_counts: Mapping of participant id (as string) to unread count
    """

    participant_low = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='conversations_as_low',
    )

    participant_high = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='conversations_as_high',
    )

    listing = models.ForeignKey(
        Listing,
        on_delete=models.CASCADE,
        related_name='conversations',
    )

    last_message = models.TextField(_('last message'), blank=True, default='')

    last_message_at = models.DateTimeField(_('last message at'), default=timezone.now)

    unread_counts = models.JSONField(_('unread counts'), default=dict, blank=True)

    created_at = models.DateTimeField(_('created at'), auto_now_add=True)
    updated_at = models.DateTimeField(_('updated at'), auto_now=True)

    objects = ConversationManager()

    class Meta:
        verbose_name = _('conversation')
        verbose_name_plural = _('conversations')
        ordering = ['-last_message_at']
        constraints = [
            models.UniqueConstraint(
                fields=['participant_low', 'participant_high', 'listing'],
                name='unique_conversation_per_pair_and_listing',
            ),
        ]
        indexes = [
            models.Index(fields=['participant_low', 'last_message_at'], name='conversation_low_recent_idx'),
            models.Index(fields=['participant_high', 'last_message_at'], name='conversation_high_recent_idx'),
        ]

    def __str__(self):
        return f"Conversation {self.pk} about listing {self.listing_id}"

    def clean(self):
        super().clean()

        if self.participant_low_id and self.participant_low_id == self.participant_high_id:
            raise ValidationError(_('A conversation needs two different participants.'))

        if (
            self.participant_low_id and self.participant_high_id
            and self.participant_low_id > self.participant_high_id
        ):
            raise ValidationError(_('Participants must be stored in ascending id order.'))

    def save(self, *args, **kwargs):
        # Uniqueness is left to the database so concurrent get_or_create calls
        # surface as IntegrityError
        self.full_clean(validate_unique=False, validate_constraints=False)
        super().save(*args, **kwargs)

    @property
    def participant_ids(self):
        return [self.participant_low_id, self.participant_high_id]

    @property
    def participants(self):
        return [self.participant_low, self.participant_high]

    def has_participant(self, user):
        return user is not None and user.pk in self.participant_ids

    def unread_count_for(self, user):
        return int((self.unread_counts or {}).get(str(user.pk), 0))

    def append_message(self, sender, content):
        """
        Append a message and update the conversation summary.

        Runs in one transaction with the conversation row locked: the
        message is created with the sender as its first reader, the
        last-message fields take the new content and timestamp, and every
        other participant's unread counter grows by one. On the first message
        of a conversation the placeholder count set when it was started is
        discarded for the recipients, so they see exactly one unread item;
        the sender's own counter is left as it was.

        Args:
            sender: Participant sending the message
            content: Message text

        Returns:
            Message: The created message

        Raises:
            ValidationError: If content is empty
            PermissionDenied: If sender is not a participant
        """
        if not content or not content.strip():
            raise ValidationError({'content': _('Message content cannot be empty.')})

        if not self.has_participant(sender):
            raise PermissionDenied('You are not a participant in this conversation.')

        with transaction.atomic():
            locked = Conversation.objects.select_for_update().get(pk=self.pk)

            # The first real message replaces the "started" placeholder count
            is_first = not locked.messages.exists()

            message = Message.objects.create(
                conversation=locked,
                sender=sender,
                content=content,
            )
            message.read_by.add(sender)

            counts = dict(locked.unread_counts or {})
            counts.setdefault(str(sender.pk), 0)
            for participant_id in locked.participant_ids:
                if participant_id != sender.pk:
                    key = str(participant_id)
                    previous = 0 if is_first else int(counts.get(key, 0))
                    counts[key] = previous + 1

            locked.last_message = content
            locked.last_message_at = message.created_at
            locked.unread_counts = counts
            locked.save(update_fields=['last_message', 'last_message_at', 'unread_counts', 'updated_at'])

        self.last_message = locked.last_message
        self.last_message_at = locked.last_message_at
        self.unread_counts = locked.unread_counts
        return message

    def mark_read(self, user):
        """
        Reset the user's unread counter and mark every message as read by them.

        This is the only operation that lowers an unread counter.

        Raises:
            PermissionDenied: If user is not a participant
        """
        if not self.has_participant(user):
            raise PermissionDenied('You are not a participant in this conversation.')

        with transaction.atomic():
            locked = Conversation.objects.select_for_update().get(pk=self.pk)

            counts = dict(locked.unread_counts or {})
            counts[str(user.pk)] = 0
            locked.unread_counts = counts
            locked.save(update_fields=['unread_counts', 'updated_at'])

            unread_ids = list(
                locked.messages.exclude(read_by=user).values_list('id', flat=True)
            )
            ReadReceipt = Message.read_by.through
            ReadReceipt.objects.bulk_create(
                [ReadReceipt(message_id=message_id, user_id=user.pk) for message_id in unread_ids],
                ignore_conflicts=True,
            )

        self.unread_counts = locked.unread_counts
        return len(unread_ids)


class Message(models.Model):
    """
    A single chat message. Messages are never edited or deleted.
    """

    conversation = models.ForeignKey(
        Conversation,
        on_delete=models.CASCADE,
        related_name='messages',
    )

    sender = models.ForeignKey(
        User,
        on_delete=models.CASCADE,
        related_name='sent_messages',
    )

    content = models.TextField(_('content'))

    read_by = models.ManyToManyField(
        User,
        related_name='read_messages',
        blank=True,
    )

    created_at = models.DateTimeField(_('created at'), auto_now_add=True, db_index=True)

    class Meta:
        verbose_name = _('message')
        verbose_name_plural = _('messages')
        ordering = ['created_at', 'id']
        indexes = [
            models.Index(fields=['conversation', 'created_at'], name='message_conv_created_idx'),
        ]

    def __str__(self):
        return f"Message {self.pk} from {self.sender_id} in conversation {self.conversation_id}"

    def save(self, *args, **kwargs):
        if self.pk is not None:
            raise ValidationError(_('Messages cannot be edited.'))
        self.full_clean()
        super().save(*args, **kwargs)
