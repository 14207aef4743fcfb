"""
Django admin configuration for Rent On Map.
"""

from django.contrib import admin
from django.contrib.auth.admin import UserAdmin as BaseUserAdmin
from django.utils.translation import gettext_lazy as _

from .models import Conversation, Listing, ListingFeature, Message, User


@admin.register(User)
class UserAdmin(BaseUserAdmin):
    """
    Admin interface for accounts linked to the identity provider.

    Staff review verification requests from here or through the API.
    """

    list_display = [
        'email',
        'name',
        'verification_status',
        'is_verified',
        'is_staff',
        'is_active',
        'created_at',
    ]

    list_filter = [
        'verification_status',
        'is_staff',
        'is_superuser',
        'is_active',
        'created_at',
    ]

    search_fields = ['email', 'username', 'name']

    ordering = ['-created_at']

    fieldsets = (
        (None, {
            'fields': ('username', 'password')
        }),
        (_('Profile'), {
            'fields': ('email', 'name', 'avatar_url')
        }),
        (_('Verification'), {
            'fields': ('verification_status', 'is_verified')
        }),
        (_('Saved listings'), {
            'fields': ('saved_listings',),
            'classes': ('collapse',),
        }),
        (_('Permissions'), {
            'fields': (
                'is_active',
                'is_staff',
                'is_superuser',
                'groups',
                'user_permissions',
            ),
            'classes': ('collapse',),
        }),
        (_('Important dates'), {
            'fields': ('last_login', 'date_joined', 'created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )

    readonly_fields = ['is_verified', 'created_at', 'updated_at', 'last_login', 'date_joined']

    filter_horizontal = ('groups', 'user_permissions', 'saved_listings')

    actions = ['approve_verification', 'reject_verification']

    @admin.action(description=_('Approve selected verification requests'))
    def approve_verification(self, request, queryset):
        updated = 0
        for user in queryset.filter(verification_status=User.VERIFICATION_PENDING):
            user.verification_status = User.VERIFICATION_VERIFIED
            user.save(update_fields=['verification_status', 'updated_at'])
            updated += 1
        self.message_user(request, _('%d user(s) verified.') % updated)

    @admin.action(description=_('Reject selected verification requests'))
    def reject_verification(self, request, queryset):
        updated = 0
        for user in queryset.filter(verification_status=User.VERIFICATION_PENDING):
            user.verification_status = User.VERIFICATION_UNVERIFIED
            user.save(update_fields=['verification_status', 'updated_at'])
            updated += 1
        self.message_user(request, _('%d request(s) rejected.') % updated)


class ListingFeatureInline(admin.TabularInline):
    model = ListingFeature
    extra = 0
    fields = ['position', 'tag']
    ordering = ['position', 'id']


@admin.register(Listing)
class ListingAdmin(admin.ModelAdmin):

    list_display = [
        'title',
        'owner',
        'category',
        'price',
        'city',
        'is_featured',
        'featured_expiry',
        'is_visible',
        'created_at',
    ]

    list_filter = ['category', 'is_featured', 'is_visible', 'created_at']

    search_fields = ['title', 'description', 'address', 'city', 'owner__email']

    raw_id_fields = ['owner']

    readonly_fields = ['created_at', 'updated_at']

    inlines = [ListingFeatureInline]

    fieldsets = (
        (None, {
            'fields': ('owner', 'title', 'description', 'price', 'category', 'images')
        }),
        (_('Details'), {
            'fields': ('bedrooms', 'bathrooms', 'area', 'contact_number')
        }),
        (_('Location'), {
            'fields': ('address', 'city', 'pincode', 'latitude', 'longitude')
        }),
        (_('Promotion & visibility'), {
            'fields': ('is_featured', 'featured_expiry', 'is_visible')
        }),
        (_('Timestamps'), {
            'fields': ('created_at', 'updated_at'),
            'classes': ('collapse',),
        }),
    )


class MessageInline(admin.TabularInline):
    model = Message
    extra = 0
    fields = ['sender', 'content', 'created_at']
    readonly_fields = ['sender', 'content', 'created_at']
    can_delete = False

    def has_add_permission(self, request, obj=None):
        return False


@admin.register(Conversation)
class ConversationAdmin(admin.ModelAdmin):

    list_display = ['id', 'listing', 'participant_low', 'participant_high', 'last_message_at']

    search_fields = ['listing__title', 'participant_low__email', 'participant_high__email']

    raw_id_fields = ['participant_low', 'participant_high', 'listing']

    readonly_fields = ['last_message', 'last_message_at', 'unread_counts', 'created_at', 'updated_at']

    inlines = [MessageInline]


@admin.register(Message)
class MessageAdmin(admin.ModelAdmin):
    """
    Read-only view of the chat ledger. Messages are append-only.
    """

    list_display = ['id', 'conversation', 'sender', 'created_at']

    search_fields = ['content', 'sender__email']

    readonly_fields = ['conversation', 'sender', 'content', 'read_by', 'created_at']

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
