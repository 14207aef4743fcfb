"""
URL configuration for the Rent On Map API.
"""
from django.conf import settings
from django.conf.urls.static import static
from django.contrib import admin
from django.urls import path
from rest_framework_simplejwt.views import (
    TokenBlacklistView,
    TokenRefreshView,
)

from core.views import (
    ConversationListCreateView,
    ConversationReadView,
    ListingDetailView,
    ListingListCreateView,
    ListingPromoteView,
    MessageListCreateView,
    SavedListingsView,
    SignInView,
    UserListingsView,
    UserProfileView,
    VerificationDecisionView,
)


urlpatterns = [
    path('admin/', admin.site.urls),

    # Authentication endpoints
    path('api/auth/signin/', SignInView.as_view(), name='signin'),
    path('api/auth/token/refresh/', TokenRefreshView.as_view(), name='token_refresh'),
    path('api/auth/signout/', TokenBlacklistView.as_view(), name='signout'),

    # Listing endpoints
    path('api/listings/', ListingListCreateView.as_view(), name='listing_list'),
    path('api/listings/promote/', ListingPromoteView.as_view(), name='listing_promote'),
    path('api/listings/<int:pk>/', ListingDetailView.as_view(), name='listing_detail'),

    # User endpoints
    path('api/user/listings/', UserListingsView.as_view(), name='user_listings'),
    path('api/user/saved/', SavedListingsView.as_view(), name='user_saved'),
    path('api/user/profile/', UserProfileView.as_view(), name='user_profile'),
    path('api/user/verification/', VerificationDecisionView.as_view(), name='verification_decision'),

    # Chat endpoints
    path('api/chat/conversations/', ConversationListCreateView.as_view(), name='conversation_list'),
    path('api/chat/conversations/<int:pk>/read/', ConversationReadView.as_view(), name='conversation_read'),
    path('api/chat/messages/', MessageListCreateView.as_view(), name='message_list'),
]

if settings.DEBUG:
    urlpatterns += static(settings.MEDIA_URL, document_root=settings.MEDIA_ROOT)
