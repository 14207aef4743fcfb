"""
Helper functions shared by the Rent On Map tests.
"""

import base64
from decimal import Decimal
from io import BytesIO

from django.contrib.auth import get_user_model
from PIL import Image
from rest_framework_simplejwt.tokens import RefreshToken

from core.models import Listing

User = get_user_model()


def create_test_user(email, **kwargs):
    """Create a test user with given parameters."""
    return User.objects.create_user(
        username=email,
        email=email,
        password='testpass123',
        name=kwargs.pop('name', email.split('@')[0].title()),
        **kwargs
    )


def create_test_listing(owner, **kwargs):
    """Create a listing near central Delhi unless told otherwise."""
    features = kwargs.pop('features', None)
    defaults = {
        'title': 'Sunny 2BHK',
        'description': 'Two bedrooms close to the metro.',
        'price': Decimal('25000'),
        'category': 'Flat',
        'latitude': 28.61,
        'longitude': 77.21,
    }
    defaults.update(kwargs)
    listing = Listing.objects.create(owner=owner, **defaults)
    if features:
        listing.set_features(features)
    return listing


def get_jwt_token(user):
    """Generate JWT access token for a user."""
    return str(RefreshToken.for_user(user).access_token)


def create_image_data_uri(size=(40, 40), format='PNG', color='blue'):
    """Create a base64 data URI holding a small image."""
    buffer = BytesIO()
    Image.new('RGB', size, color=color).save(buffer, format)
    encoded = base64.b64encode(buffer.getvalue()).decode('ascii')
    return f'data:image/{format.lower()};base64,{encoded}'
